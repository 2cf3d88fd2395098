"""
battlepulse.engine.anti_gaming — Rep-farming check
===================================================

Blocks point farming: an operator who logs more than ``rep_limit`` reps
for any single participant within the rolling window (battle attempts plus
reps on that participant's other skill trackers) still settles the battle,
but every monetary effect is suppressed.

The counting happens in
:func:`battlepulse.services.ledger_service.get_recent_rep_count`; this
module holds the decision so it can be tested without a database.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta

from battlepulse.constants import REP_LIMIT, REP_WINDOW_HOURS

logger = logging.getLogger(__name__)


def window_cutoff(
    hours: int = REP_WINDOW_HOURS, *, now: datetime | None = None
) -> datetime:
    """Start of the rolling window ending at *now* (UTC)."""
    now = now or datetime.now(UTC)
    return now - timedelta(hours=hours)


def over_limit(
    rep_counts: Mapping[str, int], limit: int = REP_LIMIT
) -> list[str]:
    """Participants whose window count is strictly above *limit*."""
    return [pid for pid, count in rep_counts.items() if count > limit]


def is_rep_farming(
    rep_counts: Mapping[str, int], limit: int = REP_LIMIT
) -> bool:
    """Return True if any participant's count exceeds *limit*.

    A True result means the settlement must not move any points.
    """
    flagged = over_limit(rep_counts, limit)
    if flagged:
        logger.info(
            "Rep limit exceeded for %d participant(s) (limit=%d): %s",
            len(flagged), limit, ", ".join(flagged),
        )
    return bool(flagged)
