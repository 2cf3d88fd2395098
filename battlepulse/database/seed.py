"""
battlepulse.database.seed — Default Settings Seeder
====================================================

Baseline settlement tuning seeded on first startup so battles can be
settled immediately (battle bounds, MVP rules, anti-gaming window).

Idempotent — only inserts keys that don't already exist.  Admin edits are
never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from battlepulse import constants
from battlepulse.database.models import Setting

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "battle.min_points_per_rep": (
        constants.MIN_POINTS_PER_REP, "battle", "Floor for points per rep in rate mode",
    ),
    "battle.max_repetition_target": (
        constants.MAX_REPETITION_TARGET, "battle", "Largest repetition target a battle may use",
    ),
    "battle.min_wager": (constants.MIN_WAGER, "battle", "Minimum wager per participant"),
    "battle.max_wager": (constants.MAX_WAGER, "battle", "Maximum wager per participant"),
    "mvp.min_success_rate": (
        constants.MVP_MIN_SUCCESS_RATE, "mvp", "Success rate needed to be MVP-eligible",
    ),
    "mvp.refund_cap": (
        constants.MVP_REFUND_CAP, "mvp", "Largest refund a losing-side MVP receives",
    ),
    "mvp.tie_award": (constants.MVP_TIE_AWARD, "mvp", "Flat MVP consolation on a tie"),
    "anti_gaming.rep_limit": (
        constants.REP_LIMIT, "anti_gaming", "Reps per participant per operator before suppression",
    ),
    "anti_gaming.rep_window_hours": (
        constants.REP_WINDOW_HOURS, "anti_gaming", "Rolling window for the rep limit (hours)",
    ),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> None:
    """Insert default settings that don't yet exist."""
    session = Session(engine)
    inserted = 0
    try:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            existing = session.get(Setting, key)
            if existing is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default settings.", inserted)
