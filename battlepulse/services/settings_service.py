"""
battlepulse.services.settings_service — Settings CRUD & Rules Loader
=====================================================================

Typed read/write access to the ``settings`` table, and the loader that
turns it into the :class:`~battlepulse.engine.settlement.SettlementRules`
consumed by the engine.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from battlepulse.database.models import Setting
from battlepulse.engine.settlement import SettlementRules

logger = logging.getLogger(__name__)

# settings key → SettlementRules field
RULE_KEYS: dict[str, str] = {
    "battle.min_points_per_rep": "min_points_per_rep",
    "battle.max_repetition_target": "max_repetition_target",
    "battle.min_wager": "min_wager",
    "battle.max_wager": "max_wager",
    "mvp.min_success_rate": "mvp_min_success_rate",
    "mvp.refund_cap": "mvp_refund_cap",
    "mvp.tie_award": "mvp_tie_award",
    "anti_gaming.rep_limit": "rep_limit",
    "anti_gaming.rep_window_hours": "rep_window_hours",
}

# SettlementRules field → (lowest, highest) accepted value; None is unbounded
RULE_BOUNDS: dict[str, tuple[float, float | None]] = {
    "min_points_per_rep": (1, None),
    "max_repetition_target": (1, None),
    "min_wager": (1, None),
    "max_wager": (1, None),
    "mvp_min_success_rate": (0.0, 1.0),
    "mvp_refund_cap": (0, None),
    "mvp_tie_award": (0, None),
    "rep_limit": (0, None),
    "rep_window_hours": (1, None),
}


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_setting_value(session: Session, key: str, default=None):
    """Read a single setting's parsed value from an existing session.

    Returns *default* when the key does not exist or the stored JSON is
    invalid.
    """
    row = session.get(Setting, key)
    if row is None:
        return default
    try:
        return json.loads(row.value_json)
    except (json.JSONDecodeError, TypeError):
        return row.value_json


def get_all_settings(engine) -> list[Setting]:
    """Fetch every setting row, ordered by category then key."""
    with Session(engine) as session:
        rows = session.scalars(
            select(Setting).order_by(Setting.category, Setting.key)
        ).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


def load_rules(session: Session) -> SettlementRules:
    """Build :class:`SettlementRules` from the settings table.

    Missing keys and values of the wrong type fall back to the dataclass
    defaults.  Out-of-range values are clamped into ``RULE_BOUNDS``, and
    ``max_wager`` never drops below ``min_wager``.
    """
    defaults = SettlementRules()
    values: dict[str, Any] = {}
    rows = session.scalars(
        select(Setting).where(Setting.key.in_(list(RULE_KEYS)))
    ).all()
    for row in rows:
        field_name = RULE_KEYS[row.key]
        fallback = getattr(defaults, field_name)
        try:
            raw = json.loads(row.value_json)
            value = type(fallback)(raw)
        except (json.JSONDecodeError, TypeError, ValueError):
            logger.warning("Ignoring malformed setting %s=%r", row.key, row.value_json)
            continue
        low, high = RULE_BOUNDS[field_name]
        clamped = max(low, value) if high is None else min(high, max(low, value))
        if clamped != value:
            logger.warning("Setting %s=%r out of range, using %r", row.key, value, clamped)
        values[field_name] = type(fallback)(clamped)

    min_wager = values.get("min_wager", defaults.min_wager)
    if values.get("max_wager", defaults.max_wager) < min_wager:
        logger.warning("battle.max_wager below battle.min_wager, using %d", min_wager)
        values["max_wager"] = min_wager
    return SettlementRules(**values)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def upsert_setting(
    engine,
    *,
    key: str,
    value: Any,
    category: str = "general",
    description: str | None = None,
) -> Setting:
    """Insert or update a single setting."""
    value_json = json.dumps(value)
    with Session(engine, expire_on_commit=False) as session:
        existing = session.get(Setting, key)
        if existing:
            existing.value_json = value_json
            if category:
                existing.category = category
            if description is not None:
                existing.description = description
        else:
            existing = Setting(
                key=key,
                value_json=value_json,
                category=category,
                description=description,
            )
            session.add(existing)
        session.commit()

    logger.info("Setting %s updated", key)
    return existing
