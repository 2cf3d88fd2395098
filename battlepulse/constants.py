"""
battlepulse.constants — Shared Constants & Helpers
===================================================

Single source of truth for ledger note wording and the default tuning
values.  Import from here instead of duplicating in the engine, services,
and routes.
"""

from __future__ import annotations

from battlepulse.database.models import BattleMode, LedgerCategory

# ---------------------------------------------------------------------------
# Ledger wording
# ---------------------------------------------------------------------------
LEDGER_SOURCE_TYPE = "battle"

NOTE_PREFIX: dict[BattleMode, str] = {
    BattleMode.DUEL: "Battle Pulse",
    BattleMode.TEAMS: "Battle Pulse",
    BattleMode.LANES: "Skill Lanes",
}

# MVP rows for lanes battles are system awards; everything else is manual.
MVP_CATEGORY: dict[BattleMode, LedgerCategory] = {
    BattleMode.DUEL: LedgerCategory.MANUAL,
    BattleMode.TEAMS: LedgerCategory.MANUAL,
    BattleMode.LANES: LedgerCategory.SYSTEM,
}


def signed(points: int) -> str:
    """Format a point amount for a ledger note: ``+12`` / ``-7``."""
    return f"+{points}" if points >= 0 else str(points)


def note_prefix(mode: BattleMode | str) -> str:
    return NOTE_PREFIX[BattleMode(mode)]


# ---------------------------------------------------------------------------
# Default tuning values (overridable through the ``settings`` table)
# ---------------------------------------------------------------------------
MIN_POINTS_PER_REP = 3
DEFAULT_POINTS_PER_REP = 5
MAX_REPETITION_TARGET = 20
MIN_WAGER = 15
MAX_WAGER = 100
MVP_MIN_SUCCESS_RATE = 0.6
MVP_REFUND_CAP = 50
MVP_TIE_AWARD = 10
REP_LIMIT = 20
REP_WINDOW_HOURS = 24
