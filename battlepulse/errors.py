"""
battlepulse.errors — Domain Exceptions
=======================================

Raised by the service layer and translated to HTTP status codes by the
API routes.  The pure engine never raises these; invalid input is rejected
at the service boundary before the engine runs.

An already-settled battle and an anti-gaming suppression are *not* errors:
both are reported as flags on
:class:`~battlepulse.services.settlement_service.SettleResult`.
"""

from __future__ import annotations


class BattleError(Exception):
    """Base class for every Battle Pulse domain error."""


class BattleNotFound(BattleError):
    def __init__(self, battle_id: str) -> None:
        super().__init__(f"Battle {battle_id} not found")
        self.battle_id = battle_id


class ParticipantNotFound(BattleError):
    def __init__(self, participant_id: str, battle_id: str | None = None) -> None:
        where = f" in battle {battle_id}" if battle_id else ""
        super().__init__(f"Participant {participant_id} not found{where}")
        self.participant_id = participant_id
        self.battle_id = battle_id


class InvalidBattle(BattleError):
    """Battle definition or request rejected at the service boundary."""


class BattleIncomplete(BattleError):
    """Not every participant has reached the repetition target."""

    def __init__(self, battle_id: str, missing: dict[str, int]) -> None:
        super().__init__("Not all participants have completed reps.")
        self.battle_id = battle_id
        # participant_id → attempts still owed
        self.missing = missing


class SettlementStorageError(BattleError):
    """A settlement write failed; the transaction was rolled back.

    No ledger rows, MVP rows or snapshot were persisted, so the caller may
    retry.
    """
