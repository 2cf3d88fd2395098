"""
battlepulse.engine.settlement — Settlement Calculation Pipeline
================================================================

The single settlement computation shared by the live preview and the real
commit.  No DB I/O inside the engine: callers load the battle, its attempt
log, balances and avatar bonuses, and hand them in.

Pipeline stages:
  AttemptEvents → Tally → Groups → Outcome → Pool → Payout → MVP → SettlementPlan
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from battlepulse import constants
from battlepulse.constants import note_prefix, signed
from battlepulse.database.models import BattleMode, LedgerCategory
from battlepulse.engine.mvp import MvpResult, evaluate_mvps
from battlepulse.engine.outcome import Outcome, payout_pool, resolve_outcome
from battlepulse.engine.payout import Payout, compute_payout
from battlepulse.engine.tally import (
    AttemptEvent,
    Tally,
    is_complete,
    resolve_groups,
    tally_attempts,
)

logger = logging.getLogger(__name__)

__all__ = [
    "BattleSnapshot",
    "LedgerLine",
    "SettlementPlan",
    "SettlementRules",
    "plan_settlement",
]


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SettlementRules:
    """Tuning values read from the ``settings`` table (defaults if unset)."""

    min_points_per_rep: int = constants.MIN_POINTS_PER_REP
    max_repetition_target: int = constants.MAX_REPETITION_TARGET
    min_wager: int = constants.MIN_WAGER
    max_wager: int = constants.MAX_WAGER
    mvp_min_success_rate: float = constants.MVP_MIN_SUCCESS_RATE
    mvp_refund_cap: int = constants.MVP_REFUND_CAP
    mvp_tie_award: int = constants.MVP_TIE_AWARD
    rep_limit: int = constants.REP_LIMIT
    rep_window_hours: int = constants.REP_WINDOW_HOURS


@dataclass(frozen=True, slots=True)
class BattleSnapshot:
    """The settlement-relevant fields of a battle, detached from the ORM."""

    battle_id: str
    mode: BattleMode
    participant_ids: tuple[str, ...]
    repetition_target: int = 1
    wager_amount: int = 0
    points_per_rep: int = constants.DEFAULT_POINTS_PER_REP
    team_ids: tuple[tuple[str, ...], ...] = ()

    @property
    def is_wager_mode(self) -> bool:
        return self.wager_amount > 0


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LedgerLine:
    """One ledger row to append (not yet persisted)."""

    participant_id: str
    points: int
    note: str
    category: str
    points_base: int | None = None
    points_multiplier: float | None = None


@dataclass(frozen=True, slots=True)
class SettlementPlan:
    """Everything a settlement would do, computed but not applied."""

    battle_id: str
    mode: BattleMode
    participant_ids: tuple[str, ...]
    tallies: dict[str, Tally]
    groups: list[list[str]]
    outcome: Outcome
    pool: int
    payout: Payout
    mvp: MvpResult
    complete: bool
    suppressed: bool = False
    ledger_lines: tuple[LedgerLine, ...] = field(default_factory=tuple)

    @property
    def winners(self) -> frozenset[str]:
        return self.outcome.winners

    @property
    def winner_id(self) -> str | None:
        """Set only when exactly one participant wins a duel."""
        if self.mode == BattleMode.DUEL and len(self.outcome.winners) == 1:
            return next(iter(self.outcome.winners))
        return None

    @property
    def transfer_deltas(self) -> dict[str, int]:
        """Zero-sum win/loss transfer (excludes MVP awards)."""
        if self.suppressed:
            return {pid: 0 for pid in self.participant_ids}
        return dict(self.payout.deltas)

    @property
    def total_deltas(self) -> dict[str, int]:
        """Net points change per participant including MVP awards."""
        totals = {pid: 0 for pid in self.participant_ids}
        for line in self.ledger_lines:
            totals[line.participant_id] = totals.get(line.participant_id, 0) + line.points
        return totals


# ---------------------------------------------------------------------------
# Ledger line builder
# ---------------------------------------------------------------------------
def _ledger_lines(mode: BattleMode, payout: Payout, mvp: MvpResult) -> list[LedgerLine]:
    prefix = note_prefix(mode)
    lines: list[LedgerLine] = []
    for pid, delta in payout.deltas.items():
        if delta < 0:
            lines.append(LedgerLine(
                participant_id=pid,
                points=delta,
                note=f"{prefix} loss ({signed(delta)})",
                category=LedgerCategory.MANUAL.value,
            ))
        elif delta > 0:
            lines.append(LedgerLine(
                participant_id=pid,
                points=delta,
                note=f"{prefix} win ({signed(delta)})",
                category=LedgerCategory.MANUAL.value,
            ))
    for award in mvp.awards:
        if award.points <= 0:
            continue
        lines.append(LedgerLine(
            participant_id=award.participant_id,
            points=award.points,
            note=award.note,
            category=award.category,
            points_base=award.base if award.bonus else None,
            points_multiplier=(1 + award.bonus_pct / 100) if award.bonus else None,
        ))
    return lines


# ---------------------------------------------------------------------------
# Full calculation pipeline
# ---------------------------------------------------------------------------
def plan_settlement(
    battle: BattleSnapshot,
    events: Iterable[AttemptEvent],
    balances: Mapping[str, int],
    bonus_pct: Mapping[str, int] | None = None,
    *,
    rules: SettlementRules | None = None,
    suppress_effects: bool = False,
) -> SettlementPlan:
    """Run the full settlement pipeline on a battle snapshot.

    This is a PURE function — no DB I/O.  Called by both the preview and the
    commit so the two can never disagree.

    Parameters
    ----------
    battle : detached battle definition
    events : the battle's attempt log
    balances : current point balance per participant
    bonus_pct : avatar MVP bonus percentage per participant
    rules : tuning values (defaults if omitted)
    suppress_effects : anti-gaming hit — winners/lead are still resolved but
        no points move and no MVPs are awarded
    """
    rules = rules or SettlementRules()
    bonus_pct = bonus_pct or {}
    participants: Sequence[str] = battle.participant_ids

    # 1. Aggregate attempts
    tallies = tally_attempts(events, participants, battle.repetition_target)
    complete = is_complete(tallies, participants, battle.repetition_target)

    # 2. Group partition (teams/lanes)
    groups = resolve_groups(battle.mode, participants, battle.team_ids)

    # 3. Winners and lead
    outcome = resolve_outcome(battle.mode, tallies, participants, groups)

    # 4. Pool size
    losers = [pid for pid in participants if pid not in outcome.winners]
    pool = payout_pool(
        wager_amount=battle.wager_amount,
        points_per_rep=max(rules.min_points_per_rep, battle.points_per_rep),
        lead=outcome.lead,
        participant_count=len(participants),
        loser_count=len(losers),
    )

    # 5. Anti-gaming suppression short-circuits every monetary effect
    if suppress_effects:
        logger.info(
            "Battle %s: effects suppressed (winners=%d, lead=%d)",
            battle.battle_id, len(outcome.winners), outcome.lead,
        )
        return SettlementPlan(
            battle_id=battle.battle_id,
            mode=battle.mode,
            participant_ids=tuple(participants),
            tallies=tallies,
            groups=groups,
            outcome=outcome,
            pool=pool,
            payout=Payout(deltas={pid: 0 for pid in participants}),
            mvp=MvpResult(),
            complete=complete,
            suppressed=True,
        )

    # 6. Debit/credit apportionment
    payout = compute_payout(
        pool=pool,
        participant_ids=participants,
        winners=outcome.winners,
        balances=balances,
        wager_amount=battle.wager_amount,
    )

    # 7. MVP awards
    mvp = evaluate_mvps(
        battle.mode,
        tallies,
        groups,
        outcome.winners,
        payout,
        bonus_pct,
        min_success_rate=rules.mvp_min_success_rate,
        refund_cap=rules.mvp_refund_cap,
        tie_award=rules.mvp_tie_award,
    )

    return SettlementPlan(
        battle_id=battle.battle_id,
        mode=battle.mode,
        participant_ids=tuple(participants),
        tallies=tallies,
        groups=groups,
        outcome=outcome,
        pool=pool,
        payout=payout,
        mvp=mvp,
        complete=complete,
        ledger_lines=tuple(_ledger_lines(battle.mode, payout, mvp)),
    )
