"""
battlepulse.services.settlement_service — Settlement Commit & Preview
======================================================================

The two callers of :func:`battlepulse.engine.settlement.plan_settlement`.

``settle_battle``
    Commits a battle exactly once.  The claim is a conditional
    ``UPDATE battles SET settled_at = now WHERE id = ? AND settled_at IS NULL``;
    the ledger rows, balance recomputes, MVP rows and the audit snapshot are
    written in the same transaction, so either all of them land or none do.

``preview_battle``
    Runs the same loaders and the same pipeline inside a read-only session
    and returns what a commit would do right now.  No guard, no completion
    requirement, no writes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from battlepulse.database.models import Battle
from battlepulse.engine.anti_gaming import is_rep_farming, window_cutoff
from battlepulse.engine.settlement import (
    BattleSnapshot,
    SettlementPlan,
    SettlementRules,
    plan_settlement,
)
from battlepulse.engine.tally import missing_attempts
from battlepulse.errors import (
    BattleError,
    BattleIncomplete,
    BattleNotFound,
    SettlementStorageError,
)
from battlepulse.services.battle_service import get_battle, load_events, snapshot_from_battle
from battlepulse.services.ledger_service import (
    append_ledger_entries,
    get_avatar_bonus_pct,
    get_mvp_ids,
    get_participant_balances,
    get_recent_rep_count,
    recompute_balance,
    upsert_mvp_awards,
)
from battlepulse.services.settings_service import load_rules

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SettleResult:
    """What :func:`settle_battle` did.

    ``already_settled`` — the battle was settled earlier; nothing changed and
    the stored result is returned.
    ``rate_limited`` — the battle is settled but no points moved.
    """

    battle_id: str
    settled: bool
    already_settled: bool = False
    rate_limited: bool = False
    winners: tuple[str, ...] = ()
    winner_id: str | None = None
    lead: int = 0
    pool: int = 0
    deltas: dict[str, int] = field(default_factory=dict)
    mvp_ids: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SettlementPreview:
    battle_id: str
    mode: str
    settled: bool
    complete: bool
    missing: dict[str, int]
    rate_limited: bool
    winners: tuple[str, ...]
    winner_id: str | None
    lead: int
    pool: int
    deltas: dict[str, int]
    transfer_deltas: dict[str, int]
    mvp_ids: tuple[str, ...]
    mvp_awards: list[dict]
    tallies: dict[str, dict[str, int]]


# ---------------------------------------------------------------------------
# Shared loaders
# ---------------------------------------------------------------------------
def _rep_counts(
    session: Session,
    snapshot: BattleSnapshot,
    operator_id: str,
    rules: SettlementRules,
    now: datetime,
) -> dict[str, int]:
    since = window_cutoff(rules.rep_window_hours, now=now)
    return {
        pid: get_recent_rep_count(session, operator_id, [pid], since)
        for pid in snapshot.participant_ids
    }


def _is_rate_limited(
    session: Session,
    snapshot: BattleSnapshot,
    rules: SettlementRules,
    *,
    operator_id: str | None,
    apply_rep_limit: bool,
    now: datetime,
) -> bool:
    if not (apply_rep_limit and operator_id):
        return False
    counts = _rep_counts(session, snapshot, operator_id, rules, now)
    return is_rep_farming(counts, rules.rep_limit)


def _plan(
    session: Session,
    battle: Battle,
    *,
    operator_id: str | None,
    apply_rep_limit: bool,
    now: datetime,
    lock: bool,
) -> tuple[SettlementPlan, dict[str, int]]:
    """Load every input for *battle* and run the pure pipeline.

    Returns the plan and the ``missing`` map (attempts still owed).
    """
    snapshot = snapshot_from_battle(battle)
    rules = load_rules(session)
    events = load_events(session, battle.id)
    suppressed = _is_rate_limited(
        session, snapshot, rules,
        operator_id=operator_id, apply_rep_limit=apply_rep_limit, now=now,
    )
    balances = get_participant_balances(session, snapshot.participant_ids, lock=lock)
    bonus_pct = get_avatar_bonus_pct(session, snapshot.participant_ids)
    plan = plan_settlement(
        snapshot,
        events,
        balances,
        bonus_pct,
        rules=rules,
        suppress_effects=suppressed,
    )
    missing = missing_attempts(plan.tallies, snapshot.participant_ids, snapshot.repetition_target)
    return plan, missing


def _ordered_winners(plan: SettlementPlan) -> tuple[str, ...]:
    return tuple(pid for pid in plan.participant_ids if pid in plan.winners)


def _stored_result(session: Session, battle: Battle) -> SettleResult:
    stored = battle.settlement_snapshot or {}
    return SettleResult(
        battle_id=battle.id,
        settled=True,
        already_settled=True,
        rate_limited=bool(stored.get("rate_limited", False)),
        winners=tuple(stored.get("winners") or ()),
        winner_id=battle.winner_id,
        lead=int(stored.get("lead", 0)),
        pool=int(stored.get("pool", 0)),
        deltas={pid: int(d) for pid, d in (stored.get("deltas_by_id") or {}).items()},
        mvp_ids=tuple(get_mvp_ids(session, battle.id)),
    )


# ---------------------------------------------------------------------------
# Commit
# ---------------------------------------------------------------------------
def _settle_in_session(
    session: Session,
    battle_id: str,
    *,
    operator_id: str | None,
    apply_rep_limit: bool,
    now: datetime,
) -> SettleResult:
    claimed = session.execute(
        update(Battle)
        .where(Battle.id == battle_id, Battle.settled_at.is_(None))
        .values(settled_at=now)
        .execution_options(synchronize_session=False)
    ).rowcount
    battle = get_battle(session, battle_id)
    if not claimed:
        logger.info("Battle %s already settled, skipping", battle_id)
        return _stored_result(session, battle)

    plan, missing = _plan(
        session, battle,
        operator_id=operator_id, apply_rep_limit=apply_rep_limit, now=now, lock=True,
    )
    if missing:
        raise BattleIncomplete(battle_id, missing)

    ids = plan.participant_ids
    if plan.suppressed:
        after = get_participant_balances(session, ids)
        deltas = {pid: 0 for pid in ids}
    else:
        append_ledger_entries(
            session, plan.ledger_lines, battle_id=battle_id, created_by=operator_id
        )
        after = {pid: recompute_balance(session, pid) for pid in ids}
        deltas = plan.total_deltas
        upsert_mvp_awards(session, battle_id, plan.mvp.mvp_ids)

    battle.winner_id = plan.winner_id
    battle.settlement_snapshot = {
        "points_before_by_id": {pid: after[pid] - deltas[pid] for pid in ids},
        "points_after_by_id": dict(after),
        "deltas_by_id": dict(deltas),
        "snapshot_at": now.isoformat(),
        "rate_limited": plan.suppressed,
        "lead": plan.outcome.lead,
        "pool": plan.pool,
        "winners": list(_ordered_winners(plan)),
    }
    session.flush()

    logger.info(
        "Battle %s settled: winners=%s lead=%d pool=%d rate_limited=%s",
        battle_id, ",".join(_ordered_winners(plan)) or "tie",
        plan.outcome.lead, plan.pool, plan.suppressed,
    )
    return SettleResult(
        battle_id=battle_id,
        settled=True,
        rate_limited=plan.suppressed,
        winners=_ordered_winners(plan),
        winner_id=plan.winner_id,
        lead=plan.outcome.lead,
        pool=plan.pool,
        deltas=deltas,
        mvp_ids=() if plan.suppressed else plan.mvp.mvp_ids,
    )


def settle_battle(
    engine: Engine,
    battle_id: str,
    *,
    operator_id: str | None = None,
    apply_rep_limit: bool = False,
    now: datetime | None = None,
) -> SettleResult:
    """Settle *battle_id* at most once.

    Raises
    ------
    BattleNotFound
        No such battle.
    BattleIncomplete
        Some participant is short of the repetition target; the claim is
        rolled back and the battle stays active.
    SettlementStorageError
        A database write failed; nothing was persisted.
    """
    now = now or datetime.now(UTC)
    with Session(engine) as session:
        try:
            result = _settle_in_session(
                session, battle_id,
                operator_id=operator_id, apply_rep_limit=apply_rep_limit, now=now,
            )
            session.commit()
        except BattleError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Settlement of battle %s failed, rolled back", battle_id)
            raise SettlementStorageError(
                f"Could not store settlement for battle {battle_id}"
            ) from exc
    return result


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------
def preview_battle(
    engine: Engine,
    battle_id: str,
    *,
    operator_id: str | None = None,
    apply_rep_limit: bool = False,
    now: datetime | None = None,
) -> SettlementPreview:
    """Project the settlement of *battle_id* without writing anything."""
    now = now or datetime.now(UTC)
    with Session(engine) as session:
        battle = session.get(Battle, battle_id)
        if battle is None:
            raise BattleNotFound(battle_id)
        plan, missing = _plan(
            session, battle,
            operator_id=operator_id, apply_rep_limit=apply_rep_limit, now=now, lock=False,
        )
        settled = battle.settled_at is not None
        session.rollback()

    return SettlementPreview(
        battle_id=battle_id,
        mode=plan.mode.value,
        settled=settled,
        complete=plan.complete,
        missing=missing,
        rate_limited=plan.suppressed,
        winners=_ordered_winners(plan),
        winner_id=plan.winner_id,
        lead=plan.outcome.lead,
        pool=plan.pool,
        deltas=plan.total_deltas,
        transfer_deltas=plan.transfer_deltas,
        mvp_ids=plan.mvp.mvp_ids,
        mvp_awards=[
            {
                "student_id": award.participant_id,
                "kind": award.kind,
                "points": award.points,
                "base": award.base,
                "bonus": award.bonus,
                "note": award.note,
            }
            for award in plan.mvp.awards
        ],
        tallies={
            pid: {"attempts": t.attempts, "successes": t.successes}
            for pid, t in plan.tallies.items()
        },
    )
