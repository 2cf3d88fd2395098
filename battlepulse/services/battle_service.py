"""
battlepulse.services.battle_service — Battle Lifecycle (before settlement)
==========================================================================

Creating battles, logging repetitions, and reading a battle's live state.

Everything that can be rejected is rejected here, before a row is written:
the pure settlement engine downstream assumes a well-formed battle (two or
more unique participants, a sane partition, an affordable wager).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from battlepulse import constants
from battlepulse.database.models import (
    Avatar,
    Battle,
    BattleAttempt,
    BattleMode,
    LedgerEntry,
    Student,
    StudentAvatar,
)
from battlepulse.engine.settlement import BattleSnapshot, SettlementRules
from battlepulse.engine.tally import (
    AttemptEvent,
    Tally,
    is_complete,
    resolve_groups,
    tally_attempts,
)
from battlepulse.errors import (
    BattleNotFound,
    InvalidBattle,
    ParticipantNotFound,
)
from battlepulse.services.ledger_service import (
    get_mvp_ids,
    get_participant_balances,
    recompute_balance,
)
from battlepulse.services.settings_service import load_rules

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AttemptResult:
    """Outcome of :func:`log_attempt`.

    ``stored`` is False when the participant had already reached the
    repetition target; the rep is then dropped rather than recorded.
    """

    battle_id: str
    student_id: str
    stored: bool
    attempt_id: int | None
    tally: Tally
    battle_complete: bool


@dataclass(frozen=True, slots=True)
class ParticipantState:
    student_id: str
    name: str
    points_total: int
    attempts: int
    successes: int
    is_mvp: bool = False
    delta: int | None = None


@dataclass(frozen=True, slots=True)
class BattleState:
    battle_id: str
    mode: str
    skill_name: str | None
    repetition_target: int
    wager_amount: int
    points_per_rep: int
    participants: list[ParticipantState]
    groups: list[list[str]]
    complete: bool
    settled_at: datetime | None = None
    winner_id: str | None = None
    snapshot: dict | None = None
    mvp_ids: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# ORM → engine adapters
# ---------------------------------------------------------------------------
def snapshot_from_battle(battle: Battle) -> BattleSnapshot:
    """Detach the settlement-relevant fields of a battle row."""
    return BattleSnapshot(
        battle_id=battle.id,
        mode=BattleMode(battle.mode),
        participant_ids=tuple(str(pid) for pid in battle.participant_ids or ()),
        repetition_target=max(1, int(battle.repetition_target or 1)),
        wager_amount=max(0, int(battle.wager_amount or 0)),
        points_per_rep=int(battle.points_per_rep or constants.DEFAULT_POINTS_PER_REP),
        team_ids=tuple(
            tuple(str(pid) for pid in team) for team in (battle.team_ids or ())
        ),
    )


def load_events(session: Session, battle_id: str) -> list[AttemptEvent]:
    """The battle's attempt log ordered by ``(occurred_at, id)``."""
    rows = session.scalars(
        select(BattleAttempt)
        .where(BattleAttempt.battle_id == battle_id)
        .order_by(BattleAttempt.occurred_at, BattleAttempt.id)
    ).all()
    return [
        AttemptEvent(participant_id=row.student_id, success=row.success, occurred_at=row.occurred_at)
        for row in rows
    ]


def get_battle(session: Session, battle_id: str, *, lock: bool = False) -> Battle:
    battle = session.get(Battle, battle_id, with_for_update=lock)
    if battle is None:
        raise BattleNotFound(battle_id)
    return battle


# ---------------------------------------------------------------------------
# Students
# ---------------------------------------------------------------------------
def create_student(engine: Engine, name: str, *, opening_balance: int = 0) -> Student:
    """Insert a student; a non-zero opening balance is booked as a ledger row."""
    with Session(engine, expire_on_commit=False) as session:
        student = Student(name=name.strip() or "Student")
        session.add(student)
        session.flush()
        if opening_balance:
            session.add(LedgerEntry(
                student_id=student.id,
                points=int(opening_balance),
                note="Opening balance",
                category="manual",
            ))
            session.flush()
        recompute_balance(session, student.id)
        session.commit()
        session.refresh(student)
        return student


def equip_avatar(
    engine: Engine, student_id: str, *, name: str, mvp_bonus_pct: int = 0
) -> Avatar:
    """Create an avatar and equip it on *student_id* (replacing any other)."""
    with Session(engine, expire_on_commit=False) as session:
        if session.get(Student, student_id) is None:
            raise ParticipantNotFound(student_id)
        avatar = Avatar(name=name, mvp_bonus_pct=min(100, max(0, int(mvp_bonus_pct))))
        session.add(avatar)
        session.flush()
        link = session.get(StudentAvatar, student_id)
        if link is None:
            session.add(StudentAvatar(student_id=student_id, avatar_id=avatar.id))
        else:
            link.avatar_id = avatar.id
        session.commit()
        return avatar


# ---------------------------------------------------------------------------
# Battle creation
# ---------------------------------------------------------------------------
def _normalise_ids(raw: Sequence[str] | None) -> list[str]:
    """Strip, drop blanks and dedupe while keeping first-seen order."""
    cleaned = (str(pid).strip() for pid in (raw or ()))
    return list(dict.fromkeys(pid for pid in cleaned if pid))


def _validate_teams(
    mode: BattleMode,
    participant_ids: list[str],
    team_ids: Sequence[Sequence[str]] | None,
) -> list[list[str]] | None:
    if mode == BattleMode.DUEL:
        return None

    teams = [_normalise_ids(team) for team in (team_ids or ())]
    teams = [team for team in teams if team]
    if not teams:
        if mode == BattleMode.LANES:
            raise InvalidBattle("Skill Lanes battles need two explicit teams.")
        return None

    seen: set[str] = set()
    for team in teams:
        for pid in team:
            if pid not in participant_ids:
                raise InvalidBattle(f"Team member {pid} is not a participant.")
            if pid in seen:
                raise InvalidBattle(f"Participant {pid} is on more than one team.")
            seen.add(pid)
    if seen != set(participant_ids):
        raise InvalidBattle("Every participant must be on a team.")
    if len(teams) < 2:
        raise InvalidBattle("Team battles need at least two non-empty teams.")

    if mode == BattleMode.LANES:
        if len(teams) != 2:
            raise InvalidBattle("Skill Lanes battles need exactly two teams.")
        if len(teams[0]) != len(teams[1]) or len(teams[0]) < 2:
            raise InvalidBattle("Skill Lanes teams must be equal and have at least two members.")
    return teams


def _resolve_stakes(
    rules: SettlementRules,
    balances: dict[str, int],
    participant_ids: list[str],
    *,
    target: int,
    wager_amount: int,
    points_per_rep: int | None,
) -> tuple[int, int]:
    """Return the clamped ``(wager_amount, points_per_rep)`` pair."""
    min_balance = min(balances.get(pid, 0) for pid in participant_ids)

    if wager_amount > 0:
        if wager_amount < rules.min_wager:
            raise InvalidBattle(f"Wager must be at least {rules.min_wager} points.")
        if min_balance < rules.min_wager:
            raise InvalidBattle(
                f"Every participant needs at least {rules.min_wager} points to wager."
            )
        wager = min(wager_amount, rules.max_wager, min_balance)
        return wager, constants.DEFAULT_POINTS_PER_REP

    if wager_amount < 0:
        raise InvalidBattle("Wager cannot be negative.")

    max_per_rep = min_balance // target
    if max_per_rep < rules.min_points_per_rep:
        raise InvalidBattle(
            "Participants do not hold enough points for "
            f"{rules.min_points_per_rep} points per rep over {target} reps."
        )
    requested = points_per_rep if points_per_rep is not None else constants.DEFAULT_POINTS_PER_REP
    return 0, min(max_per_rep, max(rules.min_points_per_rep, int(requested)))


def create_battle(
    engine: Engine,
    *,
    mode: str = BattleMode.DUEL.value,
    participant_ids: Sequence[str],
    team_ids: Sequence[Sequence[str]] | None = None,
    repetition_target: int = 5,
    wager_amount: int = 0,
    points_per_rep: int | None = None,
    skill_name: str | None = None,
    created_by: str | None = None,
) -> Battle:
    """Validate and insert a new, unsettled battle.

    Raises
    ------
    InvalidBattle
        Bad mode, fewer than two participants, a malformed team partition,
        or stakes the participants cannot afford.
    ParticipantNotFound
        A participant id does not exist.
    """
    try:
        battle_mode = BattleMode(mode)
    except ValueError:
        raise InvalidBattle(f"Unknown battle mode {mode!r}.") from None

    ids = _normalise_ids(participant_ids)
    if len(ids) < 2:
        raise InvalidBattle("A battle needs at least two participants.")
    teams = _validate_teams(battle_mode, ids, team_ids)

    with Session(engine, expire_on_commit=False) as session:
        rules = load_rules(session)
        balances = get_participant_balances(session, ids)
        for pid in ids:
            if pid not in balances:
                raise ParticipantNotFound(pid)

        target = min(rules.max_repetition_target, max(1, int(repetition_target)))
        wager, per_rep = _resolve_stakes(
            rules,
            balances,
            ids,
            target=target,
            wager_amount=int(wager_amount or 0),
            points_per_rep=points_per_rep,
        )

        battle = Battle(
            mode=battle_mode.value,
            skill_name=(skill_name or "").strip() or None,
            participant_ids=ids,
            team_ids=teams,
            repetition_target=target,
            wager_amount=wager,
            points_per_rep=per_rep,
            created_by=created_by,
        )
        session.add(battle)
        session.commit()
        session.refresh(battle)

    logger.info(
        "Battle %s created (%s, %d participants, target=%d, wager=%d, per_rep=%d)",
        battle.id, battle_mode.value, len(ids), target, wager, per_rep,
    )
    return battle


# ---------------------------------------------------------------------------
# Attempts
# ---------------------------------------------------------------------------
def log_attempt(
    engine: Engine,
    battle_id: str,
    student_id: str,
    success: bool,
    *,
    operator_id: str | None = None,
    occurred_at: datetime | None = None,
) -> AttemptResult:
    """Append one repetition to an unsettled battle.

    A participant who already reached the repetition target is not
    recorded again (``stored=False``).
    """
    with Session(engine) as session:
        # row lock serialises concurrent reps on the same battle
        battle = get_battle(session, battle_id, lock=True)
        if battle.settled_at is not None:
            raise InvalidBattle(f"Battle {battle_id} is already settled.")
        if student_id not in (battle.participant_ids or []):
            raise ParticipantNotFound(student_id, battle_id)

        done = session.scalar(
            select(func.count(BattleAttempt.id)).where(
                BattleAttempt.battle_id == battle_id,
                BattleAttempt.student_id == student_id,
            )
        ) or 0

        attempt_id = None
        stored = done < battle.repetition_target
        if stored:
            attempt = BattleAttempt(
                battle_id=battle_id,
                student_id=student_id,
                success=bool(success),
                created_by=operator_id,
                occurred_at=occurred_at or datetime.now(UTC),
            )
            session.add(attempt)
            session.flush()
            attempt_id = attempt.id
            session.commit()
        else:
            logger.debug("Battle %s: %s already at target, rep ignored", battle_id, student_id)

        snapshot = snapshot_from_battle(battle)
        tallies = tally_attempts(
            load_events(session, battle_id),
            snapshot.participant_ids,
            snapshot.repetition_target,
        )
        return AttemptResult(
            battle_id=battle_id,
            student_id=student_id,
            stored=stored,
            attempt_id=attempt_id,
            tally=tallies[student_id],
            battle_complete=is_complete(
                tallies, snapshot.participant_ids, snapshot.repetition_target
            ),
        )


# ---------------------------------------------------------------------------
# Read model
# ---------------------------------------------------------------------------
def get_battle_state(engine: Engine, battle_id: str) -> BattleState:
    """Participants with tallies, MVPs and (once settled) their stored deltas."""
    with Session(engine) as session:
        battle = get_battle(session, battle_id)
        snapshot = snapshot_from_battle(battle)
        tallies = tally_attempts(
            load_events(session, battle_id),
            snapshot.participant_ids,
            snapshot.repetition_target,
        )
        students = {
            s.id: s for s in session.scalars(
                select(Student).where(Student.id.in_(list(snapshot.participant_ids)))
            )
        }
        mvp_ids = get_mvp_ids(session, battle_id)
        stored = battle.settlement_snapshot or {}
        deltas = stored.get("deltas_by_id") or {}

        participants = []
        for pid in snapshot.participant_ids:
            student = students.get(pid)
            tally = tallies[pid]
            participants.append(ParticipantState(
                student_id=pid,
                name=student.name if student else pid,
                points_total=int(student.points_total or 0) if student else 0,
                attempts=tally.attempts,
                successes=tally.successes,
                is_mvp=pid in mvp_ids,
                delta=int(deltas[pid]) if pid in deltas else None,
            ))

        return BattleState(
            battle_id=battle.id,
            mode=snapshot.mode.value,
            skill_name=battle.skill_name,
            repetition_target=snapshot.repetition_target,
            wager_amount=snapshot.wager_amount,
            points_per_rep=snapshot.points_per_rep,
            participants=participants,
            groups=resolve_groups(snapshot.mode, snapshot.participant_ids, snapshot.team_ids),
            complete=is_complete(tallies, snapshot.participant_ids, snapshot.repetition_target),
            settled_at=battle.settled_at,
            winner_id=battle.winner_id,
            snapshot=battle.settlement_snapshot,
            mvp_ids=mvp_ids,
        )
