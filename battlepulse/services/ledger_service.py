"""
battlepulse.services.ledger_service — Balances, Ledger & MVP Persistence
=========================================================================

The storage collaborators of the settlement engine.  Every function takes
an open :class:`Session` and never commits: the caller owns the transaction
so a settlement's ledger rows, balance recomputes, MVP rows and snapshot
land together or not at all.

- balances           — ``students.points_total`` (read-only here)
- avatar bonus       — ``student_avatars → avatars.mvp_bonus_pct``
- ledger             — append-only, one batch per settlement
- balance recompute  — ``points_total = SUM(ledger.points)``
- MVP awards         — idempotent per (battle, student)
- rep window count   — anti-gaming input
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from battlepulse.constants import LEDGER_SOURCE_TYPE
from battlepulse.database.engine import get_session
from battlepulse.database.models import (
    Avatar,
    BattleAttempt,
    BattleMvpAward,
    LedgerEntry,
    SkillRepLog,
    Student,
    StudentAvatar,
)
from battlepulse.engine.settlement import LedgerLine
from battlepulse.errors import ParticipantNotFound

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_participant_balances(
    session: Session, ids: Sequence[str], *, lock: bool = False
) -> dict[str, int]:
    """Current balance per student, clamped at 0.  Unknown ids are omitted.

    With ``lock=True`` the rows are read ``FOR UPDATE`` in id order so no
    concurrent settlement can move them until the caller's transaction ends.
    """
    if not ids:
        return {}
    stmt = select(Student.id, Student.points_total).where(Student.id.in_(list(ids)))
    if lock:
        stmt = stmt.order_by(Student.id).with_for_update()
    return {row.id: max(0, int(row.points_total or 0)) for row in session.execute(stmt)}


def get_avatar_bonus_pct(session: Session, ids: Sequence[str]) -> dict[str, int]:
    """MVP bonus percentage per student from their equipped avatar.

    Students without an avatar get 0; values are clamped to [0, 100].
    """
    if not ids:
        return {}
    rows = session.execute(
        select(StudentAvatar.student_id, Avatar.mvp_bonus_pct)
        .join(Avatar, Avatar.id == StudentAvatar.avatar_id)
        .where(StudentAvatar.student_id.in_(list(ids)))
    ).all()
    pct = {pid: 0 for pid in ids}
    for row in rows:
        pct[row.student_id] = min(100, max(0, int(row.mvp_bonus_pct or 0)))
    return pct


def get_recent_rep_count(
    session: Session,
    operator_id: str,
    participant_ids: Sequence[str],
    since: datetime,
) -> int:
    """Reps *operator_id* logged for *participant_ids* since *since*.

    Counts battle attempts across every battle plus reps on the students'
    other skill trackers.
    """
    if not participant_ids:
        return 0
    ids = list(participant_ids)
    battle_reps = session.scalar(
        select(func.count(BattleAttempt.id)).where(
            BattleAttempt.created_by == operator_id,
            BattleAttempt.student_id.in_(ids),
            BattleAttempt.occurred_at >= since,
        )
    ) or 0
    skill_reps = session.scalar(
        select(func.count(SkillRepLog.id)).where(
            SkillRepLog.created_by == operator_id,
            SkillRepLog.student_id.in_(ids),
            SkillRepLog.created_at >= since,
        )
    ) or 0
    return int(battle_reps) + int(skill_reps)


def get_battle_ledger(session: Session, battle_id: str) -> list[LedgerEntry]:
    """Every ledger row written by a battle's settlement, oldest first."""
    return list(session.scalars(
        select(LedgerEntry)
        .where(
            LedgerEntry.source_type == LEDGER_SOURCE_TYPE,
            LedgerEntry.source_id == battle_id,
        )
        .order_by(LedgerEntry.id)
    ).all())


def get_mvp_ids(session: Session, battle_id: str) -> list[str]:
    return list(session.scalars(
        select(BattleMvpAward.student_id)
        .where(BattleMvpAward.battle_id == battle_id)
        .order_by(BattleMvpAward.id)
    ).all())


# ---------------------------------------------------------------------------
# Writes (caller commits)
# ---------------------------------------------------------------------------

def append_ledger_entries(
    session: Session,
    lines: Iterable[LedgerLine],
    *,
    battle_id: str,
    created_by: str | None,
) -> list[LedgerEntry]:
    """Append one ledger row per line in a single flush."""
    rows = [
        LedgerEntry(
            student_id=line.participant_id,
            points=line.points,
            points_base=line.points_base,
            points_multiplier=line.points_multiplier,
            note=line.note,
            category=line.category,
            source_type=LEDGER_SOURCE_TYPE,
            source_id=battle_id,
            created_by=created_by,
        )
        for line in lines
    ]
    if rows:
        session.add_all(rows)
        session.flush()
    return rows


def recompute_balance(session: Session, student_id: str) -> int:
    """Materialise ``points_total`` as the sum of the student's ledger rows."""
    total = session.scalar(
        select(func.coalesce(func.sum(LedgerEntry.points), 0)).where(
            LedgerEntry.student_id == student_id
        )
    ) or 0
    session.execute(
        update(Student).where(Student.id == student_id).values(points_total=int(total))
    )
    return int(total)


def upsert_mvp_awards(
    session: Session, battle_id: str, student_ids: Iterable[str]
) -> int:
    """Record MVP membership; pairs already present are left alone.

    Returns the number of newly inserted rows.
    """
    wanted = list(dict.fromkeys(student_ids))
    if not wanted:
        return 0
    existing = set(session.scalars(
        select(BattleMvpAward.student_id).where(
            BattleMvpAward.battle_id == battle_id,
            BattleMvpAward.student_id.in_(wanted),
        )
    ).all())
    new_rows = [
        BattleMvpAward(battle_id=battle_id, student_id=sid)
        for sid in wanted if sid not in existing
    ]
    if new_rows:
        session.add_all(new_rows)
        session.flush()
    return len(new_rows)


def award_manual(
    engine,
    *,
    student_id: str,
    points: int,
    reason: str = "",
    admin_id: str | None = None,
) -> int:
    """Append a manual ledger row outside any battle and return the new balance."""
    with get_session(engine) as session:
        if session.get(Student, student_id) is None:
            raise ParticipantNotFound(student_id)
        session.add(LedgerEntry(
            student_id=student_id,
            points=points,
            note=reason,
            category="manual",
            created_by=admin_id,
        ))
        session.flush()
        balance = recompute_balance(session, student_id)
    logger.info("Manual award %+d → %s (balance %d)", points, student_id, balance)
    return balance
