"""
battlepulse.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Tables:
- students           — Contestants and their materialised point balance
- avatars            — Avatar catalogue (carries the MVP bonus percentage)
- student_avatars    — Which avatar each student has equipped
- battles            — Battle Pulse battles (duel / teams / lanes)
- battle_attempts    — Append-only repetition log per battle
- skill_rep_logs     — Reps logged on other skill trackers (anti-gaming window)
- ledger             — Append-only signed point journal
- battle_mvp_awards  — MVP membership, unique per (battle, student)
- settings           — Admin-configurable key-value store
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Battle Pulse ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class BattleMode(enum.StrEnum):
    """How a battle's winners are decided."""
    DUEL = "duel"
    TEAMS = "teams"
    LANES = "lanes"


class LedgerCategory(enum.StrEnum):
    """Ledger row categories written by settlement."""
    MANUAL = "manual"
    SYSTEM = "system"


# ---------------------------------------------------------------------------
# Students — one row per contestant
# ---------------------------------------------------------------------------
class Student(Base):
    __tablename__ = "students"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    points_total: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    avatar: Mapped[StudentAvatar | None] = relationship(
        back_populates="student", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Student id={self.id} name={self.name!r} points={self.points_total}>"


# ---------------------------------------------------------------------------
# Avatars — catalogue with MVP bonus modifier
# ---------------------------------------------------------------------------
class Avatar(Base):
    __tablename__ = "avatars"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    mvp_bonus_pct: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<Avatar id={self.id} name={self.name!r} mvp_bonus={self.mvp_bonus_pct}%>"


class StudentAvatar(Base):
    __tablename__ = "student_avatars"

    student_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("students.id", ondelete="CASCADE"), primary_key=True
    )
    avatar_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("avatars.id", ondelete="SET NULL"), nullable=True
    )

    student: Mapped[Student] = relationship(back_populates="avatar")
    avatar: Mapped[Avatar | None] = relationship()

    def __repr__(self) -> str:
        return f"<StudentAvatar student={self.student_id} avatar={self.avatar_id}>"


# ---------------------------------------------------------------------------
# Battles — one row per Battle Pulse battle
# ---------------------------------------------------------------------------
class Battle(Base):
    """A repetition battle between two or more students.

    ``participant_ids`` keeps the creation order, which is also the
    tie-break order used by settlement.  ``team_ids`` is an optional
    explicit partition (list of lists) for teams/lanes battles.
    ``settled_at`` is write-once: it is only ever set by the conditional
    update in :func:`battlepulse.services.settlement_service.settle_battle`.
    """
    __tablename__ = "battles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    mode: Mapped[str] = mapped_column(
        String(10), nullable=False, default=BattleMode.DUEL.value
    )
    skill_name: Mapped[str | None] = mapped_column(String(100), default=None)
    participant_ids: Mapped[list] = mapped_column(JSONB, nullable=False)
    team_ids: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    repetition_target: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    wager_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_per_rep: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    created_by: Mapped[str | None] = mapped_column(String(64), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    settled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    winner_id: Mapped[str | None] = mapped_column(String(36), default=None)
    settlement_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    attempts: Mapped[list[BattleAttempt]] = relationship(
        back_populates="battle", cascade="all, delete-orphan",
        order_by="BattleAttempt.id",
    )

    __table_args__ = (
        Index("ix_battles_settled_at", "settled_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Battle id={self.id} mode={self.mode!r} "
            f"settled={self.settled_at is not None}>"
        )


# ---------------------------------------------------------------------------
# BattleAttempt — append-only repetition log
# ---------------------------------------------------------------------------
class BattleAttempt(Base):
    __tablename__ = "battle_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    battle_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("battles.id", ondelete="CASCADE"), nullable=False
    )
    student_id: Mapped[str] = mapped_column(String(36), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(64), default=None)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    battle: Mapped[Battle] = relationship(back_populates="attempts")

    __table_args__ = (
        Index("ix_battle_attempts_battle_time", "battle_id", "occurred_at"),
        Index("ix_battle_attempts_operator_time", "created_by", "student_id", "occurred_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<BattleAttempt battle={self.battle_id} student={self.student_id} "
            f"success={self.success}>"
        )


# ---------------------------------------------------------------------------
# SkillRepLog — reps logged on a student's other skill trackers
# ---------------------------------------------------------------------------
class SkillRepLog(Base):
    """Repetitions logged outside battles.

    Only read by the anti-gaming window count; the skill tracker screens
    that write these rows live elsewhere.
    """
    __tablename__ = "skill_rep_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(String(36), nullable=False)
    tracker_name: Mapped[str | None] = mapped_column(String(100), default=None)
    success: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by: Mapped[str | None] = mapped_column(String(64), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_skill_rep_logs_operator_time", "created_by", "student_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<SkillRepLog id={self.id} student={self.student_id}>"


# ---------------------------------------------------------------------------
# LedgerEntry — append-only point journal
# ---------------------------------------------------------------------------
class LedgerEntry(Base):
    __tablename__ = "ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("students.id", ondelete="CASCADE"), nullable=False
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    points_base: Mapped[int | None] = mapped_column(Integer, nullable=True)
    points_multiplier: Mapped[float | None] = mapped_column(nullable=True)
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(
        String(30), nullable=False, default=LedgerCategory.MANUAL.value
    )
    source_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    source_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(64), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_ledger_student_time", "student_id", "created_at"),
        Index("ix_ledger_source", "source_type", "source_id"),
    )

    def __repr__(self) -> str:
        return f"<LedgerEntry id={self.id} student={self.student_id} points={self.points}>"


# ---------------------------------------------------------------------------
# BattleMvpAward — MVP membership per battle
# ---------------------------------------------------------------------------
class BattleMvpAward(Base):
    __tablename__ = "battle_mvp_awards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    battle_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("battles.id", ondelete="CASCADE"), nullable=False
    )
    student_id: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("battle_id", "student_id", name="uq_battle_mvp_awards_battle_student"),
    )

    def __repr__(self) -> str:
        return f"<BattleMvpAward battle={self.battle_id} student={self.student_id}>"


# ---------------------------------------------------------------------------
# Setting — admin-configurable key-value store
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value configuration store.

    Every settlement tuning knob (MVP thresholds, anti-gaming window, wager
    bounds) lives here so admins can adjust values without redeploying.
    Values are stored as JSON strings; typed access goes through
    :func:`battlepulse.services.settings_service.load_rules`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"
