"""Create Battle Pulse schema

Revision ID: 5c2e9a7d41b3
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c2e9a7d41b3"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    """Students, avatars, battles, attempts, ledger, MVP awards and settings."""
    op.create_table(
        "students",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("points_total", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
    )

    op.create_table(
        "avatars",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("mvp_bonus_pct", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "student_avatars",
        sa.Column(
            "student_id",
            sa.String(36),
            sa.ForeignKey("students.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "avatar_id",
            sa.String(36),
            sa.ForeignKey("avatars.id", ondelete="SET NULL"),
            nullable=True,
        ),
    )

    op.create_table(
        "battles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("mode", sa.String(10), nullable=False, server_default="duel"),
        sa.Column("skill_name", sa.String(100), nullable=True),
        sa.Column("participant_ids", postgresql.JSONB(), nullable=False),
        sa.Column("team_ids", postgresql.JSONB(), nullable=True),
        sa.Column("repetition_target", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("wager_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points_per_rep", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("created_by", sa.String(64), nullable=True),
        _created_at(),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("winner_id", sa.String(36), nullable=True),
        sa.Column("settlement_snapshot", postgresql.JSONB(), nullable=True),
    )
    op.create_index("ix_battles_settled_at", "battles", ["settled_at"])

    op.create_table(
        "battle_attempts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "battle_id",
            sa.String(36),
            sa.ForeignKey("battles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("student_id", sa.String(36), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=True),
        _created_at("occurred_at"),
    )
    op.create_index(
        "ix_battle_attempts_battle_time", "battle_attempts", ["battle_id", "occurred_at"]
    )
    op.create_index(
        "ix_battle_attempts_operator_time",
        "battle_attempts",
        ["created_by", "student_id", "occurred_at"],
    )

    op.create_table(
        "skill_rep_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.String(36), nullable=False),
        sa.Column("tracker_name", sa.String(100), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.String(64), nullable=True),
        _created_at(),
    )
    op.create_index(
        "ix_skill_rep_logs_operator_time",
        "skill_rep_logs",
        ["created_by", "student_id", "created_at"],
    )

    op.create_table(
        "ledger",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "student_id",
            sa.String(36),
            sa.ForeignKey("students.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("points_base", sa.Integer(), nullable=True),
        sa.Column("points_multiplier", sa.Float(), nullable=True),
        sa.Column("note", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(30), nullable=False, server_default="manual"),
        sa.Column("source_type", sa.String(30), nullable=True),
        sa.Column("source_id", sa.String(36), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        _created_at(),
    )
    op.create_index("ix_ledger_student_time", "ledger", ["student_id", "created_at"])
    op.create_index("ix_ledger_source", "ledger", ["source_type", "source_id"])

    op.create_table(
        "battle_mvp_awards",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "battle_id",
            sa.String(36),
            sa.ForeignKey("battles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("student_id", sa.String(36), nullable=False),
        _created_at(),
        sa.UniqueConstraint(
            "battle_id", "student_id", name="uq_battle_mvp_awards_battle_student"
        ),
    )

    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text(), nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_settings_category", "settings", ["category"])


def downgrade() -> None:
    """Drop the Battle Pulse schema."""
    op.drop_index("ix_settings_category", table_name="settings")
    op.drop_table("settings")
    op.drop_table("battle_mvp_awards")
    op.drop_index("ix_ledger_source", table_name="ledger")
    op.drop_index("ix_ledger_student_time", table_name="ledger")
    op.drop_table("ledger")
    op.drop_index("ix_skill_rep_logs_operator_time", table_name="skill_rep_logs")
    op.drop_table("skill_rep_logs")
    op.drop_index("ix_battle_attempts_operator_time", table_name="battle_attempts")
    op.drop_index("ix_battle_attempts_battle_time", table_name="battle_attempts")
    op.drop_table("battle_attempts")
    op.drop_index("ix_battles_settled_at", table_name="battles")
    op.drop_table("battles")
    op.drop_table("student_avatars")
    op.drop_table("avatars")
    op.drop_table("students")
