"""streak_tables

Revision ID: 5c1e2d3f4a60
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "5c1e2d3f4a60"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "streak_events",
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("streak_id", sa.String(64), nullable=False),
        sa.Column("event_id", sa.String(128), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False),
        sa.Column("is_freeze", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("freeze_id", sa.String(128), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("user_id", "streak_id", "event_id", name="pk_streak_events"),
    )
    op.create_index(
        "idx_streak_events_user_streak_ts",
        "streak_events",
        ["user_id", "streak_id", "timestamp"],
    )

    op.create_table(
        "streak_freezes",
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("streak_id", sa.String(64), nullable=False),
        sa.Column("freeze_id", sa.String(128), nullable=False),
        sa.Column("earned_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("used_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "used_date IS NULL OR earned_date IS NULL OR used_date >= earned_date",
            name="ck_streak_freezes_used_after_earned",
        ),
        sa.PrimaryKeyConstraint("user_id", "streak_id", "freeze_id", name="pk_streak_freezes"),
    )

    op.create_table(
        "streak_snapshots",
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("streak_id", sa.String(64), nullable=False),
        sa.Column("current_streak", sa.Integer(), nullable=False),
        sa.Column("longest_streak", sa.Integer(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("configuration", sa.JSON(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("current_streak >= 0", name="ck_streak_snapshots_current_streak_non_negative"),
        sa.CheckConstraint(
            "longest_streak >= current_streak",
            name="ck_streak_snapshots_longest_covers_current",
        ),
        sa.PrimaryKeyConstraint("user_id", "streak_id", name="pk_streak_snapshots"),
    )
    op.create_index("idx_streak_snapshots_updated_at", "streak_snapshots", ["updated_at"])


def downgrade() -> None:
    op.drop_index("idx_streak_snapshots_updated_at", table_name="streak_snapshots")
    op.drop_table("streak_snapshots")
    op.drop_table("streak_freezes")
    op.drop_index("idx_streak_events_user_streak_ts", table_name="streak_events")
    op.drop_table("streak_events")
