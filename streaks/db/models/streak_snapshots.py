from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from streaks.db.models.base import Base


class StreakSnapshotRow(Base):
    __tablename__ = "streak_snapshots"
    __table_args__ = (
        Index("idx_streak_snapshots_updated_at", "updated_at"),
        CheckConstraint("current_streak >= 0", name="current_streak_non_negative"),
        CheckConstraint("longest_streak >= current_streak", name="longest_covers_current"),
    )

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    streak_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    configuration: Mapped[dict[str, Any] | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
