from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from streaks.db.models.base import Base


class StreakEventRow(Base):
    __tablename__ = "streak_events"
    __table_args__ = (Index("idx_streak_events_user_streak_ts", "user_id", "streak_id", "timestamp"),)

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    streak_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    event_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)
    is_freeze: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    freeze_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    metadata_json: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
