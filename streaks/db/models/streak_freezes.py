from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from streaks.db.models.base import Base


class StreakFreezeRow(Base):
    __tablename__ = "streak_freezes"
    __table_args__ = (
        CheckConstraint(
            "used_date IS NULL OR earned_date IS NULL OR used_date >= earned_date",
            name="used_after_earned",
        ),
    )

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    streak_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    freeze_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    earned_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    used_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
