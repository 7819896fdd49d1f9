from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from streaks.db.models.streak_events import StreakEventRow


class StreakEventsRepo:
    @staticmethod
    async def list_for_streak(session: AsyncSession, *, user_id: str, streak_id: str) -> list[StreakEventRow]:
        stmt = (
            select(StreakEventRow)
            .where(StreakEventRow.user_id == user_id, StreakEventRow.streak_id == streak_id)
            .order_by(StreakEventRow.timestamp.asc(), StreakEventRow.event_id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def upsert(
        session: AsyncSession,
        *,
        user_id: str,
        streak_id: str,
        event_id: str,
        timestamp: datetime,
        timezone: str,
        is_freeze: bool,
        freeze_id: str | None,
        metadata: dict[str, Any],
        now_utc: datetime,
    ) -> StreakEventRow:
        row = await session.get(StreakEventRow, (user_id, streak_id, event_id))
        if row is None:
            row = StreakEventRow(
                user_id=user_id,
                streak_id=streak_id,
                event_id=event_id,
                created_at=now_utc,
            )
            session.add(row)

        row.timestamp = timestamp
        row.timezone = timezone
        row.is_freeze = is_freeze
        row.freeze_id = freeze_id
        row.metadata_json = metadata
        await session.flush()
        return row

    @staticmethod
    async def delete_for_streak(session: AsyncSession, *, user_id: str, streak_id: str) -> int:
        stmt = delete(StreakEventRow).where(
            StreakEventRow.user_id == user_id,
            StreakEventRow.streak_id == streak_id,
        )
        result = await session.execute(stmt)
        return int(result.rowcount or 0)
