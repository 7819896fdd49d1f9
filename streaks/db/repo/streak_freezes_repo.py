from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from streaks.db.models.streak_freezes import StreakFreezeRow


class StreakFreezesRepo:
    @staticmethod
    async def list_for_streak(session: AsyncSession, *, user_id: str, streak_id: str) -> list[StreakFreezeRow]:
        stmt = (
            select(StreakFreezeRow)
            .where(StreakFreezeRow.user_id == user_id, StreakFreezeRow.streak_id == streak_id)
            .order_by(StreakFreezeRow.earned_date.asc(), StreakFreezeRow.freeze_id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_for_update(
        session: AsyncSession,
        *,
        user_id: str,
        streak_id: str,
        freeze_id: str,
    ) -> StreakFreezeRow | None:
        stmt = (
            select(StreakFreezeRow)
            .where(
                StreakFreezeRow.user_id == user_id,
                StreakFreezeRow.streak_id == streak_id,
                StreakFreezeRow.freeze_id == freeze_id,
            )
            .with_for_update()
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def upsert(
        session: AsyncSession,
        *,
        user_id: str,
        streak_id: str,
        freeze_id: str,
        earned_date: datetime | None,
        used_date: datetime | None,
        expires_at: datetime | None,
    ) -> StreakFreezeRow:
        row = await session.get(StreakFreezeRow, (user_id, streak_id, freeze_id))
        if row is None:
            row = StreakFreezeRow(user_id=user_id, streak_id=streak_id, freeze_id=freeze_id)
            session.add(row)

        row.earned_date = earned_date
        row.used_date = used_date
        row.expires_at = expires_at
        await session.flush()
        return row

    @staticmethod
    async def mark_used(session: AsyncSession, *, row: StreakFreezeRow, used_at: datetime) -> StreakFreezeRow:
        row.used_date = used_at
        await session.flush()
        return row
