from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from streaks.db.models.streak_snapshots import StreakSnapshotRow


class StreakSnapshotsRepo:
    @staticmethod
    async def get(session: AsyncSession, *, user_id: str, streak_id: str) -> StreakSnapshotRow | None:
        return await session.get(StreakSnapshotRow, (user_id, streak_id))

    @staticmethod
    async def upsert(
        session: AsyncSession,
        *,
        user_id: str,
        streak_id: str,
        current_streak: int,
        longest_streak: int,
        payload: dict[str, Any],
        now_utc: datetime,
    ) -> StreakSnapshotRow:
        row = await session.get(StreakSnapshotRow, (user_id, streak_id))
        if row is None:
            row = StreakSnapshotRow(user_id=user_id, streak_id=streak_id, version=0)
            session.add(row)
        else:
            row.version += 1

        row.current_streak = current_streak
        row.longest_streak = longest_streak
        row.payload = payload
        row.updated_at = now_utc
        await session.flush()
        return row

    @staticmethod
    async def set_configuration(
        session: AsyncSession,
        *,
        user_id: str,
        streak_id: str,
        configuration: dict[str, Any],
    ) -> StreakSnapshotRow | None:
        row = await session.get(StreakSnapshotRow, (user_id, streak_id))
        if row is None:
            return None
        row.configuration = configuration
        await session.flush()
        return row

    @staticmethod
    async def list_stale(
        session: AsyncSession,
        *,
        updated_before: datetime,
        limit: int,
    ) -> list[StreakSnapshotRow]:
        stmt = (
            select(StreakSnapshotRow)
            .where(
                StreakSnapshotRow.updated_at < updated_before,
                StreakSnapshotRow.configuration.is_not(None),
            )
            .order_by(StreakSnapshotRow.updated_at.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
