from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from streaks.db.models.streak_events import StreakEventRow
from streaks.db.models.streak_freezes import StreakFreezeRow
from streaks.db.repo.streak_events_repo import StreakEventsRepo
from streaks.db.repo.streak_freezes_repo import StreakFreezesRepo
from streaks.db.repo.streak_snapshots_repo import StreakSnapshotsRepo
from streaks.engine.codec import decode_configuration, decode_snapshot, encode_configuration, encode_snapshot
from streaks.engine.errors import FreezeAlreadyUsedError, FreezeNotFoundError
from streaks.engine.metadata import decode_metadata, encode_metadata
from streaks.engine.time import UTC, as_utc
from streaks.engine.types import FreezeConsumption, StreakConfiguration, StreakEvent, StreakFreeze, StreakSnapshot


def _optional_utc(value: datetime | None) -> datetime | None:
    return as_utc(value) if value is not None else None


def _event_from_row(row: StreakEventRow) -> StreakEvent:
    return StreakEvent(
        id=row.event_id,
        timestamp=as_utc(row.timestamp),
        timezone=row.timezone,
        is_freeze=row.is_freeze,
        freeze_id=row.freeze_id,
        metadata=decode_metadata(row.metadata_json),
    )


def _freeze_from_row(row: StreakFreezeRow) -> StreakFreeze:
    return StreakFreeze(
        id=row.freeze_id,
        streak_id=row.streak_id,
        earned_date=_optional_utc(row.earned_date),
        used_date=_optional_utc(row.used_date),
        expires_at=_optional_utc(row.expires_at),
    )


async def _upsert_event(session: AsyncSession, *, user_id: str, streak_id: str, event: StreakEvent) -> None:
    await StreakEventsRepo.upsert(
        session,
        user_id=user_id,
        streak_id=streak_id,
        event_id=event.id,
        timestamp=event.timestamp_utc,
        timezone=event.timezone,
        is_freeze=event.is_freeze,
        freeze_id=event.freeze_id,
        metadata=encode_metadata(event.metadata),
        now_utc=datetime.now(UTC),
    )


class SqlStreakStore:
    """StreakStore over SQLAlchemy; every call runs in its own transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_events(self, *, user_id: str, streak_id: str) -> list[StreakEvent]:
        async with self._session_factory() as session:
            rows = await StreakEventsRepo.list_for_streak(session, user_id=user_id, streak_id=streak_id)
            return [_event_from_row(row) for row in rows]

    async def add_event(self, *, user_id: str, streak_id: str, event: StreakEvent) -> None:
        async with self._session_factory.begin() as session:
            await _upsert_event(session, user_id=user_id, streak_id=streak_id, event=event)

    async def delete_all_events(self, *, user_id: str, streak_id: str) -> None:
        async with self._session_factory.begin() as session:
            await StreakEventsRepo.delete_for_streak(session, user_id=user_id, streak_id=streak_id)

    async def list_freezes(self, *, user_id: str, streak_id: str) -> list[StreakFreeze]:
        async with self._session_factory() as session:
            rows = await StreakFreezesRepo.list_for_streak(session, user_id=user_id, streak_id=streak_id)
            return [_freeze_from_row(row) for row in rows]

    async def add_freeze(self, *, user_id: str, streak_id: str, freeze: StreakFreeze) -> None:
        async with self._session_factory.begin() as session:
            await StreakFreezesRepo.upsert(
                session,
                user_id=user_id,
                streak_id=streak_id,
                freeze_id=freeze.id,
                earned_date=_optional_utc(freeze.earned_date),
                used_date=_optional_utc(freeze.used_date),
                expires_at=_optional_utc(freeze.expires_at),
            )

    async def mark_freeze_used(
        self,
        *,
        user_id: str,
        streak_id: str,
        freeze_id: str,
        used_at: datetime,
    ) -> StreakFreeze:
        async with self._session_factory.begin() as session:
            row = await StreakFreezesRepo.get_for_update(
                session,
                user_id=user_id,
                streak_id=streak_id,
                freeze_id=freeze_id,
            )
            if row is None:
                raise FreezeNotFoundError(f"freeze {freeze_id!r} does not exist")
            if row.used_date is not None:
                raise FreezeAlreadyUsedError(f"freeze {freeze_id!r} was already used")
            row = await StreakFreezesRepo.mark_used(session, row=row, used_at=as_utc(used_at))
            return _freeze_from_row(row)

    async def consume_freeze(
        self,
        *,
        user_id: str,
        streak_id: str,
        consumption: FreezeConsumption,
        event: StreakEvent,
        used_at: datetime,
    ) -> StreakFreeze:
        async with self._session_factory.begin() as session:
            row = await StreakFreezesRepo.get_for_update(
                session,
                user_id=user_id,
                streak_id=streak_id,
                freeze_id=consumption.freeze_id,
            )
            if row is None:
                raise FreezeNotFoundError(f"freeze {consumption.freeze_id!r} does not exist")
            if row.used_date is not None:
                raise FreezeAlreadyUsedError(f"freeze {consumption.freeze_id!r} was already used")
            await _upsert_event(session, user_id=user_id, streak_id=streak_id, event=event)
            row = await StreakFreezesRepo.mark_used(session, row=row, used_at=as_utc(used_at))
            return _freeze_from_row(row)

    async def get_snapshot(self, *, user_id: str, streak_id: str) -> StreakSnapshot | None:
        async with self._session_factory() as session:
            row = await StreakSnapshotsRepo.get(session, user_id=user_id, streak_id=streak_id)
            if row is None:
                return None
            return decode_snapshot(row.payload)

    async def save_snapshot(self, *, user_id: str, snapshot: StreakSnapshot) -> None:
        async with self._session_factory.begin() as session:
            await StreakSnapshotsRepo.upsert(
                session,
                user_id=user_id,
                streak_id=snapshot.streak_id,
                current_streak=snapshot.current_streak,
                longest_streak=snapshot.longest_streak,
                payload=encode_snapshot(snapshot.with_user_id(user_id)),
                now_utc=snapshot.updated_at or datetime.now(UTC),
            )

    async def save_configuration(
        self,
        *,
        user_id: str,
        configuration: StreakConfiguration,
        timezone: str,
    ) -> bool:
        async with self._session_factory.begin() as session:
            row = await StreakSnapshotsRepo.set_configuration(
                session,
                user_id=user_id,
                streak_id=configuration.streak_id,
                configuration={**encode_configuration(configuration), "timezone": timezone},
            )
            return row is not None

    async def get_configuration(
        self,
        *,
        user_id: str,
        streak_id: str,
    ) -> tuple[StreakConfiguration, str | None] | None:
        async with self._session_factory() as session:
            row = await StreakSnapshotsRepo.get(session, user_id=user_id, streak_id=streak_id)
            if row is None or row.configuration is None:
                return None
            return decode_configuration(row.configuration), row.configuration.get("timezone")

    async def list_stale_streaks(
        self,
        *,
        updated_before: datetime,
        limit: int,
    ) -> list[tuple[str, StreakConfiguration, str | None]]:
        async with self._session_factory() as session:
            rows = await StreakSnapshotsRepo.list_stale(
                session,
                updated_before=as_utc(updated_before),
                limit=limit,
            )
            return [
                (
                    row.user_id,
                    decode_configuration(row.configuration or {}),
                    (row.configuration or {}).get("timezone"),
                )
                for row in rows
            ]
