from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any, Protocol

from streaks.engine.types import FreezeConsumption, StreakConfiguration, StreakEvent, StreakFreeze, StreakSnapshot


class StreakStore(Protocol):
    """Durable history for one user's streaks: raw events, freezes and the last snapshot."""

    async def list_events(self, *, user_id: str, streak_id: str) -> list[StreakEvent]: ...

    async def add_event(self, *, user_id: str, streak_id: str, event: StreakEvent) -> None: ...

    async def delete_all_events(self, *, user_id: str, streak_id: str) -> None: ...

    async def list_freezes(self, *, user_id: str, streak_id: str) -> list[StreakFreeze]: ...

    async def add_freeze(self, *, user_id: str, streak_id: str, freeze: StreakFreeze) -> None: ...

    async def mark_freeze_used(
        self,
        *,
        user_id: str,
        streak_id: str,
        freeze_id: str,
        used_at: datetime,
    ) -> StreakFreeze:
        """Raises FreezeNotFoundError or FreezeAlreadyUsedError."""
        ...

    async def consume_freeze(
        self,
        *,
        user_id: str,
        streak_id: str,
        consumption: FreezeConsumption,
        event: StreakEvent,
        used_at: datetime,
    ) -> StreakFreeze:
        """Mark the freeze used and store its synthetic event together, or neither."""
        ...

    async def get_snapshot(self, *, user_id: str, streak_id: str) -> StreakSnapshot | None: ...

    async def save_snapshot(self, *, user_id: str, snapshot: StreakSnapshot) -> None: ...

    async def save_configuration(
        self,
        *,
        user_id: str,
        configuration: StreakConfiguration,
        timezone: str,
    ) -> bool: ...

    async def get_configuration(
        self,
        *,
        user_id: str,
        streak_id: str,
    ) -> tuple[StreakConfiguration, str | None] | None: ...


class SnapshotNotifier(Protocol):
    def stream_snapshots(self, *, user_id: str, streak_id: str) -> AsyncIterator[StreakSnapshot]: ...


class SnapshotCache(Protocol):
    def get(self, streak_id: str) -> StreakSnapshot | None: ...

    def set(self, snapshot: StreakSnapshot) -> None: ...

    def clear(self, streak_id: str) -> None: ...


class ServerCalculator(Protocol):
    async def request_recompute(self, *, user_id: str, configuration: StreakConfiguration) -> None: ...


class AnalyticsLogger(Protocol):
    def track(self, event_name: str, **fields: Any) -> None: ...
