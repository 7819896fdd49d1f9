from __future__ import annotations

from collections import defaultdict
from collections.abc import AsyncIterator
from datetime import datetime

from streaks.engine.errors import FreezeAlreadyUsedError, FreezeNotFoundError
from streaks.engine.types import FreezeConsumption, StreakConfiguration, StreakEvent, StreakFreeze, StreakSnapshot
from streaks.services.channel import SnapshotChannel

StoreKey = tuple[str, str]


class InMemoryStreakStore:
    """Process-local store that also pushes saved snapshots to listeners."""

    def __init__(self) -> None:
        self._events: dict[StoreKey, dict[str, StreakEvent]] = defaultdict(dict)
        self._freezes: dict[StoreKey, dict[str, StreakFreeze]] = defaultdict(dict)
        self._snapshots: dict[StoreKey, StreakSnapshot] = {}
        self._configurations: dict[StoreKey, tuple[StreakConfiguration, str]] = {}
        self._channels: dict[StoreKey, SnapshotChannel] = defaultdict(SnapshotChannel)

    async def list_events(self, *, user_id: str, streak_id: str) -> list[StreakEvent]:
        return sorted(
            self._events[(user_id, streak_id)].values(),
            key=lambda event: (event.timestamp_utc, event.id),
        )

    async def add_event(self, *, user_id: str, streak_id: str, event: StreakEvent) -> None:
        self._events[(user_id, streak_id)][event.id] = event

    async def delete_all_events(self, *, user_id: str, streak_id: str) -> None:
        self._events.pop((user_id, streak_id), None)

    async def list_freezes(self, *, user_id: str, streak_id: str) -> list[StreakFreeze]:
        return list(self._freezes[(user_id, streak_id)].values())

    async def add_freeze(self, *, user_id: str, streak_id: str, freeze: StreakFreeze) -> None:
        self._freezes[(user_id, streak_id)][freeze.id] = freeze

    async def mark_freeze_used(
        self,
        *,
        user_id: str,
        streak_id: str,
        freeze_id: str,
        used_at: datetime,
    ) -> StreakFreeze:
        freezes = self._freezes[(user_id, streak_id)]
        freeze = freezes.get(freeze_id)
        if freeze is None:
            raise FreezeNotFoundError(f"freeze {freeze_id!r} does not exist")
        if freeze.is_used:
            raise FreezeAlreadyUsedError(f"freeze {freeze_id!r} was already used")
        used = freeze.mark_used(used_at)
        freezes[freeze_id] = used
        return used

    async def consume_freeze(
        self,
        *,
        user_id: str,
        streak_id: str,
        consumption: FreezeConsumption,
        event: StreakEvent,
        used_at: datetime,
    ) -> StreakFreeze:
        freezes = self._freezes[(user_id, streak_id)]
        freeze = freezes.get(consumption.freeze_id)
        if freeze is None:
            raise FreezeNotFoundError(f"freeze {consumption.freeze_id!r} does not exist")
        if freeze.is_used:
            raise FreezeAlreadyUsedError(f"freeze {consumption.freeze_id!r} was already used")
        used = freeze.mark_used(used_at)
        freezes[consumption.freeze_id] = used
        self._events[(user_id, streak_id)][event.id] = event
        return used

    async def get_snapshot(self, *, user_id: str, streak_id: str) -> StreakSnapshot | None:
        return self._snapshots.get((user_id, streak_id))

    async def save_snapshot(self, *, user_id: str, snapshot: StreakSnapshot) -> None:
        key = (user_id, snapshot.streak_id)
        self._snapshots[key] = snapshot
        self._channels[key].publish(snapshot)

    async def save_configuration(
        self,
        *,
        user_id: str,
        configuration: StreakConfiguration,
        timezone: str,
    ) -> bool:
        key = (user_id, configuration.streak_id)
        if key not in self._snapshots:
            return False
        self._configurations[key] = (configuration, timezone)
        return True

    async def get_configuration(
        self,
        *,
        user_id: str,
        streak_id: str,
    ) -> tuple[StreakConfiguration, str | None] | None:
        return self._configurations.get((user_id, streak_id))

    def stream_snapshots(self, *, user_id: str, streak_id: str) -> AsyncIterator[StreakSnapshot]:
        return self._channels[(user_id, streak_id)].subscribe()
