from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from streaks.engine.types import StreakSnapshot


class SnapshotChannel:
    """Fan-out of published snapshots; a new subscriber first receives the latest one."""

    def __init__(self) -> None:
        self._latest: StreakSnapshot | None = None
        self._subscribers: set[asyncio.Queue[StreakSnapshot | None]] = set()
        self._closed = False

    @property
    def latest(self) -> StreakSnapshot | None:
        return self._latest

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, snapshot: StreakSnapshot) -> None:
        self._latest = snapshot
        for queue in list(self._subscribers):
            queue.put_nowait(snapshot)

    def close(self) -> None:
        self._closed = True
        for queue in list(self._subscribers):
            queue.put_nowait(None)

    async def subscribe(self) -> AsyncIterator[StreakSnapshot]:
        queue: asyncio.Queue[StreakSnapshot | None] = asyncio.Queue()
        if self._latest is not None:
            queue.put_nowait(self._latest)
        if self._closed:
            queue.put_nowait(None)
        self._subscribers.add(queue)
        try:
            while True:
                snapshot = await queue.get()
                if snapshot is None:
                    return
                yield snapshot
        finally:
            self._subscribers.discard(queue)
