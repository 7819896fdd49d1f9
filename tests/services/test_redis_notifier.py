from __future__ import annotations

import json
from typing import Any

import pytest

from streaks.engine.codec import encode_snapshot
from streaks.engine.types import StreakSnapshot
from streaks.services import redis_notifier
from streaks.services.redis_notifier import RedisSnapshotNotifier, snapshot_channel_name


class FakePubSub:
    def __init__(self, messages: list[dict[str, Any]]) -> None:
        self._messages = messages
        self.subscribed: list[str] = []
        self.unsubscribed: list[str] = []
        self.closed = False

    async def subscribe(self, channel: str) -> None:
        self.subscribed.append(channel)

    async def unsubscribe(self, channel: str) -> None:
        self.unsubscribed.append(channel)

    async def listen(self):
        for message in self._messages:
            yield message

    async def aclose(self) -> None:
        self.closed = True


class FakeRedis:
    instances: list[FakeRedis] = []
    messages: list[dict[str, Any]] = []

    def __init__(self, url: str) -> None:
        self.url = url
        self.published: list[tuple[str, str]] = []
        self.closed = False
        self.pubsub_client = FakePubSub(FakeRedis.messages)
        FakeRedis.instances.append(self)

    @classmethod
    def from_url(cls, url: str) -> FakeRedis:
        return cls(url)

    async def publish(self, channel: str, payload: str) -> int:
        self.published.append((channel, payload))
        return 1

    def pubsub(self, *, ignore_subscribe_messages: bool = False) -> FakePubSub:
        return self.pubsub_client

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch) -> None:
    FakeRedis.instances = []
    FakeRedis.messages = []
    monkeypatch.setattr(redis_notifier, "Redis", FakeRedis)


def test_snapshot_channel_name() -> None:
    assert snapshot_channel_name(user_id="u1", streak_id="daily") == "streaks:snapshots:u1:daily"


@pytest.mark.asyncio
async def test_publish_sends_snapshot_with_user_id() -> None:
    notifier = RedisSnapshotNotifier("redis://localhost:6379/0")
    snapshot = StreakSnapshot(streak_id="daily", current_streak=2, longest_streak=2)

    receivers = await notifier.publish(user_id="u1", snapshot=snapshot)

    assert receivers == 1
    client = FakeRedis.instances[0]
    channel, payload = client.published[0]
    assert channel == "streaks:snapshots:u1:daily"
    assert json.loads(payload)["user_id"] == "u1"
    assert client.closed is True


@pytest.mark.asyncio
async def test_stream_snapshots_skips_invalid_messages() -> None:
    valid = StreakSnapshot(streak_id="daily", user_id="u1", current_streak=1, longest_streak=1)
    FakeRedis.messages = [
        {"type": "subscribe", "data": 1},
        {"type": "message", "data": "not json"},
        {"type": "message", "data": json.dumps({"current_streak": 3})},
        {"type": "message", "data": json.dumps(encode_snapshot(valid))},
    ]
    notifier = RedisSnapshotNotifier("redis://localhost:6379/0")

    received = [snapshot async for snapshot in notifier.stream_snapshots(user_id="u1", streak_id="daily")]

    assert received == [valid]
    client = FakeRedis.instances[0]
    assert client.pubsub_client.subscribed == ["streaks:snapshots:u1:daily"]
    assert client.pubsub_client.unsubscribed == ["streaks:snapshots:u1:daily"]
    assert client.pubsub_client.closed is True
    assert client.closed is True
