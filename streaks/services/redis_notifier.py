from __future__ import annotations

import json
from collections.abc import AsyncIterator

import structlog
from redis.asyncio import Redis

from streaks.engine.codec import decode_snapshot, encode_snapshot
from streaks.engine.errors import SnapshotDecodeError
from streaks.engine.types import StreakSnapshot

logger = structlog.get_logger(__name__)

CHANNEL_PREFIX = "streaks:snapshots"


def snapshot_channel_name(*, user_id: str, streak_id: str) -> str:
    return f"{CHANNEL_PREFIX}:{user_id}:{streak_id}"


class RedisSnapshotNotifier:
    """Pushes server-computed snapshots to clients over Redis pub/sub."""

    def __init__(self, redis_url: str) -> None:
        self._redis_url = redis_url

    async def publish(self, *, user_id: str, snapshot: StreakSnapshot) -> int:
        redis_client = Redis.from_url(self._redis_url)
        try:
            payload = json.dumps(encode_snapshot(snapshot.with_user_id(user_id)), sort_keys=True)
            return int(
                await redis_client.publish(
                    snapshot_channel_name(user_id=user_id, streak_id=snapshot.streak_id),
                    payload,
                )
            )
        finally:
            await redis_client.aclose()

    async def stream_snapshots(self, *, user_id: str, streak_id: str) -> AsyncIterator[StreakSnapshot]:
        redis_client = Redis.from_url(self._redis_url)
        pubsub = redis_client.pubsub(ignore_subscribe_messages=True)
        channel = snapshot_channel_name(user_id=user_id, streak_id=streak_id)
        try:
            await pubsub.subscribe(channel)
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    snapshot = decode_snapshot(json.loads(message["data"]))
                except (json.JSONDecodeError, SnapshotDecodeError) as exc:
                    logger.warning("streak_snapshot_message_invalid", channel=channel, error=str(exc))
                    continue
                yield snapshot
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
            await redis_client.aclose()
