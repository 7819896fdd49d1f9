from __future__ import annotations

import asyncio

import structlog

from streaks.engine.codec import encode_configuration
from streaks.engine.types import StreakConfiguration
from streaks.workers.tasks.streak_recompute import recompute_user_streak

logger = structlog.get_logger(__name__)


class CeleryServerCalculator:
    """Queues authoritative recomputes; results come back through the snapshot notifier."""

    def __init__(self, *, timezone_name: str | None = None) -> None:
        self._timezone_name = timezone_name

    async def request_recompute(self, *, user_id: str, configuration: StreakConfiguration) -> None:
        result = await asyncio.to_thread(
            recompute_user_streak.delay,
            user_id,
            encode_configuration(configuration),
            self._timezone_name,
        )
        logger.info(
            "streak_recompute_requested",
            user_id=user_id,
            streak_id=configuration.streak_id,
            task_id=result.id,
        )
