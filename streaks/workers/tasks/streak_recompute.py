from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from streaks.core.config import get_settings
from streaks.core.logging import streak_log_context
from streaks.db.session import SessionLocal
from streaks.db.store import SqlStreakStore
from streaks.engine.codec import decode_configuration
from streaks.engine.types import StreakConfiguration
from streaks.services.redis_notifier import RedisSnapshotNotifier
from streaks.services.streak_recompute import recompute_streak
from streaks.workers.asyncio_runner import run_async_job
from streaks.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

SWEEP_BATCH_LIMIT = 500


def _clamp_schedule_seconds(value: int) -> int:
    return max(60, min(86400, int(value)))


async def _recompute_and_publish(
    store: SqlStreakStore,
    *,
    user_id: str,
    configuration: StreakConfiguration,
    timezone_name: str,
    now_utc: datetime,
) -> dict[str, Any]:
    settings = get_settings()
    with streak_log_context(user_id=user_id, streak_id=configuration.streak_id):
        calculation = await recompute_streak(
            store,
            user_id=user_id,
            configuration=configuration,
            now=now_utc,
            zone=timezone_name,
            recent_days=settings.streak_recent_events_days,
        )
        await store.save_configuration(user_id=user_id, configuration=configuration, timezone=timezone_name)
        receivers = await RedisSnapshotNotifier(settings.redis_url).publish(
            user_id=user_id,
            snapshot=calculation.snapshot,
        )
        logger.info("streak_snapshot_published", receivers=receivers)

    return {
        "user_id": user_id,
        "streak_id": configuration.streak_id,
        "current_streak": calculation.snapshot.current_streak,
        "longest_streak": calculation.snapshot.longest_streak,
        "freezes_consumed": len(calculation.freeze_consumptions),
        "receivers": receivers,
    }


async def recompute_user_streak_async(
    *,
    user_id: str,
    configuration_payload: dict[str, Any],
    timezone_name: str | None = None,
) -> dict[str, Any]:
    settings = get_settings()
    configuration = decode_configuration(configuration_payload)
    store = SqlStreakStore(SessionLocal)
    return await _recompute_and_publish(
        store,
        user_id=user_id,
        configuration=configuration,
        timezone_name=timezone_name or settings.streak_default_timezone,
        now_utc=datetime.now(timezone.utc),
    )


@celery_app.task(name="streaks.workers.tasks.streak_recompute.recompute_user_streak")
def recompute_user_streak(
    user_id: str,
    configuration: dict[str, Any],
    timezone_name: str | None = None,
) -> dict[str, Any]:
    return run_async_job(
        recompute_user_streak_async(
            user_id=user_id,
            configuration_payload=configuration,
            timezone_name=timezone_name,
        ),
        job_name="recompute_user_streak",
    )


async def run_streak_recompute_sweep_async(*, limit: int = SWEEP_BATCH_LIMIT) -> dict[str, object]:
    settings = get_settings()
    now_utc = datetime.now(timezone.utc)
    interval = timedelta(seconds=_clamp_schedule_seconds(settings.streak_recompute_interval_seconds))
    store = SqlStreakStore(SessionLocal)

    stale = await store.list_stale_streaks(updated_before=now_utc - interval, limit=limit)
    recomputed = 0
    error_count = 0
    for user_id, configuration, timezone_name in stale:
        try:
            await _recompute_and_publish(
                store,
                user_id=user_id,
                configuration=configuration,
                timezone_name=timezone_name or settings.streak_default_timezone,
                now_utc=now_utc,
            )
            recomputed += 1
        except Exception:
            error_count += 1
            logger.exception(
                "streak_recompute_sweep_item_failed",
                user_id=user_id,
                streak_id=configuration.streak_id,
            )

    result: dict[str, object] = {
        "candidates": len(stale),
        "recomputed": recomputed,
        "error_count": error_count,
    }
    if error_count:
        logger.warning("streak_recompute_sweep_finished_with_errors", **result)
    else:
        logger.info("streak_recompute_sweep_finished", **result)
    return result


@celery_app.task(name="streaks.workers.tasks.streak_recompute.run_streak_recompute_sweep")
def run_streak_recompute_sweep() -> dict[str, object]:
    return run_async_job(run_streak_recompute_sweep_async(), job_name="run_streak_recompute_sweep")


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "streak-recompute-sweep": {
            "task": "streaks.workers.tasks.streak_recompute.run_streak_recompute_sweep",
            "schedule": _clamp_schedule_seconds(get_settings().streak_recompute_interval_seconds),
            "options": {"queue": "q_streaks"},
        },
    }
)
