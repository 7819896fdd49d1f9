from __future__ import annotations

from dataclasses import replace
from datetime import datetime, tzinfo

import structlog

from streaks.engine.calculator import build_freeze_event, calculate_streak, merge_longest_streak
from streaks.engine.constants import DEFAULT_TIMEZONE, RECENT_EVENTS_DAYS
from streaks.engine.time import UTC, as_utc, resolve_zone
from streaks.engine.types import StreakCalculation, StreakConfiguration
from streaks.services.analytics import EVENT_FREEZE_AUTO_CONSUMED
from streaks.services.ports import AnalyticsLogger, StreakStore

logger = structlog.get_logger(__name__)


async def recompute_streak(
    store: StreakStore,
    *,
    user_id: str,
    configuration: StreakConfiguration,
    now: datetime | None = None,
    zone: str | tzinfo = DEFAULT_TIMEZONE,
    recent_days: int = RECENT_EVENTS_DAYS,
    analytics: AnalyticsLogger | None = None,
) -> StreakCalculation:
    evaluated_at = as_utc(now) if now is not None else datetime.now(UTC)
    calc_zone = resolve_zone(zone)
    streak_id = configuration.streak_id

    events = await store.list_events(user_id=user_id, streak_id=streak_id)
    freezes = await store.list_freezes(user_id=user_id, streak_id=streak_id)
    calculation = calculate_streak(
        events,
        freezes,
        configuration=configuration,
        now=evaluated_at,
        zone=calc_zone,
        user_id=user_id,
        recent_days=recent_days,
    )

    if calculation.freeze_consumptions:
        for consumption in calculation.freeze_consumptions:
            await store.consume_freeze(
                user_id=user_id,
                streak_id=streak_id,
                consumption=consumption,
                event=build_freeze_event(consumption, zone=calc_zone),
                used_at=evaluated_at,
            )
            if analytics is not None:
                analytics.track(
                    EVENT_FREEZE_AUTO_CONSUMED,
                    user_id=user_id,
                    streak_id=streak_id,
                    freeze_id=consumption.freeze_id,
                    day=consumption.day.isoformat(),
                )

        # Re-read so the stored synthetic events and used freezes shape the final snapshot.
        events = await store.list_events(user_id=user_id, streak_id=streak_id)
        freezes = await store.list_freezes(user_id=user_id, streak_id=streak_id)
        settled = calculate_streak(
            events,
            freezes,
            configuration=configuration,
            now=evaluated_at,
            zone=calc_zone,
            user_id=user_id,
            recent_days=recent_days,
        )
        calculation = replace(calculation, snapshot=settled.snapshot)

    existing = await store.get_snapshot(user_id=user_id, streak_id=streak_id)
    snapshot = merge_longest_streak(
        existing.longest_streak if existing is not None else None,
        calculation.snapshot,
    )
    await store.save_snapshot(user_id=user_id, snapshot=snapshot)

    logger.info(
        "streak_recomputed",
        user_id=user_id,
        streak_id=streak_id,
        current_streak=snapshot.current_streak,
        longest_streak=snapshot.longest_streak,
        freezes_consumed=len(calculation.freeze_consumptions),
    )
    return replace(calculation, snapshot=snapshot)
