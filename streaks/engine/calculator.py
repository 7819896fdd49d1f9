from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import date, datetime, timedelta, tzinfo

from streaks.engine.constants import RECENT_EVENTS_DAYS, SNAPSHOT_STALE_AFTER_SECONDS
from streaks.engine.grouping import group_events_by_day, qualifying_days
from streaks.engine.rules import available_freezes_fifo, longest_run, merge_longest, walk_current_streak
from streaks.engine.time import (
    UTC,
    as_utc,
    local_date,
    local_day_start,
    reference_day,
    resolve_zone,
    sunday_week_start,
    zone_name,
)
from streaks.engine.types import (
    FreezeConsumption,
    StreakCalculation,
    StreakConfiguration,
    StreakEvent,
    StreakFreeze,
    StreakSnapshot,
)


def _event_sort_key(event: StreakEvent) -> tuple[datetime, str]:
    return event.timestamp_utc, event.id


def _resolve_calculation_zone(zone: str | tzinfo | None, now: datetime) -> tzinfo:
    if zone is None:
        # Caller's local zone, as seen at the evaluation instant.
        local_zone = now.astimezone().tzinfo
        return local_zone if local_zone is not None else UTC
    return resolve_zone(zone)


def calculate_streak(
    events: Sequence[StreakEvent],
    freezes: Sequence[StreakFreeze] = (),
    *,
    configuration: StreakConfiguration,
    now: datetime | None = None,
    zone: str | tzinfo | None = None,
    user_id: str | None = None,
    recent_days: int = RECENT_EVENTS_DAYS,
) -> StreakCalculation:
    """Recomputes the full streak snapshot for one streak from its raw history.

    Returns the snapshot together with the freeze consumptions the walk relied on.
    The caller owns persisting both: marking each freeze used and, when it keeps
    a continuous history, storing a synthetic freeze event for each patched day.
    """
    evaluated_at = as_utc(now) if now is not None else datetime.now(UTC)
    calc_zone = _resolve_calculation_zone(zone, evaluated_at)
    available = available_freezes_fifo(freezes, now=evaluated_at)

    if not events:
        return StreakCalculation(
            snapshot=StreakSnapshot.blank(
                configuration.streak_id,
                user_id=user_id,
                events_required_per_day=configuration.events_required_per_day,
                freezes_remaining=len(available),
                updated_at=evaluated_at,
            )
        )

    events_by_day = group_events_by_day(events, now=evaluated_at, zone=calc_zone)
    qualifying = qualifying_days(events_by_day, events_required_per_day=configuration.events_required_per_day)

    run = walk_current_streak(
        qualifying,
        reference=reference_day(evaluated_at, calc_zone, configuration.leeway_hours),
        freezes=available,
        fill_gaps=configuration.auto_consumes_freezes,
    )

    today = local_date(evaluated_at, calc_zone)
    last_event = max(events, key=_event_sort_key)
    first_event = min(events, key=_event_sort_key)

    snapshot = StreakSnapshot(
        streak_id=configuration.streak_id,
        user_id=user_id,
        current_streak=run.length,
        longest_streak=merge_longest(longest_run(qualifying), run.length),
        last_event_date=last_event.timestamp_utc,
        last_event_timezone=last_event.timezone,
        streak_start_date=run.start_day if run.length > 0 else None,
        total_events=len(events),
        today_event_count=len(events_by_day.get(today, ())),
        events_required_per_day=configuration.events_required_per_day,
        freezes_remaining=len(available) - len(run.freeze_consumptions),
        created_at=first_event.timestamp_utc,
        updated_at=evaluated_at,
        recent_events=select_recent_events(
            events,
            now=evaluated_at,
            zone=calc_zone,
            leeway_hours=configuration.leeway_hours,
            days=recent_days,
        ),
    )
    return StreakCalculation(snapshot=snapshot, freeze_consumptions=run.freeze_consumptions)


def count_events_today(events: Iterable[StreakEvent], *, now: datetime, zone: tzinfo) -> int:
    return len(group_events_by_day(events, now=now, zone=zone).get(local_date(now, zone), ()))


def select_recent_events(
    events: Iterable[StreakEvent],
    *,
    now: datetime,
    zone: tzinfo,
    leeway_hours: int = 0,
    days: int = RECENT_EVENTS_DAYS,
) -> tuple[StreakEvent, ...]:
    if days <= 0:
        return ()

    now_utc = as_utc(now)
    today = local_date(now_utc, zone)
    cutoff = local_day_start(today - timedelta(days=days), zone) - timedelta(hours=leeway_hours)
    window = [event for event in events if cutoff <= event.timestamp_utc <= now_utc]

    adjusted = {event.id: reference_day(event.timestamp_utc, zone, leeway_hours) for event in window}
    kept_days = set(sorted(set(adjusted.values()))[-days:])
    return tuple(sorted((event for event in window if adjusted[event.id] in kept_days), key=_event_sort_key))


def calendar_days_with_events(snapshot: StreakSnapshot, *, zone: tzinfo, leeway_hours: int = 0) -> list[date]:
    return sorted({reference_day(event.timestamp_utc, zone, leeway_hours) for event in snapshot.recent_events})


def calendar_days_with_events_this_week(
    snapshot: StreakSnapshot,
    *,
    now: datetime,
    zone: tzinfo,
    leeway_hours: int = 0,
) -> list[date]:
    today = local_date(now, zone)
    week_start = sunday_week_start(today)
    return [
        day
        for day in calendar_days_with_events(snapshot, zone=zone, leeway_hours=leeway_hours)
        if week_start <= day <= today
    ]


def merge_longest_streak(existing_longest: int | None, snapshot: StreakSnapshot) -> StreakSnapshot:
    merged = merge_longest(existing_longest, snapshot.longest_streak)
    if merged == snapshot.longest_streak:
        return snapshot
    return replace(snapshot, longest_streak=merged)


def is_snapshot_stale(snapshot: StreakSnapshot, *, now: datetime) -> bool:
    if snapshot.updated_at is None:
        return True
    elapsed = as_utc(now) - as_utc(snapshot.updated_at)
    return elapsed.total_seconds() >= SNAPSHOT_STALE_AFTER_SECONDS


def build_freeze_event(consumption: FreezeConsumption, *, zone: tzinfo) -> StreakEvent:
    """Synthetic event that marks a freeze-patched day as qualifying in stored history."""
    return StreakEvent(
        id=f"freeze_{consumption.freeze_id}",
        timestamp=local_day_start(consumption.day, zone),
        timezone=zone_name(zone),
        is_freeze=True,
        freeze_id=consumption.freeze_id,
    )
