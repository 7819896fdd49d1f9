from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import date, datetime, tzinfo

from streaks.engine.time import as_utc, local_date
from streaks.engine.types import StreakEvent


def group_events_by_day(
    events: Iterable[StreakEvent],
    *,
    now: datetime,
    zone: tzinfo,
) -> dict[date, list[StreakEvent]]:
    """Buckets events by local calendar day, leaving out anything after `now`."""
    now_utc = as_utc(now)
    buckets: dict[date, list[StreakEvent]] = defaultdict(list)
    for event in events:
        if event.timestamp_utc > now_utc:
            continue
        buckets[local_date(event.timestamp_utc, zone)].append(event)
    return dict(buckets)


def day_qualifies(day_events: list[StreakEvent], *, events_required_per_day: int) -> bool:
    if not day_events:
        return False
    if any(event.is_freeze for event in day_events):
        return True
    if events_required_per_day > 1:
        return len(day_events) >= events_required_per_day
    return True


def qualifying_days(
    events_by_day: Mapping[date, list[StreakEvent]],
    *,
    events_required_per_day: int,
) -> list[date]:
    return sorted(
        day
        for day, day_events in events_by_day.items()
        if day_qualifies(day_events, events_required_per_day=events_required_per_day)
    )
