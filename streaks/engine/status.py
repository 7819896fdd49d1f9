from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta, tzinfo

from streaks.engine.rules import available_freezes_fifo
from streaks.engine.time import days_between, local_date, reference_day
from streaks.engine.types import (
    FreezeConsumption,
    ManualFreezeStatus,
    StreakFreeze,
    StreakSnapshot,
    StreakStatus,
    StreakStatusKind,
)


def days_since_last_event(last_event_date: datetime | None, *, now: datetime, zone: tzinfo) -> int | None:
    if last_event_date is None:
        return None
    return days_between(local_date(last_event_date, zone), local_date(now, zone))


def classify_streak_status(last_event_date: datetime | None, *, now: datetime, zone: tzinfo) -> StreakStatus:
    """Coarse badge state from the last event alone; no goal, leeway or freeze logic."""
    days_since = days_since_last_event(last_event_date, now=now, zone=zone)
    if days_since is None:
        return StreakStatus(kind=StreakStatusKind.NO_EVENTS)
    if days_since <= 0:
        return StreakStatus(kind=StreakStatusKind.ACTIVE, days_since_last_event=0)
    if days_since == 1:
        return StreakStatus(kind=StreakStatusKind.AT_RISK, days_since_last_event=1)
    return StreakStatus(kind=StreakStatusKind.BROKEN, days_since_last_event=days_since)


def snapshot_status(snapshot: StreakSnapshot, *, now: datetime, zone: tzinfo) -> StreakStatus:
    return classify_streak_status(snapshot.last_event_date, now=now, zone=zone)


def freeze_gap_days(snapshot: StreakSnapshot, *, now: datetime, zone: tzinfo, leeway_hours: int = 0) -> int | None:
    if snapshot.last_event_date is None:
        return None
    last_day = local_date(snapshot.last_event_date, zone)
    gap = days_between(last_day, reference_day(now, zone, leeway_hours)) - 1
    return max(gap, 0)


def can_streak_be_saved(snapshot: StreakSnapshot, *, now: datetime, zone: tzinfo, leeway_hours: int = 0) -> bool:
    gap = freeze_gap_days(snapshot, now=now, zone=zone, leeway_hours=leeway_hours)
    if gap is None:
        return False
    return snapshot.freezes_remaining >= gap


def should_prompt_freeze_usage(
    snapshot: StreakSnapshot,
    *,
    now: datetime,
    zone: tzinfo,
    leeway_hours: int = 0,
) -> bool:
    gap = freeze_gap_days(snapshot, now=now, zone=zone, leeway_hours=leeway_hours)
    if not gap:
        return False
    return snapshot.freezes_remaining >= gap


def manual_freeze_status(
    snapshot: StreakSnapshot,
    *,
    now: datetime,
    zone: tzinfo,
    leeway_hours: int = 0,
) -> ManualFreezeStatus:
    gap = freeze_gap_days(snapshot, now=now, zone=zone, leeway_hours=leeway_hours)
    if not gap:
        return ManualFreezeStatus.NOT_NEEDED
    if snapshot.freezes_remaining >= gap:
        return ManualFreezeStatus.CAN_SAVE
    return ManualFreezeStatus.CANNOT_SAVE


def calculate_gap_days(
    last_event_date: datetime | None,
    *,
    now: datetime,
    zone: tzinfo,
    leeway_hours: int = 0,
) -> list[date]:
    """Missing days strictly between the last event's day and the reference day, oldest first."""
    if last_event_date is None:
        return []
    last_day = local_date(last_event_date, zone)
    target = reference_day(now, zone, leeway_hours)
    gap: list[date] = []
    day = last_day + timedelta(days=1)
    while day < target:
        gap.append(day)
        day += timedelta(days=1)
    return gap


def select_freezes_for_days(
    days: Sequence[date],
    freezes: Iterable[StreakFreeze],
    *,
    now: datetime,
) -> list[FreezeConsumption]:
    queue = available_freezes_fifo(freezes, now=now)
    return [FreezeConsumption(freeze_id=freeze.id, day=day) for day, freeze in zip(days, queue)]
