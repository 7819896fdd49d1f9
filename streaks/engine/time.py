from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from streaks.engine.errors import InvalidTimezoneError

UTC = timezone.utc


def resolve_zone(name: str | tzinfo | None, *, default: str = "UTC") -> tzinfo:
    """Resolves an IANA identifier (or passes a tzinfo through)."""
    if isinstance(name, tzinfo):
        return name
    identifier = (name or default).strip()
    if not identifier:
        raise InvalidTimezoneError("timezone identifier is empty")
    try:
        return ZoneInfo(identifier)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimezoneError(f"unknown timezone: {identifier!r}") from exc


def is_known_timezone(name: str) -> bool:
    try:
        resolve_zone(name)
    except InvalidTimezoneError:
        return False
    return True


def as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


def local_date(instant: datetime, zone: tzinfo) -> date:
    return as_utc(instant).astimezone(zone).date()


def local_day_start(day: date, zone: tzinfo) -> datetime:
    """Returns the UTC instant of local midnight for a calendar day."""
    return datetime.combine(day, time.min, tzinfo=zone).astimezone(UTC)


def hours_since_local_midnight(now: datetime, zone: tzinfo) -> int:
    # Subtract in UTC so the result is elapsed time, not wall-clock distance.
    elapsed = as_utc(now) - local_day_start(local_date(now, zone), zone)
    return int(elapsed.total_seconds() // 3600)


def reference_day(instant: datetime, zone: tzinfo, leeway_hours: int) -> date:
    """Local day of the instant, moved back one day inside the leeway window after midnight."""
    day = local_date(instant, zone)
    if leeway_hours > 0 and hours_since_local_midnight(instant, zone) <= leeway_hours:
        return day - timedelta(days=1)
    return day


def days_between(start: date, end: date) -> int:
    return (end - start).days


def sunday_week_start(day: date) -> date:
    """Returns the Sunday that opens the calendar week containing the day."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def zone_name(zone: tzinfo, *, default: str = "UTC") -> str:
    return getattr(zone, "key", None) or default
