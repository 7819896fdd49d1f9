from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from streaks.engine.errors import InvalidTimezoneError
from streaks.engine.time import (
    hours_since_local_midnight,
    is_known_timezone,
    local_day_start,
    reference_day,
    resolve_zone,
    sunday_week_start,
    zone_name,
)

UTC = timezone.utc
NEW_YORK = ZoneInfo("America/New_York")


def test_resolve_zone() -> None:
    assert resolve_zone("Europe/Berlin") == ZoneInfo("Europe/Berlin")
    assert resolve_zone(None) == ZoneInfo("UTC")
    assert resolve_zone(NEW_YORK) is NEW_YORK
    with pytest.raises(InvalidTimezoneError):
        resolve_zone("Atlantis/Capital")
    assert is_known_timezone("Asia/Tokyo") is True
    assert is_known_timezone("Atlantis/Capital") is False


def test_hours_since_local_midnight_counts_elapsed_time_across_dst() -> None:
    # Clocks jump from 02:00 to 03:00 on 2024-03-10; 04:00 local is three hours after midnight.
    now = datetime(2024, 3, 10, 4, 0, tzinfo=NEW_YORK)

    assert hours_since_local_midnight(now, NEW_YORK) == 3


def test_reference_day_moves_back_inside_leeway() -> None:
    now = datetime(2024, 6, 15, 5, 30, tzinfo=UTC)

    assert reference_day(now, UTC, 0) == date(2024, 6, 15)
    assert reference_day(now, UTC, 5) == date(2024, 6, 14)
    assert reference_day(now, UTC, 4) == date(2024, 6, 15)


def test_local_day_start_is_utc_instant() -> None:
    assert local_day_start(date(2024, 6, 15), NEW_YORK) == datetime(2024, 6, 15, 4, 0, tzinfo=UTC)


def test_sunday_week_start() -> None:
    assert sunday_week_start(date(2024, 6, 15)) == date(2024, 6, 9)
    assert sunday_week_start(date(2024, 6, 9)) == date(2024, 6, 9)
    assert sunday_week_start(date(2024, 6, 10)) == date(2024, 6, 9)


def test_zone_name_falls_back_for_fixed_offsets() -> None:
    assert zone_name(NEW_YORK) == "America/New_York"
    assert zone_name(UTC) == "UTC"
