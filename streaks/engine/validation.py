from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import datetime, timedelta

from streaks.engine.constants import EVENT_MAX_AGE_DAYS, METADATA_KEY_RE, SANITIZED_KEY_FALLBACK
from streaks.engine.errors import (
    InvalidEventIdError,
    InvalidFreezeError,
    InvalidMetadataError,
    InvalidTimestampError,
    InvalidTimezoneError,
    MetadataDecodeError,
)
from streaks.engine.metadata import coerce_metadata
from streaks.engine.time import as_utc, is_known_timezone
from streaks.engine.types import StreakEvent, StreakFreeze

_WHITESPACE_RE = re.compile(r"\s")
_UNDERSCORE_RUN_RE = re.compile(r"_{2,}")


def validate_event(event: StreakEvent, *, now: datetime, max_age_days: int = EVENT_MAX_AGE_DAYS) -> StreakEvent:
    if not event.id or not event.id.strip():
        raise InvalidEventIdError("event id must not be empty")

    timestamp = event.timestamp_utc
    now_utc = as_utc(now)
    if timestamp > now_utc:
        raise InvalidTimestampError(f"event {event.id!r} is dated in the future")
    if timestamp < now_utc - timedelta(days=max_age_days):
        raise InvalidTimestampError(f"event {event.id!r} is older than {max_age_days} days")

    if not is_known_timezone(event.timezone):
        raise InvalidTimezoneError(f"event {event.id!r} has unknown timezone {event.timezone!r}")

    for key in event.metadata:
        if not METADATA_KEY_RE.match(key):
            raise InvalidMetadataError(f"metadata key {key!r} must contain only letters, digits and underscores")

    return event


def validate_freeze(freeze: StreakFreeze) -> StreakFreeze:
    if not freeze.is_valid:
        raise InvalidFreezeError(f"freeze {freeze.id!r} has inconsistent dates or an empty id")
    return freeze


def build_event(
    event_id: str,
    *,
    timestamp: datetime,
    timezone: str,
    metadata: Mapping[str, object] | None = None,
    now: datetime,
    max_age_days: int = EVENT_MAX_AGE_DAYS,
) -> StreakEvent:
    try:
        coerced = coerce_metadata(metadata)
    except MetadataDecodeError as exc:
        raise InvalidMetadataError(str(exc)) from exc

    event = StreakEvent(id=event_id, timestamp=as_utc(timestamp), timezone=timezone, metadata=coerced)
    return validate_event(event, now=now, max_age_days=max_age_days)


def sanitize_key(text: str) -> str:
    """Turns free text into a storage-safe key: "My Level!" becomes "my_level"."""
    lowered = _WHITESPACE_RE.sub("_", text.lower())
    kept = "".join(char for char in lowered if char.isalnum() or char == "_")
    collapsed = _UNDERSCORE_RUN_RE.sub("_", kept).strip("_")
    return collapsed or SANITIZED_KEY_FALLBACK
