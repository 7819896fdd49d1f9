from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from streaks.engine.errors import MetadataDecodeError, SnapshotDecodeError, StreakValidationError
from streaks.engine.metadata import decode_metadata, encode_metadata, metadata_python_value
from streaks.engine.time import as_utc
from streaks.engine.types import (
    CalculationAuthority,
    FreezeBehavior,
    StreakConfiguration,
    StreakEvent,
    StreakFreeze,
    StreakSnapshot,
)


def _encode_instant(value: datetime | None) -> str | None:
    if value is None:
        return None
    return as_utc(value).isoformat()


def _decode_instant(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    return as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


def _decode_day(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def encode_event(event: StreakEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "timestamp": _encode_instant(event.timestamp),
        "timezone": event.timezone,
        "is_freeze": event.is_freeze,
        "freeze_id": event.freeze_id,
        "metadata": encode_metadata(event.metadata),
    }


def decode_event(payload: Mapping[str, Any]) -> StreakEvent:
    try:
        timestamp = _decode_instant(payload["timestamp"])
        if timestamp is None:
            raise ValueError("event timestamp is missing")
        return StreakEvent(
            id=str(payload["id"]),
            timestamp=timestamp,
            timezone=str(payload["timezone"]),
            is_freeze=bool(payload.get("is_freeze", False)),
            freeze_id=payload.get("freeze_id"),
            metadata=decode_metadata(payload.get("metadata")),
        )
    except (KeyError, TypeError, ValueError, MetadataDecodeError) as exc:
        raise SnapshotDecodeError(f"malformed event payload: {exc}") from exc


def encode_freeze(freeze: StreakFreeze) -> dict[str, Any]:
    return {
        "id": freeze.id,
        "streak_id": freeze.streak_id,
        "earned_date": _encode_instant(freeze.earned_date),
        "used_date": _encode_instant(freeze.used_date),
        "expires_at": _encode_instant(freeze.expires_at),
    }


def decode_freeze(payload: Mapping[str, Any]) -> StreakFreeze:
    try:
        return StreakFreeze(
            id=str(payload["id"]),
            streak_id=str(payload["streak_id"]),
            earned_date=_decode_instant(payload.get("earned_date")),
            used_date=_decode_instant(payload.get("used_date")),
            expires_at=_decode_instant(payload.get("expires_at")),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise SnapshotDecodeError(f"malformed freeze payload: {exc}") from exc


def encode_configuration(configuration: StreakConfiguration) -> dict[str, Any]:
    return {
        "streak_id": configuration.streak_id,
        "events_required_per_day": configuration.events_required_per_day,
        "leeway_hours": configuration.leeway_hours,
        "freeze_behavior": configuration.freeze_behavior.value,
        "calculation_authority": configuration.calculation_authority.value,
    }


def decode_configuration(payload: Mapping[str, Any]) -> StreakConfiguration:
    """Validation errors from the configuration itself propagate unchanged."""
    try:
        streak_id = str(payload["streak_id"])
        events_required = int(payload.get("events_required_per_day", 1))
        leeway_hours = int(payload.get("leeway_hours", 0))
        freeze_behavior = FreezeBehavior(payload.get("freeze_behavior", FreezeBehavior.AUTO_CONSUME.value))
        authority = CalculationAuthority(payload.get("calculation_authority", CalculationAuthority.LOCAL.value))
    except (KeyError, TypeError, ValueError) as exc:
        raise SnapshotDecodeError(f"malformed configuration payload: {exc}") from exc
    return StreakConfiguration(
        streak_id=streak_id,
        events_required_per_day=events_required,
        leeway_hours=leeway_hours,
        freeze_behavior=freeze_behavior,
        calculation_authority=authority,
    )


def encode_snapshot(snapshot: StreakSnapshot) -> dict[str, Any]:
    return {
        "streak_id": snapshot.streak_id,
        "user_id": snapshot.user_id,
        "current_streak": snapshot.current_streak,
        "longest_streak": snapshot.longest_streak,
        "last_event_date": _encode_instant(snapshot.last_event_date),
        "last_event_timezone": snapshot.last_event_timezone,
        "streak_start_date": snapshot.streak_start_date.isoformat() if snapshot.streak_start_date else None,
        "total_events": snapshot.total_events,
        "today_event_count": snapshot.today_event_count,
        "events_required_per_day": snapshot.events_required_per_day,
        "freezes_remaining": snapshot.freezes_remaining,
        "created_at": _encode_instant(snapshot.created_at),
        "updated_at": _encode_instant(snapshot.updated_at),
        "recent_events": [encode_event(event) for event in snapshot.recent_events],
    }


def decode_snapshot(payload: Mapping[str, Any]) -> StreakSnapshot:
    if not isinstance(payload, Mapping):
        raise SnapshotDecodeError(f"snapshot payload must be an object, got {type(payload).__name__}")
    try:
        return StreakSnapshot(
            streak_id=str(payload["streak_id"]),
            user_id=payload.get("user_id"),
            current_streak=int(payload.get("current_streak", 0)),
            longest_streak=int(payload.get("longest_streak", 0)),
            last_event_date=_decode_instant(payload.get("last_event_date")),
            last_event_timezone=payload.get("last_event_timezone"),
            streak_start_date=_decode_day(payload.get("streak_start_date")),
            total_events=int(payload.get("total_events", 0)),
            today_event_count=int(payload.get("today_event_count", 0)),
            events_required_per_day=int(payload.get("events_required_per_day", 1)),
            freezes_remaining=int(payload.get("freezes_remaining", 0)),
            created_at=_decode_instant(payload.get("created_at")),
            updated_at=_decode_instant(payload.get("updated_at")),
            recent_events=tuple(decode_event(item) for item in payload.get("recent_events") or ()),
        )
    except (KeyError, TypeError, ValueError, StreakValidationError) as exc:
        raise SnapshotDecodeError(f"malformed snapshot payload: {exc}") from exc


def snapshot_log_fields(snapshot: StreakSnapshot) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "streak_id": snapshot.streak_id,
        "current_streak": snapshot.current_streak,
        "longest_streak": snapshot.longest_streak,
        "total_events": snapshot.total_events,
        "today_event_count": snapshot.today_event_count,
        "events_required_per_day": snapshot.events_required_per_day,
        "freezes_remaining": snapshot.freezes_remaining,
        "is_goal_met": snapshot.is_goal_met,
    }
    if snapshot.user_id is not None:
        fields["user_id"] = snapshot.user_id
    if snapshot.last_event_date is not None:
        fields["last_event_date"] = _encode_instant(snapshot.last_event_date)
    if snapshot.streak_start_date is not None:
        fields["streak_start_date"] = snapshot.streak_start_date.isoformat()
    return fields


def event_log_fields(event: StreakEvent) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "event_id": event.id,
        "event_timestamp": _encode_instant(event.timestamp),
        "event_timezone": event.timezone,
        "event_is_freeze": event.is_freeze,
    }
    if event.freeze_id is not None:
        fields["event_freeze_id"] = event.freeze_id
    for key, value in event.metadata.items():
        fields[f"event_metadata_{key}"] = metadata_python_value(value)
    return fields
