from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum

from streaks.engine.constants import (
    MAX_LEEWAY_HOURS,
    MIN_EVENTS_REQUIRED_PER_DAY,
    MIN_LEEWAY_HOURS,
    STREAK_ID_RE,
    TRAVEL_FRIENDLY_LEEWAY_HOURS,
)
from streaks.engine.errors import InvalidConfigurationError, InvalidStreakIdError
from streaks.engine.metadata import MetadataValue
from streaks.engine.time import as_utc, is_known_timezone


class FreezeBehavior(str, Enum):
    AUTO_CONSUME = "AUTO_CONSUME"
    MANUAL_CONSUME = "MANUAL_CONSUME"


class CalculationAuthority(str, Enum):
    LOCAL = "LOCAL"
    SERVER = "SERVER"


class StreakStatusKind(str, Enum):
    NO_EVENTS = "NO_EVENTS"
    ACTIVE = "ACTIVE"
    AT_RISK = "AT_RISK"
    BROKEN = "BROKEN"


class ManualFreezeStatus(str, Enum):
    NOT_NEEDED = "NOT_NEEDED"
    CAN_SAVE = "CAN_SAVE"
    CANNOT_SAVE = "CANNOT_SAVE"


class UseFreezesResult(str, Enum):
    DID_NOT_USE_FREEZES = "DID_NOT_USE_FREEZES"
    USED_FREEZES_AND_SAVED_STREAK = "USED_FREEZES_AND_SAVED_STREAK"


@dataclass(frozen=True, slots=True)
class StreakEvent:
    id: str
    timestamp: datetime
    timezone: str
    is_freeze: bool = False
    freeze_id: str | None = None
    metadata: Mapping[str, MetadataValue] = field(default_factory=dict)

    @property
    def timestamp_utc(self) -> datetime:
        return as_utc(self.timestamp)


@dataclass(frozen=True, slots=True)
class StreakFreeze:
    id: str
    streak_id: str
    earned_date: datetime | None = None
    used_date: datetime | None = None
    expires_at: datetime | None = None

    @property
    def is_used(self) -> bool:
        return self.used_date is not None

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return as_utc(self.expires_at) < as_utc(now)

    def is_available(self, now: datetime) -> bool:
        return not self.is_used and not self.is_expired(now)

    @property
    def is_valid(self) -> bool:
        if not self.id:
            return False
        if self.earned_date is not None and self.used_date is not None:
            if as_utc(self.used_date) < as_utc(self.earned_date):
                return False
        if self.earned_date is not None and self.expires_at is not None:
            if as_utc(self.expires_at) < as_utc(self.earned_date):
                return False
        return True

    def mark_used(self, used_at: datetime) -> StreakFreeze:
        return replace(self, used_date=used_at)


@dataclass(frozen=True, slots=True)
class StreakConfiguration:
    streak_id: str
    events_required_per_day: int = 1
    leeway_hours: int = 0
    freeze_behavior: FreezeBehavior = FreezeBehavior.AUTO_CONSUME
    calculation_authority: CalculationAuthority = CalculationAuthority.LOCAL

    def __post_init__(self) -> None:
        if not STREAK_ID_RE.match(self.streak_id):
            raise InvalidStreakIdError(
                f"streak id {self.streak_id!r} must contain only lowercase letters, digits and underscores"
            )
        if self.events_required_per_day < MIN_EVENTS_REQUIRED_PER_DAY:
            raise InvalidConfigurationError("events_required_per_day must be >= 1")
        if not MIN_LEEWAY_HOURS <= self.leeway_hours <= MAX_LEEWAY_HOURS:
            raise InvalidConfigurationError("leeway_hours must be between 0 and 24")
        object.__setattr__(self, "freeze_behavior", FreezeBehavior(self.freeze_behavior))
        object.__setattr__(self, "calculation_authority", CalculationAuthority(self.calculation_authority))

    @property
    def is_goal_based(self) -> bool:
        return self.events_required_per_day > 1

    @property
    def is_strict_mode(self) -> bool:
        return self.leeway_hours == 0

    @property
    def is_travel_friendly(self) -> bool:
        return self.leeway_hours >= TRAVEL_FRIENDLY_LEEWAY_HOURS

    @property
    def auto_consumes_freezes(self) -> bool:
        return self.freeze_behavior == FreezeBehavior.AUTO_CONSUME

    @property
    def uses_server_calculation(self) -> bool:
        return self.calculation_authority == CalculationAuthority.SERVER


@dataclass(frozen=True, slots=True)
class FreezeConsumption:
    freeze_id: str
    day: date


@dataclass(frozen=True, slots=True)
class StreakSnapshot:
    streak_id: str
    user_id: str | None = None
    current_streak: int = 0
    longest_streak: int = 0
    last_event_date: datetime | None = None
    last_event_timezone: str | None = None
    streak_start_date: date | None = None
    total_events: int = 0
    today_event_count: int = 0
    events_required_per_day: int = 1
    freezes_remaining: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    recent_events: tuple[StreakEvent, ...] = ()

    @classmethod
    def blank(
        cls,
        streak_id: str,
        *,
        user_id: str | None = None,
        events_required_per_day: int = 1,
        freezes_remaining: int = 0,
        updated_at: datetime | None = None,
    ) -> StreakSnapshot:
        return cls(
            streak_id=streak_id,
            user_id=user_id,
            events_required_per_day=events_required_per_day,
            freezes_remaining=freezes_remaining,
            updated_at=updated_at,
        )

    def with_user_id(self, user_id: str | None) -> StreakSnapshot:
        return replace(self, user_id=user_id)

    @property
    def is_goal_met(self) -> bool:
        return self.today_event_count >= max(self.events_required_per_day, 1)

    @property
    def goal_progress(self) -> float:
        required = max(self.events_required_per_day, 1)
        return min(self.today_event_count / required, 1.0)

    @property
    def is_valid(self) -> bool:
        counts = (
            self.current_streak,
            self.longest_streak,
            self.total_events,
            self.today_event_count,
            self.freezes_remaining,
        )
        if any(count < 0 for count in counts):
            return False
        if self.events_required_per_day < MIN_EVENTS_REQUIRED_PER_DAY:
            return False
        if self.longest_streak < self.current_streak:
            return False
        if self.current_streak > 0 and self.streak_start_date is None:
            return False
        if self.last_event_timezone is not None and not is_known_timezone(self.last_event_timezone):
            return False
        return True


@dataclass(frozen=True, slots=True)
class StreakStatus:
    kind: StreakStatusKind
    days_since_last_event: int | None = None

    @property
    def is_active(self) -> bool:
        return self.kind in {StreakStatusKind.ACTIVE, StreakStatusKind.AT_RISK}

    @property
    def needs_action(self) -> bool:
        return self.kind == StreakStatusKind.AT_RISK

    @property
    def is_broken(self) -> bool:
        return self.kind == StreakStatusKind.BROKEN

    @property
    def description(self) -> str:
        if self.kind == StreakStatusKind.NO_EVENTS:
            return "No events logged yet"
        if self.kind == StreakStatusKind.AT_RISK:
            return "At risk - log today to maintain streak"
        if self.kind == StreakStatusKind.BROKEN:
            return f"Broken - {self.days_since_last_event} days since last event"
        return "Active - logged today"


@dataclass(frozen=True, slots=True)
class StreakCalculation:
    snapshot: StreakSnapshot
    freeze_consumptions: tuple[FreezeConsumption, ...] = ()


@dataclass(frozen=True, slots=True)
class CurrentRun:
    length: int
    start_day: date | None
    freeze_consumptions: tuple[FreezeConsumption, ...] = ()
