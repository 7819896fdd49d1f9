from streaks.engine.calculator import (
    build_freeze_event,
    calculate_streak,
    calendar_days_with_events,
    calendar_days_with_events_this_week,
    count_events_today,
    is_snapshot_stale,
    merge_longest_streak,
    select_recent_events,
)
from streaks.engine.status import (
    calculate_gap_days,
    can_streak_be_saved,
    classify_streak_status,
    days_since_last_event,
    freeze_gap_days,
    manual_freeze_status,
    select_freezes_for_days,
    should_prompt_freeze_usage,
    snapshot_status,
)
from streaks.engine.types import (
    CalculationAuthority,
    FreezeBehavior,
    FreezeConsumption,
    ManualFreezeStatus,
    StreakCalculation,
    StreakConfiguration,
    StreakEvent,
    StreakFreeze,
    StreakSnapshot,
    StreakStatus,
    StreakStatusKind,
    UseFreezesResult,
)

__all__ = [
    "CalculationAuthority",
    "FreezeBehavior",
    "FreezeConsumption",
    "ManualFreezeStatus",
    "StreakCalculation",
    "StreakConfiguration",
    "StreakEvent",
    "StreakFreeze",
    "StreakSnapshot",
    "StreakStatus",
    "StreakStatusKind",
    "UseFreezesResult",
    "build_freeze_event",
    "calculate_gap_days",
    "calculate_streak",
    "calendar_days_with_events",
    "calendar_days_with_events_this_week",
    "can_streak_be_saved",
    "classify_streak_status",
    "count_events_today",
    "days_since_last_event",
    "freeze_gap_days",
    "is_snapshot_stale",
    "manual_freeze_status",
    "merge_longest_streak",
    "select_freezes_for_days",
    "select_recent_events",
    "should_prompt_freeze_usage",
    "snapshot_status",
]
