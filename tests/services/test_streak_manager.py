from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Any

import pytest

from streaks.engine.errors import (
    FreezeNotAvailableError,
    FreezeNotFoundError,
    InvalidTimestampError,
    NotLoggedInError,
)
from streaks.engine.types import (
    CalculationAuthority,
    FreezeBehavior,
    StreakConfiguration,
    StreakEvent,
    StreakFreeze,
    StreakSnapshot,
    UseFreezesResult,
)
from streaks.services import analytics as analytics_events
from streaks.services.memory_store import InMemoryStreakStore
from streaks.services.snapshot_cache import InMemorySnapshotCache
from streaks.services.streak_manager import StreakManager

UTC = timezone.utc
NOW = datetime(2024, 6, 15, 14, 0, tzinfo=UTC)
TODAY = date(2024, 6, 15)


class RecordingAnalytics:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def track(self, event_name: str, **fields: Any) -> None:
        self.events.append((event_name, fields))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


class RecordingServerCalculator:
    def __init__(self) -> None:
        self.requests: list[tuple[str, StreakConfiguration]] = []

    async def request_recompute(self, *, user_id: str, configuration: StreakConfiguration) -> None:
        self.requests.append((user_id, configuration))


def configuration(**overrides: Any) -> StreakConfiguration:
    values: dict[str, Any] = {"streak_id": "daily"}
    values.update(overrides)
    return StreakConfiguration(**values)


def event_on(day_offset: int, *, hour: int = 12) -> StreakEvent:
    day = TODAY + timedelta(days=day_offset)
    return StreakEvent(
        id=f"evt_{day.isoformat()}",
        timestamp=datetime(day.year, day.month, day.day, hour, 0, tzinfo=UTC),
        timezone="UTC",
    )


def build_manager(
    store: InMemoryStreakStore,
    *,
    config: StreakConfiguration | None = None,
    analytics: RecordingAnalytics | None = None,
    cache: InMemorySnapshotCache | None = None,
    **kwargs: Any,
) -> StreakManager:
    return StreakManager(
        configuration=config or configuration(),
        store=store,
        cache=cache,
        analytics=analytics or RecordingAnalytics(),
        timezone="UTC",
        clock=lambda: NOW,
        **kwargs,
    )


async def seed(store: InMemoryStreakStore, *events: StreakEvent, user_id: str = "u1") -> None:
    for event in events:
        await store.add_event(user_id=user_id, streak_id="daily", event=event)


async def seed_freeze(store: InMemoryStreakStore, freeze_id: str, *, earned_days_ago: int, **kwargs: Any) -> None:
    await store.add_freeze(
        user_id="u1",
        streak_id="daily",
        freeze=StreakFreeze(
            id=freeze_id,
            streak_id="daily",
            earned_date=NOW - timedelta(days=earned_days_ago),
            **kwargs,
        ),
    )


@pytest.mark.asyncio
async def test_operations_require_logged_in_user() -> None:
    manager = build_manager(InMemoryStreakStore())

    with pytest.raises(NotLoggedInError):
        await manager.add_event("evt_1")
    with pytest.raises(NotLoggedInError):
        await manager.recalculate()
    with pytest.raises(NotLoggedInError):
        await manager.get_all_freezes()


@pytest.mark.asyncio
async def test_log_in_recalculates_and_caches_snapshot() -> None:
    store = InMemoryStreakStore()
    cache = InMemorySnapshotCache()
    await seed(store, event_on(0), event_on(-1))
    manager = build_manager(store, cache=cache)

    snapshot = await manager.log_in("u1")

    assert snapshot.current_streak == 2
    assert snapshot.user_id == "u1"
    assert manager.snapshot == snapshot
    assert cache.get("daily") == snapshot
    assert await store.get_snapshot(user_id="u1", streak_id="daily") == snapshot


@pytest.mark.asyncio
async def test_manager_starts_from_cached_snapshot() -> None:
    cache = InMemorySnapshotCache()
    cached = StreakSnapshot(
        streak_id="daily",
        user_id="u1",
        current_streak=4,
        longest_streak=4,
        streak_start_date=TODAY,
    )
    cache.set(cached)

    manager = build_manager(InMemoryStreakStore(), cache=cache)

    assert manager.snapshot == cached


@pytest.mark.asyncio
async def test_log_in_as_other_user_drops_cached_snapshot() -> None:
    cache = InMemorySnapshotCache()
    cache.set(
        StreakSnapshot(streak_id="daily", user_id="u9", current_streak=4, longest_streak=40, streak_start_date=TODAY)
    )
    store = InMemoryStreakStore()
    await seed(store, event_on(0))
    manager = build_manager(store, cache=cache)

    snapshot = await manager.log_in("u1")

    assert snapshot.user_id == "u1"
    assert snapshot.current_streak == 1
    assert snapshot.longest_streak == 1


@pytest.mark.asyncio
async def test_add_event_stores_event_and_publishes_snapshot() -> None:
    store = InMemoryStreakStore()
    manager = build_manager(store)
    await manager.log_in("u1")
    stream = manager.channel.subscribe()
    assert (await anext(stream)).current_streak == 0

    event = await manager.add_event("evt_1", metadata={"reps": 12})

    assert event.timestamp == NOW
    assert event.timezone == "UTC"
    assert [item.id for item in await manager.get_all_events()] == ["evt_1"]
    published = await anext(stream)
    assert published.current_streak == 1
    assert published.today_event_count == 1
    await stream.aclose()


@pytest.mark.asyncio
async def test_add_event_generates_id_when_missing() -> None:
    manager = build_manager(InMemoryStreakStore())
    await manager.log_in("u1")

    event = await manager.add_event()

    assert len(event.id) == 32


@pytest.mark.asyncio
async def test_add_event_rejects_future_timestamp() -> None:
    manager = build_manager(InMemoryStreakStore())
    await manager.log_in("u1")

    with pytest.raises(InvalidTimestampError):
        await manager.add_event("evt_1", timestamp=NOW + timedelta(hours=1))
    assert await manager.get_all_events() == []


@pytest.mark.asyncio
async def test_auto_consume_fills_gap_and_persists_freeze_usage() -> None:
    store = InMemoryStreakStore()
    analytics = RecordingAnalytics()
    await seed(store, event_on(0), event_on(-2))
    await seed_freeze(store, "f1", earned_days_ago=10)
    manager = build_manager(store, analytics=analytics)

    snapshot = await manager.log_in("u1")

    assert snapshot.current_streak == 3
    assert snapshot.freezes_remaining == 0
    freezes = await manager.get_all_freezes()
    assert freezes[0].used_date == NOW
    events = await manager.get_all_events()
    assert [event.id for event in events if event.is_freeze] == ["freeze_f1"]
    assert analytics_events.EVENT_FREEZE_AUTO_CONSUMED in analytics.names()

    # A second pass must not spend anything again.
    again = await manager.recalculate()
    assert again.current_streak == 3
    assert analytics.names().count(analytics_events.EVENT_FREEZE_AUTO_CONSUMED) == 1


@pytest.mark.asyncio
async def test_longest_streak_never_regresses_across_recalculations() -> None:
    store = InMemoryStreakStore()
    await store.save_snapshot(
        user_id="u1",
        snapshot=StreakSnapshot(
            streak_id="daily",
            user_id="u1",
            current_streak=10,
            longest_streak=10,
            streak_start_date=TODAY - timedelta(days=40),
        ),
    )
    await seed(store, event_on(0))
    manager = build_manager(store)

    snapshot = await manager.log_in("u1")

    assert snapshot.current_streak == 1
    assert snapshot.longest_streak == 10


@pytest.mark.asyncio
async def test_delete_all_events_resets_current_streak() -> None:
    store = InMemoryStreakStore()
    await seed(store, event_on(0), event_on(-1))
    manager = build_manager(store)
    await manager.log_in("u1")

    snapshot = await manager.delete_all_events()

    assert snapshot.current_streak == 0
    assert snapshot.total_events == 0
    assert snapshot.longest_streak == 2


@pytest.mark.asyncio
async def test_add_freeze_tracks_analytics() -> None:
    analytics = RecordingAnalytics()
    manager = build_manager(InMemoryStreakStore(), analytics=analytics)
    await manager.log_in("u1")

    freeze = await manager.add_freeze("f1")

    assert freeze.earned_date == NOW
    assert manager.snapshot.freezes_remaining == 1
    assert analytics.names().count(analytics_events.EVENT_ADD_FREEZE_SUCCEEDED) == 1


@pytest.mark.asyncio
async def test_add_freeze_rejects_inconsistent_dates() -> None:
    analytics = RecordingAnalytics()
    manager = build_manager(InMemoryStreakStore(), analytics=analytics)
    await manager.log_in("u1")

    with pytest.raises(ValueError):
        await manager.add_freeze("f1", earned_date=NOW, expires_at=NOW - timedelta(days=1))
    assert analytics_events.EVENT_ADD_FREEZE_FAILED in analytics.names()
    assert await manager.get_all_freezes() == []


@pytest.mark.asyncio
async def test_use_freeze_marks_freeze_used() -> None:
    store = InMemoryStreakStore()
    await seed_freeze(store, "f1", earned_days_ago=3)
    manager = build_manager(store, config=configuration(freeze_behavior=FreezeBehavior.MANUAL_CONSUME))
    await manager.log_in("u1")

    used = await manager.use_freeze("f1")

    assert used.used_date == NOW
    assert manager.snapshot.freezes_remaining == 0


@pytest.mark.asyncio
async def test_use_freeze_errors_are_tracked() -> None:
    store = InMemoryStreakStore()
    analytics = RecordingAnalytics()
    await seed_freeze(store, "old", earned_days_ago=30, expires_at=NOW - timedelta(days=1))
    manager = build_manager(store, analytics=analytics)
    await manager.log_in("u1")

    with pytest.raises(FreezeNotFoundError):
        await manager.use_freeze("missing")
    with pytest.raises(FreezeNotAvailableError):
        await manager.use_freeze("old")
    assert analytics.names().count(analytics_events.EVENT_USE_FREEZE_FAILED) == 2


@pytest.mark.asyncio
async def test_use_freezes_is_a_no_op_under_auto_policy() -> None:
    manager = build_manager(InMemoryStreakStore())
    await manager.log_in("u1")

    assert await manager.use_freezes() == UseFreezesResult.DID_NOT_USE_FREEZES


@pytest.mark.asyncio
async def test_use_freezes_saves_streak_under_manual_policy() -> None:
    store = InMemoryStreakStore()
    analytics = RecordingAnalytics()
    await seed(store, event_on(-5), event_on(-4), event_on(-3))
    await seed_freeze(store, "f1", earned_days_ago=20)
    await seed_freeze(store, "f2", earned_days_ago=10)
    manager = build_manager(
        store,
        config=configuration(freeze_behavior=FreezeBehavior.MANUAL_CONSUME),
        analytics=analytics,
    )
    before = await manager.log_in("u1")
    assert before.current_streak == 0
    assert before.freezes_remaining == 2

    result = await manager.use_freezes()

    assert result == UseFreezesResult.USED_FREEZES_AND_SAVED_STREAK
    freeze_events = [event for event in await manager.get_all_events() if event.is_freeze]
    assert [event.freeze_id for event in freeze_events] == ["f1", "f2"]
    assert analytics.names().count(analytics_events.EVENT_FREEZE_MANUALLY_CONSUMED) == 2

    # Logging today completes the saved run.
    await manager.add_event("evt_today")
    assert manager.snapshot.current_streak == 6
    assert manager.snapshot.streak_start_date == TODAY - timedelta(days=5)


@pytest.mark.asyncio
async def test_use_freezes_refuses_when_gap_is_too_long() -> None:
    store = InMemoryStreakStore()
    await seed(store, event_on(-4))
    await seed_freeze(store, "f1", earned_days_ago=20)
    manager = build_manager(store, config=configuration(freeze_behavior=FreezeBehavior.MANUAL_CONSUME))
    await manager.log_in("u1")

    assert await manager.use_freezes() == UseFreezesResult.DID_NOT_USE_FREEZES
    freezes = await manager.get_all_freezes()
    assert freezes[0].used_date is None



class FailingConsumeStore(InMemoryStreakStore):
    async def consume_freeze(self, **kwargs: Any) -> StreakFreeze:
        raise RuntimeError("store unavailable")


@pytest.mark.asyncio
async def test_use_freezes_failure_leaves_no_freeze_event_behind() -> None:
    store = FailingConsumeStore()
    analytics = RecordingAnalytics()
    await seed(store, event_on(-3))
    await seed_freeze(store, "f1", earned_days_ago=20)
    await seed_freeze(store, "f2", earned_days_ago=10)
    manager = build_manager(
        store,
        config=configuration(freeze_behavior=FreezeBehavior.MANUAL_CONSUME),
        analytics=analytics,
    )
    await manager.log_in("u1")

    with pytest.raises(RuntimeError):
        await manager.use_freezes()

    assert analytics_events.EVENT_USE_FREEZES_FAILED in analytics.names()
    assert [event.is_freeze for event in await manager.get_all_events()] == [False]
    assert [freeze.used_date for freeze in await manager.get_all_freezes()] == [None, None]

@pytest.mark.asyncio
async def test_log_out_clears_cache_and_publishes_blank_snapshot() -> None:
    store = InMemoryStreakStore()
    cache = InMemorySnapshotCache()
    await seed(store, event_on(0))
    manager = build_manager(store, cache=cache)
    await manager.log_in("u1")

    await manager.log_out()

    assert manager.user_id is None
    assert cache.get("daily") is None
    assert manager.snapshot.current_streak == 0
    assert manager.channel.latest == manager.snapshot


@pytest.mark.asyncio
async def test_switching_users_recomputes_for_new_user() -> None:
    store = InMemoryStreakStore()
    await seed(store, event_on(0), event_on(-1), user_id="u1")
    await seed(store, event_on(0), user_id="u2")
    manager = build_manager(store)

    await manager.log_in("u1")
    snapshot = await manager.log_in("u2")

    assert manager.user_id == "u2"
    assert snapshot.user_id == "u2"
    assert snapshot.current_streak == 1
    assert snapshot.longest_streak == 1


def test_server_authority_requires_notifier_and_calculator() -> None:
    with pytest.raises(ValueError):
        build_manager(
            InMemoryStreakStore(),
            config=configuration(calculation_authority=CalculationAuthority.SERVER),
        )


@pytest.mark.asyncio
async def test_server_authority_delegates_and_listens_for_snapshots() -> None:
    store = InMemoryStreakStore()
    calculator = RecordingServerCalculator()
    analytics = RecordingAnalytics()
    config = configuration(calculation_authority=CalculationAuthority.SERVER)
    manager = build_manager(
        store,
        config=config,
        analytics=analytics,
        notifier=store,
        server_calculator=calculator,
    )

    await manager.log_in("u1")
    assert calculator.requests == [("u1", config)]

    await store.save_snapshot(
        user_id="u1",
        snapshot=StreakSnapshot(streak_id="daily", current_streak=5, longest_streak=7, streak_start_date=TODAY),
    )
    for _ in range(100):
        if manager.snapshot.current_streak == 5:
            break
        await asyncio.sleep(0.01)

    assert manager.snapshot.current_streak == 5
    assert manager.snapshot.user_id == "u1"
    assert analytics_events.EVENT_REMOTE_LISTENER_RECEIVED in analytics.names()

    await manager.close()
    assert manager.user_id is None


@pytest.mark.asyncio
async def test_server_authority_raises_when_collaborators_are_missing(monkeypatch) -> None:
    store = InMemoryStreakStore()
    manager = build_manager(
        store,
        config=configuration(calculation_authority=CalculationAuthority.SERVER),
        notifier=store,
        server_calculator=RecordingServerCalculator(),
    )

    monkeypatch.setattr(manager, "_notifier", None)
    with pytest.raises(RuntimeError):
        await manager.log_in("u1")

    monkeypatch.setattr(manager, "_server_calculator", None)
    with pytest.raises(RuntimeError):
        await manager.recalculate()
