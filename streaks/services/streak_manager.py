from __future__ import annotations

import asyncio
import contextlib
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime, tzinfo

import structlog

from streaks.core.logging import streak_log_context
from streaks.engine.calculator import build_freeze_event, merge_longest_streak
from streaks.engine.codec import event_log_fields, snapshot_log_fields
from streaks.engine.constants import DEFAULT_TIMEZONE, EVENT_MAX_AGE_DAYS, RECENT_EVENTS_DAYS
from streaks.engine.errors import FreezeNotAvailableError, FreezeNotFoundError, NotLoggedInError
from streaks.engine.status import calculate_gap_days, manual_freeze_status, select_freezes_for_days
from streaks.engine.time import UTC, resolve_zone, zone_name
from streaks.engine.types import (
    ManualFreezeStatus,
    StreakConfiguration,
    StreakEvent,
    StreakFreeze,
    StreakSnapshot,
    UseFreezesResult,
)
from streaks.engine.validation import build_event, validate_freeze
from streaks.services import analytics as analytics_events
from streaks.services.analytics import StructlogAnalyticsLogger
from streaks.services.channel import SnapshotChannel
from streaks.services.ports import AnalyticsLogger, ServerCalculator, SnapshotCache, SnapshotNotifier, StreakStore
from streaks.services.snapshot_cache import InMemorySnapshotCache
from streaks.services.streak_recompute import recompute_streak

logger = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class StreakManager:
    """Keeps one configured streak current for the logged-in user.

    Every change to the published snapshot goes through a single lock, so
    observers never see an older snapshot replace a newer one.
    """

    def __init__(
        self,
        *,
        configuration: StreakConfiguration,
        store: StreakStore,
        cache: SnapshotCache | None = None,
        notifier: SnapshotNotifier | None = None,
        server_calculator: ServerCalculator | None = None,
        analytics: AnalyticsLogger | None = None,
        timezone: str | tzinfo = DEFAULT_TIMEZONE,
        recent_days: int = RECENT_EVENTS_DAYS,
        max_event_age_days: int = EVENT_MAX_AGE_DAYS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if configuration.uses_server_calculation and (notifier is None or server_calculator is None):
            raise ValueError("server calculation requires both a notifier and a server calculator")

        self._configuration = configuration
        self._store = store
        self._cache = cache if cache is not None else InMemorySnapshotCache()
        self._notifier = notifier
        self._server_calculator = server_calculator
        self._analytics = analytics if analytics is not None else StructlogAnalyticsLogger()
        self._zone = resolve_zone(timezone)
        self._recent_days = recent_days
        self._max_event_age_days = max_event_age_days
        self._clock = clock

        self._lock = asyncio.Lock()
        self._channel = SnapshotChannel()
        self._user_id: str | None = None
        self._listener_task: asyncio.Task[None] | None = None

        cached = self._cache.get(configuration.streak_id)
        self._snapshot = cached if cached is not None else StreakSnapshot.blank(
            configuration.streak_id,
            events_required_per_day=configuration.events_required_per_day,
        )

    @property
    def configuration(self) -> StreakConfiguration:
        return self._configuration

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def snapshot(self) -> StreakSnapshot:
        return self._snapshot

    @property
    def channel(self) -> SnapshotChannel:
        return self._channel

    def _require_user(self) -> str:
        if self._user_id is None:
            raise NotLoggedInError("no user is logged in")
        return self._user_id

    def _log_context(self) -> contextlib.AbstractContextManager[None]:
        return streak_log_context(user_id=self._user_id, streak_id=self._configuration.streak_id)

    async def log_in(self, user_id: str) -> StreakSnapshot:
        if self._user_id is not None and self._user_id != user_id:
            await self.log_out()
        self._user_id = user_id

        if self._snapshot.user_id not in {None, user_id}:
            async with self._lock:
                self._publish(
                    StreakSnapshot.blank(
                        self._configuration.streak_id,
                        user_id=user_id,
                        events_required_per_day=self._configuration.events_required_per_day,
                    )
                )

        if self._configuration.uses_server_calculation and self._listener_task is None:
            if self._notifier is None:
                raise RuntimeError("server calculation requires a snapshot notifier")
            self._listener_task = asyncio.create_task(self._listen_for_server_snapshots(self._notifier, user_id))

        return await self.recalculate()

    async def log_out(self) -> None:
        if self._listener_task is not None:
            self._listener_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listener_task
            self._listener_task = None

        self._user_id = None
        async with self._lock:
            self._cache.clear(self._configuration.streak_id)
            self._snapshot = StreakSnapshot.blank(
                self._configuration.streak_id,
                events_required_per_day=self._configuration.events_required_per_day,
            )
            self._channel.publish(self._snapshot)

    async def add_event(
        self,
        event_id: str | None = None,
        *,
        timestamp: datetime | None = None,
        metadata: Mapping[str, object] | None = None,
    ) -> StreakEvent:
        user_id = self._require_user()
        now = self._clock()
        event = build_event(
            event_id or uuid.uuid4().hex,
            timestamp=timestamp or now,
            timezone=zone_name(self._zone),
            metadata=metadata,
            now=now,
            max_age_days=self._max_event_age_days,
        )
        await self._store.add_event(user_id=user_id, streak_id=self._configuration.streak_id, event=event)
        with self._log_context():
            logger.info("streak_event_added", **event_log_fields(event))
        await self.recalculate()
        return event

    async def get_all_events(self) -> list[StreakEvent]:
        user_id = self._require_user()
        return await self._store.list_events(user_id=user_id, streak_id=self._configuration.streak_id)

    async def delete_all_events(self) -> StreakSnapshot:
        user_id = self._require_user()
        await self._store.delete_all_events(user_id=user_id, streak_id=self._configuration.streak_id)
        with self._log_context():
            logger.info("streak_events_deleted")
        return await self.recalculate()

    async def add_freeze(
        self,
        freeze_id: str | None = None,
        *,
        earned_date: datetime | None = None,
        expires_at: datetime | None = None,
    ) -> StreakFreeze:
        user_id = self._require_user()
        resolved_id = freeze_id or uuid.uuid4().hex
        self._analytics.track(analytics_events.EVENT_ADD_FREEZE_STARTED, freeze_id=resolved_id)
        try:
            freeze = validate_freeze(
                StreakFreeze(
                    id=resolved_id,
                    streak_id=self._configuration.streak_id,
                    earned_date=earned_date or self._clock(),
                    expires_at=expires_at,
                )
            )
            await self._store.add_freeze(user_id=user_id, streak_id=self._configuration.streak_id, freeze=freeze)
        except Exception as exc:
            self._analytics.track(analytics_events.EVENT_ADD_FREEZE_FAILED, freeze_id=resolved_id, error=str(exc))
            raise
        self._analytics.track(analytics_events.EVENT_ADD_FREEZE_SUCCEEDED, freeze_id=resolved_id)
        await self.recalculate()
        return freeze

    async def get_all_freezes(self) -> list[StreakFreeze]:
        user_id = self._require_user()
        return await self._store.list_freezes(user_id=user_id, streak_id=self._configuration.streak_id)

    async def use_freeze(self, freeze_id: str) -> StreakFreeze:
        user_id = self._require_user()
        now = self._clock()
        self._analytics.track(analytics_events.EVENT_USE_FREEZE_STARTED, freeze_id=freeze_id)
        try:
            freezes = await self.get_all_freezes()
            freeze = next((item for item in freezes if item.id == freeze_id), None)
            if freeze is None:
                raise FreezeNotFoundError(f"freeze {freeze_id!r} does not exist")
            if not freeze.is_used and freeze.is_expired(now):
                raise FreezeNotAvailableError(f"freeze {freeze_id!r} expired at {freeze.expires_at}")
            used = await self._store.mark_freeze_used(
                user_id=user_id,
                streak_id=self._configuration.streak_id,
                freeze_id=freeze_id,
                used_at=now,
            )
        except Exception as exc:
            self._analytics.track(analytics_events.EVENT_USE_FREEZE_FAILED, freeze_id=freeze_id, error=str(exc))
            raise
        self._analytics.track(analytics_events.EVENT_USE_FREEZE_SUCCEEDED, freeze_id=freeze_id)
        await self.recalculate()
        return used

    async def use_freezes(self) -> UseFreezesResult:
        """Spends available freezes on the current gap when they can cover all of it."""
        user_id = self._require_user()
        if self._configuration.auto_consumes_freezes:
            return UseFreezesResult.DID_NOT_USE_FREEZES

        now = self._clock()
        leeway_hours = self._configuration.leeway_hours
        status = manual_freeze_status(self._snapshot, now=now, zone=self._zone, leeway_hours=leeway_hours)
        if status != ManualFreezeStatus.CAN_SAVE:
            return UseFreezesResult.DID_NOT_USE_FREEZES

        self._analytics.track(analytics_events.EVENT_USE_FREEZES_STARTED)
        try:
            gap_days = calculate_gap_days(
                self._snapshot.last_event_date,
                now=now,
                zone=self._zone,
                leeway_hours=leeway_hours,
            )
            consumptions = select_freezes_for_days(gap_days, await self.get_all_freezes(), now=now)
            if not gap_days or len(consumptions) < len(gap_days):
                return UseFreezesResult.DID_NOT_USE_FREEZES

            for consumption in consumptions:
                await self._store.consume_freeze(
                    user_id=user_id,
                    streak_id=self._configuration.streak_id,
                    consumption=consumption,
                    event=build_freeze_event(consumption, zone=self._zone),
                    used_at=now,
                )
                self._analytics.track(
                    analytics_events.EVENT_FREEZE_MANUALLY_CONSUMED,
                    freeze_id=consumption.freeze_id,
                    day=consumption.day.isoformat(),
                )
        except Exception as exc:
            self._analytics.track(analytics_events.EVENT_USE_FREEZES_FAILED, error=str(exc))
            raise

        self._analytics.track(analytics_events.EVENT_USE_FREEZES_SUCCEEDED, count=len(consumptions))
        await self.recalculate()
        return UseFreezesResult.USED_FREEZES_AND_SAVED_STREAK

    async def recalculate(self) -> StreakSnapshot:
        user_id = self._require_user()

        if self._configuration.uses_server_calculation:
            calculator = self._server_calculator
            if calculator is None:
                raise RuntimeError("server calculation requires a server calculator")
            await calculator.request_recompute(user_id=user_id, configuration=self._configuration)
            return self._snapshot

        self._analytics.track(analytics_events.EVENT_CALCULATE_STARTED, streak_id=self._configuration.streak_id)
        async with self._lock:
            try:
                calculation = await recompute_streak(
                    self._store,
                    user_id=user_id,
                    configuration=self._configuration,
                    now=self._clock(),
                    zone=self._zone,
                    recent_days=self._recent_days,
                    analytics=self._analytics,
                )
            except Exception as exc:
                self._analytics.track(
                    analytics_events.EVENT_CALCULATE_FAILED,
                    streak_id=self._configuration.streak_id,
                    error=str(exc),
                )
                raise
            if self._user_id != user_id:
                return self._snapshot
            self._publish(calculation.snapshot)

        self._analytics.track(analytics_events.EVENT_CALCULATE_SUCCEEDED, **snapshot_log_fields(self._snapshot))
        return self._snapshot

    async def close(self) -> None:
        await self.log_out()
        self._channel.close()

    def _publish(self, snapshot: StreakSnapshot) -> None:
        # Callers hold self._lock.
        if self._snapshot.user_id == snapshot.user_id:
            snapshot = merge_longest_streak(self._snapshot.longest_streak, snapshot)
        self._snapshot = snapshot

        self._analytics.track(analytics_events.EVENT_SAVE_LOCAL_STARTED, streak_id=snapshot.streak_id)
        try:
            self._cache.set(snapshot)
        except Exception as exc:
            self._analytics.track(analytics_events.EVENT_SAVE_LOCAL_FAILED, error=str(exc))
            raise
        self._analytics.track(analytics_events.EVENT_SAVE_LOCAL_SUCCEEDED, streak_id=snapshot.streak_id)
        self._channel.publish(snapshot)

    async def _listen_for_server_snapshots(self, notifier: SnapshotNotifier, user_id: str) -> None:
        self._analytics.track(analytics_events.EVENT_REMOTE_LISTENER_STARTED, user_id=user_id)
        try:
            async for snapshot in notifier.stream_snapshots(
                user_id=user_id,
                streak_id=self._configuration.streak_id,
            ):
                async with self._lock:
                    if self._user_id != user_id:
                        return
                    self._publish(snapshot.with_user_id(user_id))
                self._analytics.track(
                    analytics_events.EVENT_REMOTE_LISTENER_RECEIVED,
                    **snapshot_log_fields(self._snapshot),
                )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._analytics.track(analytics_events.EVENT_REMOTE_LISTENER_FAILED, user_id=user_id, error=str(exc))
            logger.exception("streak_remote_listener_crashed", user_id=user_id)
