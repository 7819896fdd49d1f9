from __future__ import annotations

from datetime import date, datetime, timezone

import structlog
from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from streaks.core.config import get_settings
from streaks.core.internal_auth import INTERNAL_TOKEN_HEADER, extract_client_ip, internal_access_denial
from streaks.db.session import SessionLocal
from streaks.db.store import SqlStreakStore
from streaks.engine.calculator import is_snapshot_stale
from streaks.engine.errors import StreakValidationError
from streaks.engine.status import classify_streak_status, freeze_gap_days
from streaks.engine.time import resolve_zone
from streaks.engine.types import FreezeBehavior, StreakConfiguration, StreakSnapshot
from streaks.services.ports import StreakStore
from streaks.services.streak_recompute import recompute_streak

router = APIRouter(tags=["internal", "streaks"])
logger = structlog.get_logger(__name__)


class StreakStatusResponse(BaseModel):
    kind: str
    days_since_last_event: int | None
    description: str
    is_active: bool
    needs_action: bool


class StreakSnapshotResponse(BaseModel):
    user_id: str
    streak_id: str
    current_streak: int = Field(ge=0)
    longest_streak: int = Field(ge=0)
    last_event_date: datetime | None
    last_event_timezone: str | None
    streak_start_date: date | None
    total_events: int = Field(ge=0)
    today_event_count: int = Field(ge=0)
    events_required_per_day: int = Field(ge=1)
    goal_progress: float = Field(ge=0.0, le=1.0)
    freezes_remaining: int = Field(ge=0)
    freezes_needed: int | None
    updated_at: datetime | None
    is_stale: bool
    status: StreakStatusResponse


class StreakRecomputeRequest(BaseModel):
    events_required_per_day: int = Field(default=1, ge=1)
    leeway_hours: int = Field(default=0, ge=0, le=24)
    freeze_behavior: FreezeBehavior = FreezeBehavior.AUTO_CONSUME
    timezone: str | None = None


class StreakRecomputeResponse(BaseModel):
    snapshot: StreakSnapshotResponse
    freezes_consumed: list[str]


def _build_store() -> StreakStore:
    return SqlStreakStore(SessionLocal)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _assert_internal_access(request: Request) -> None:
    settings = get_settings()
    client_ip = extract_client_ip(
        request,
        trusted_proxies=settings.internal_api_trusted_proxies,
    )
    denial = internal_access_denial(
        expected_token=settings.internal_api_token,
        received_token=request.headers.get(INTERNAL_TOKEN_HEADER),
        client_ip=client_ip,
        allowlist=settings.internal_api_allowlist,
    )
    if denial is not None:
        logger.warning("internal_streaks_auth_failed", reason=denial.value, client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})


def _to_response(
    snapshot: StreakSnapshot,
    *,
    user_id: str,
    now_utc: datetime,
    timezone_name: str,
    leeway_hours: int = 0,
) -> StreakSnapshotResponse:
    try:
        zone = resolve_zone(timezone_name)
    except StreakValidationError as exc:
        raise HTTPException(status_code=422, detail={"code": "E_INVALID_TIMEZONE", "message": str(exc)}) from exc

    status = classify_streak_status(snapshot.last_event_date, now=now_utc, zone=zone)
    return StreakSnapshotResponse(
        user_id=user_id,
        streak_id=snapshot.streak_id,
        current_streak=snapshot.current_streak,
        longest_streak=snapshot.longest_streak,
        last_event_date=snapshot.last_event_date,
        last_event_timezone=snapshot.last_event_timezone,
        streak_start_date=snapshot.streak_start_date,
        total_events=snapshot.total_events,
        today_event_count=snapshot.today_event_count,
        events_required_per_day=snapshot.events_required_per_day,
        goal_progress=snapshot.goal_progress,
        freezes_remaining=snapshot.freezes_remaining,
        freezes_needed=freeze_gap_days(snapshot, now=now_utc, zone=zone, leeway_hours=leeway_hours),
        updated_at=snapshot.updated_at,
        is_stale=is_snapshot_stale(snapshot, now=now_utc),
        status=StreakStatusResponse(
            kind=status.kind.value,
            days_since_last_event=status.days_since_last_event,
            description=status.description,
            is_active=status.is_active,
            needs_action=status.needs_action,
        ),
    )


@router.get("/internal/streaks/{user_id}/{streak_id}", response_model=StreakSnapshotResponse)
async def get_streak_snapshot(
    request: Request,
    user_id: str,
    streak_id: str,
    tz: str | None = Query(default=None, max_length=64),
) -> StreakSnapshotResponse:
    _assert_internal_access(request)
    store = _build_store()
    snapshot = await store.get_snapshot(user_id=user_id, streak_id=streak_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail={"code": "E_STREAK_NOT_FOUND"})

    stored = await store.get_configuration(user_id=user_id, streak_id=streak_id)
    stored_timezone = stored[1] if stored is not None else None
    return _to_response(
        snapshot,
        user_id=user_id,
        now_utc=_utc_now(),
        timezone_name=tz or stored_timezone or get_settings().streak_default_timezone,
        leeway_hours=stored[0].leeway_hours if stored is not None else 0,
    )


@router.post("/internal/streaks/{user_id}/{streak_id}/recompute", response_model=StreakRecomputeResponse)
async def recompute_streak_snapshot(
    request: Request,
    user_id: str,
    streak_id: str,
    payload: StreakRecomputeRequest | None = None,
) -> StreakRecomputeResponse:
    _assert_internal_access(request)
    settings = get_settings()
    body = payload or StreakRecomputeRequest()
    timezone_name = body.timezone or settings.streak_default_timezone
    now_utc = _utc_now()

    try:
        configuration = StreakConfiguration(
            streak_id=streak_id,
            events_required_per_day=body.events_required_per_day,
            leeway_hours=body.leeway_hours,
            freeze_behavior=body.freeze_behavior,
        )
        store = _build_store()
        calculation = await recompute_streak(
            store,
            user_id=user_id,
            configuration=configuration,
            now=now_utc,
            zone=timezone_name,
            recent_days=settings.streak_recent_events_days,
        )
        await store.save_configuration(user_id=user_id, configuration=configuration, timezone=timezone_name)
    except StreakValidationError as exc:
        logger.info("internal_streak_recompute_rejected", user_id=user_id, streak_id=streak_id, error=str(exc))
        raise HTTPException(status_code=422, detail={"code": "E_INVALID_STREAK_REQUEST", "message": str(exc)}) from exc

    return StreakRecomputeResponse(
        snapshot=_to_response(
            calculation.snapshot,
            user_id=user_id,
            now_utc=now_utc,
            timezone_name=timezone_name,
            leeway_hours=configuration.leeway_hours,
        ),
        freezes_consumed=[consumption.freeze_id for consumption in calculation.freeze_consumptions],
    )
