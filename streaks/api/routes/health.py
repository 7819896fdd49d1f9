from __future__ import annotations

import asyncio
from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from streaks.core.config import get_settings
from streaks.db.session import SessionLocal
from streaks.workers.celery_app import celery_app

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)


def _ok_check(extra: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"status": "ok"}
    if extra:
        payload.update(extra)
    return payload


def _failed_check(error: str) -> dict[str, str]:
    return {"status": "failed", "error": error}


async def _check_database() -> dict[str, Any]:
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return _ok_check()
    except Exception as exc:
        logger.warning("health_database_check_failed", error_type=type(exc).__name__)
        return _failed_check("database_unavailable")


async def _check_redis() -> dict[str, Any]:
    redis_client: Redis | None = None
    try:
        redis_client = Redis.from_url(get_settings().redis_url)
        pong = await redis_client.ping()
        if pong is not True:
            return _failed_check(f"unexpected redis ping response: {pong!r}")
        return _ok_check()
    except Exception as exc:
        logger.warning("health_redis_check_failed", error_type=type(exc).__name__)
        return _failed_check("redis_unavailable")
    finally:
        if redis_client is not None:
            await redis_client.aclose()


def _check_celery_worker_sync() -> dict[str, Any]:
    try:
        inspector = celery_app.control.inspect(timeout=1.0)
        if inspector is None:
            return _failed_check("celery inspector is unavailable")

        replies = inspector.ping() or {}
        if not replies:
            return _failed_check("no streak workers responded to ping")
        return _ok_check({"workers": len(replies)})
    except Exception as exc:
        logger.warning("health_celery_check_failed", error_type=type(exc).__name__)
        return _failed_check("celery_unavailable")


async def _check_celery_worker() -> dict[str, Any]:
    return await asyncio.to_thread(_check_celery_worker_sync)


async def _collect_checks(*, include_workers: bool) -> dict[str, dict[str, Any]]:
    names = ["database", "redis"]
    probes = [_check_database(), _check_redis()]
    if include_workers:
        names.append("celery")
        probes.append(_check_celery_worker())
    results = await asyncio.gather(*probes)
    return dict(zip(names, results))


def _all_checks_ok(checks: dict[str, dict[str, Any]]) -> bool:
    return all(check.get("status") == "ok" for check in checks.values())


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}


@router.get("/health")
async def health() -> JSONResponse:
    checks = await _collect_checks(include_workers=True)
    is_healthy = _all_checks_ok(checks)
    return JSONResponse(
        status_code=status.HTTP_200_OK if is_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ok" if is_healthy else "degraded",
            "checks": checks,
        },
    )


@router.get("/ready")
async def ready() -> JSONResponse:
    # Readiness covers the stores the API reads from, not the worker pool.
    checks = await _collect_checks(include_workers=False)
    is_ready = _all_checks_ok(checks)
    return JSONResponse(
        status_code=status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if is_ready else "not_ready",
            "checks": checks,
        },
    )
