from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from time import perf_counter
from typing import TypeVar

import structlog

from streaks.db.session import dispose_engine

T = TypeVar("T")

logger = structlog.get_logger(__name__)


async def _run_with_fresh_db_pool(awaitable: Awaitable[T], *, job_name: str) -> T:
    # Pooled connections are bound to the loop that opened them.
    await dispose_engine()
    started_at = perf_counter()
    try:
        return await awaitable
    finally:
        await dispose_engine()
        logger.debug("async_job_finished", job_name=job_name, duration_ms=int((perf_counter() - started_at) * 1000))


def run_async_job(awaitable: Awaitable[T], *, job_name: str = "job") -> T:
    return asyncio.run(_run_with_fresh_db_pool(awaitable, job_name=job_name))
