from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from streaks.core.config import get_settings


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


engine = create_async_engine(get_settings().database_url, pool_pre_ping=True)
SessionLocal = create_session_maker(engine)


async def dispose_engine() -> None:
    await engine.dispose()
