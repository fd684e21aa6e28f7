"""Async SQLAlchemy engine and the per-request session dependency.

One engine (and pool) per process. Every request gets its own
AsyncSession from get_db(); services commit explicitly, and anything
left uncommitted when a handler raises is rolled back here.
"""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from vidstream.config import settings


def _engine_kwargs(url: str) -> dict:
    # SQLite (tests, local dev) uses its own pool class without sizing knobs.
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 5, "max_overflow": 15, "pool_pre_ping": True}


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_kwargs(settings.database_url),
)

# Objects stay readable after commit; responses are built from them.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one session per request."""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
