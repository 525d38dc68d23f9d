"""Async database access for the event and content stores.

One engine per process, created on first use from ``DATABASE_URL``.
Repositories receive ``get_session`` as their session factory and open a
short-lived session per operation; the scheduler's conditional writes rely
on each of those sessions committing independently.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.notetaker.config import get_settings

_engine: AsyncEngine | None = None


class Base(DeclarativeBase):
    """Declarative base shared by ``events.models`` and ``content.models``."""


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.DATABASE_URL,
            pool_size=settings.DATABASE_POOL_SIZE,
            pool_pre_ping=True,
            echo=settings.DATABASE_ECHO,
        )
    return _engine


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Session factory handed to the repositories."""
    async with AsyncSession(get_engine(), expire_on_commit=False) as session:
        yield session


async def ping_database() -> None:
    """Round-trip ``SELECT 1``; raises whatever the driver raises."""
    async with get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))


# ── Lifespan Hooks ───────────────────────────────────────────────────────────


async def init_db() -> None:
    """Create missing tables. Alembic migrations remain the deployed schema."""
    # Importing the model modules registers their tables on Base.metadata
    import src.notetaker.content.models  # noqa: F401
    import src.notetaker.events.models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
