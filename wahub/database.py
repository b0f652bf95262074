"""Database connection and session management."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine,
)
from sqlalchemy.pool import NullPool, AsyncAdaptedQueuePool

logger = structlog.get_logger()

# Lazy engine initialization
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _engine_options(database_url: str) -> dict:
    """Pool settings for the configured backend and environment."""
    from wahub.config import settings

    options: dict = {"echo": settings.app_debug}

    # SQLite (tests, local tooling) and non-production runs get no pooling
    if make_url(database_url).get_backend_name() == "sqlite" or not settings.is_production:
        options["poolclass"] = NullPool
        return options

    options["poolclass"] = AsyncAdaptedQueuePool
    options["pool_size"] = settings.database_pool_size
    options["max_overflow"] = settings.database_max_overflow
    options["pool_pre_ping"] = True
    options["pool_recycle"] = 3600
    return options


def get_engine() -> AsyncEngine:
    """Get or create the database engine (lazy initialization)."""
    global _engine
    if _engine is None:
        from wahub.config import settings

        _engine = create_async_engine(
            settings.database_url,
            **_engine_options(settings.database_url),
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


@asynccontextmanager
async def _unit_of_work(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Commit on success, roll back on any error."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """One transaction per request (FastAPI dependency)."""
    async with _unit_of_work(get_session_factory()) as session:
        yield session


async def get_session_factory_dependency() -> async_sessionmaker[AsyncSession]:
    """Session factory for handlers that open their own transactions (webhooks)."""
    return get_session_factory()


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """Transactional session for scripts and background jobs."""
    async with _unit_of_work(get_session_factory()) as session:
        yield session


async def check_db_connection() -> bool:
    """Check database connectivity."""
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("database_unreachable", error=str(e))
        return False


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
