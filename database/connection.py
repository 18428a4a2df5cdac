"""
Database Connection

Lazily created async engine and session factory. API requests get a
session through the get_db dependency; worker jobs and scripts use
get_db_context.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional, Dict, Any

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine
)

from config.settings import settings


_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def engine_options(url: str) -> Dict[str, Any]:
    """Pool settings for a database URL. SQLite has no connection pool to size."""
    options: Dict[str, Any] = {"echo": settings.database_echo}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
        )
    return options


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))
    return _engine


def get_session_factory() -> async_sessionmaker:
    global _session_factory
    if _session_factory is None:
        # Services return ORM objects after committing; keep them loaded
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False
        )
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session.

    Services commit their own work. A request that fails part way has
    its open transaction rolled back here.
    """
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_context():
    """
    Session for code running outside a request.

        async with get_db_context() as db:
            await process_due_schedules(db)
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(drop_existing: bool = False):
    """Create all tables (development and demo setups; production uses migrations)."""
    from database.models import Base

    async with get_engine().begin() as conn:
        if drop_existing:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Dispose of the engine so the next call builds a fresh one."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
