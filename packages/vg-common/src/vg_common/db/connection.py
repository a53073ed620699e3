"""
Async database connection management for VoxGuard.

Provides SQLAlchemy async engine and session factory creation, the
record-store factory that picks the configured backend, and a health
check for the PostgreSQL backend.
"""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from vg_common.config import Settings, get_settings
from vg_common.db.memory_store import MemoryRecordStore
from vg_common.db.store import RecordStore, SqlRecordStore


def build_engine(dsn: str | None = None, pool_size: int | None = None) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Args:
        dsn: Database connection string.  Falls back to ``Settings.db_uri``.
        pool_size: Connection-pool size.  Falls back to ``Settings.db_pool_size``.

    Returns:
        A configured ``AsyncEngine`` instance.
    """
    settings = get_settings()
    return create_async_engine(
        dsn or settings.db_uri,
        pool_size=pool_size or settings.db_pool_size,
        pool_pre_ping=True,
        echo=False,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to *engine*."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# ── Module-level convenience instances ──

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the module-level async engine, creating it lazily."""
    global _engine  # noqa: PLW0603
    if _engine is None:
        _engine = build_engine()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the module-level session factory, creating it lazily."""
    global _session_factory  # noqa: PLW0603
    if _session_factory is None:
        _session_factory = build_session_factory(get_engine())
    return _session_factory


async def dispose_engine() -> None:
    """Dispose the module-level engine, if one was created."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def build_record_store(settings: Settings | None = None) -> RecordStore:
    """Create the record store selected by ``Settings.store_backend``.

    Args:
        settings: Settings to read.  Falls back to ``get_settings()``.

    Returns:
        A :class:`SqlRecordStore` bound to the shared session factory, or
        a fresh :class:`MemoryRecordStore`.
    """
    settings = settings or get_settings()
    if settings.store_backend == "memory":
        return MemoryRecordStore()
    return SqlRecordStore(get_session_factory())


async def check_database_health() -> bool:
    """Execute a lightweight query to verify database connectivity.

    Returns:
        ``True`` if the database responds, ``False`` otherwise.
    """
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError):
        return False
