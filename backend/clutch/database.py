"""
Clutch Backend — Database Session Management
==============================================

What:  Async SQLAlchemy engine, session factory, and unit-of-work scope.
Why:   Centralizes all database connection logic in one place.
How:   Creates an async engine with connection pooling on first use, provides
       a session scope that auto-commits on success and auto-rolls-back
       on error.
Who:   Used by the SQL document store through clutch.dependencies.get_store.
When:  Engine is created lazily (the memory store never touches it);
       sessions are created per-request.

Connection Pooling Strategy:
    pool_size=20:     Persistent connections for normal load
    max_overflow=10:  Temporary connections for traffic spikes (total max = 30)
    pool_pre_ping:    Validates connections before use (catches stale connections)
    pool_recycle=3600: Recycles connections every hour
    SQLite URLs skip the pool arguments (SQLAlchemy picks its own pool class).
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from clutch.config import settings

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


# ── Engine Configuration ──────────────────────────────────────────────────
def get_engine() -> AsyncEngine:
    """Returns the process-wide async engine, creating it on first call."""
    global _engine
    if _engine is None:
        kwargs = {"echo": settings.log_level == "DEBUG"}
        if not settings.database_url.startswith("sqlite"):
            kwargs.update(
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_pre_ping=settings.db_pool_pre_ping,
                pool_recycle=3600,
            )
        _engine = create_async_engine(settings.database_url, **kwargs)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: rows are converted to dicts after commit
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares a single metadata object with Alembic (see alembic/env.py).
    """
    pass


# ── Session Scope ─────────────────────────────────────────────────────────
@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """
    Unit of work around one session.

    How it works:
        1. Creates a new session from the factory
        2. Yields it to the caller (the SQL store performs queries)
        3. On success: commits the transaction
        4. On error: rolls back the transaction
        5. Always: closes the session (returns connection to pool)
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """Closes all pooled connections during application shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
