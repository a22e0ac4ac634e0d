"""Async SQLAlchemy engine and sessions for the response store.

A process-wide engine is created lazily from DatabaseSettings. Stores that
need their own engine (tests, scripts pointing at another file) call
create_engine() directly and own its lifetime.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from config.database import DatabaseSettings, get_database_settings

logger = logging.getLogger(__name__)

_async_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def create_engine(settings: Optional[DatabaseSettings] = None) -> AsyncEngine:
    """
    Build a new async engine.

    SQLite gets NullPool (one connection per checkout); server databases get
    a sized pool with pre-ping.
    """
    settings = settings or get_database_settings()

    logger.info(
        "Creating async database engine",
        extra={'extra_data': {
            "driver": settings.driver,
            "database": str(settings.sqlite_path) if settings.is_sqlite else settings.name,
        }},
    )

    if settings.is_sqlite:
        pool_options = {"poolclass": NullPool}
    else:
        pool_options = {
            "pool_size": settings.pool_size,
            "max_overflow": settings.max_overflow,
            "pool_timeout": settings.pool_timeout,
            "pool_recycle": settings.pool_recycle,
            "pool_pre_ping": True,
        }

    engine = create_async_engine(
        settings.async_url,
        echo=settings.echo_sql,
        connect_args=settings.get_connect_args(),
        **pool_options,
    )
    _setup_engine_events(engine, settings)
    return engine


def _setup_engine_events(engine: AsyncEngine, settings: DatabaseSettings) -> None:
    if not settings.is_sqlite:
        return

    @event.listens_for(engine.sync_engine, "connect")
    def on_connect(dbapi_connection, connection_record):
        # Foreign keys are off by default in SQLite.
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory that keeps loaded objects usable after commit."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_async_engine(settings: Optional[DatabaseSettings] = None) -> AsyncEngine:
    """Process-wide engine; `settings` only matters on the first call."""
    global _async_engine

    if _async_engine is None:
        _async_engine = create_engine(settings)
    return _async_engine


def get_async_session_factory(
    settings: Optional[DatabaseSettings] = None,
) -> async_sessionmaker[AsyncSession]:
    global _async_session_factory

    if _async_session_factory is None:
        _async_session_factory = get_session_factory(get_async_engine(settings))
    return _async_session_factory


@asynccontextmanager
async def get_async_session(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Unit of work: commits on normal exit, rolls back on error.

    Usage:
        async with get_async_session() as db:
            db.add(record)
    """
    factory = session_factory or get_async_session_factory()
    db = factory()
    try:
        yield db
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    finally:
        await db.close()


async def init_database(
    settings: Optional[DatabaseSettings] = None,
    engine: Optional[AsyncEngine] = None,
) -> None:
    """Create the wizard tables that do not exist yet."""
    from database.models import Base

    engine = engine or get_async_engine(settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Wizard tables initialized")


async def close_database() -> None:
    """Dispose of the process-wide engine, if one was created."""
    global _async_engine, _async_session_factory

    if _async_engine is not None:
        logger.info("Closing database engine")
        await _async_engine.dispose()
    _async_engine = None
    _async_session_factory = None
