"""Database setup and configuration using async SQLAlchemy."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlalchemy import MetaData
from sqlalchemy import event
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm import Mapped
from sqlalchemy.orm import mapped_column
from sqlalchemy.pool import NullPool
from sqlalchemy.sql import func

from quest_tracker.shared.config import Settings
from quest_tracker.shared.config import get_settings

logger = logging.getLogger(__name__)

# Database naming convention for consistent constraint names
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all database models with common timestamp fields."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    # Common timestamp fields for all models
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        doc="Timestamp when the record was created"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        doc="Timestamp when the record was last updated"
    )


# Global engine and session maker
_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None

# Seconds a SQLite connection waits for a competing writer to commit
SQLITE_BUSY_TIMEOUT = 30


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _connect_args(database_url: str) -> dict:
    return {"timeout": SQLITE_BUSY_TIMEOUT} if _is_sqlite(database_url) else {}


def _enable_sqlite_pragmas(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        # WAL lets progress reads proceed while a version-guarded write commits
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured environment.

    Testing uses ``NullPool`` so every session opens its own connection; a
    read and the compare-and-set write that follows it must never end up in
    one shared transaction.
    """
    database_url = settings.effective_database_url
    echo = settings.debug and settings.log_level == "DEBUG"

    if settings.is_testing:
        pool_kwargs = {"poolclass": NullPool}
    else:
        pool_kwargs = {
            "pool_size": 20,
            "max_overflow": 30,
            "pool_pre_ping": True,
            "pool_recycle": 3600,  # 1 hour
        }

    engine = create_async_engine(
        database_url,
        echo=echo,
        connect_args=_connect_args(database_url),
        **pool_kwargs,
    )
    if _is_sqlite(database_url):
        _enable_sqlite_pragmas(engine)
    return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the catalog and progress operations.

    Objects stay usable after commit because operations convert rows to
    immutable documents outside the transaction.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    """Get the global database engine."""
    global _engine
    if _engine is None:
        _engine = create_engine(get_settings())
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get the global session maker."""
    global _session_maker
    if _session_maker is None:
        _session_maker = create_session_maker(get_engine())
    return _session_maker


async def init_database() -> None:
    """Create the global engine and check that the database answers."""
    global _engine, _session_maker

    settings = get_settings()
    logger.info(f"Initializing quest database at {settings.effective_database_url}")

    _engine = create_engine(settings)
    _session_maker = create_session_maker(_engine)

    try:
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Failed to connect to quest database: {e}")
        raise
    logger.info("Quest database connection successful")


async def close_database() -> None:
    """Dispose of the global engine."""
    global _engine, _session_maker

    if _engine is not None:
        logger.info("Closing quest database connections")
        await _engine.dispose()
    _engine = None
    _session_maker = None


async def create_tables() -> None:
    """Create the quests and quest_progress tables if missing."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Quest tables ready: {', '.join(sorted(Base.metadata.tables))}")


async def drop_tables() -> None:
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("Quest tables dropped")


def create_test_engine(database_url: str) -> AsyncEngine:
    """Create a test engine with one connection per session."""
    return create_async_engine(
        database_url,
        poolclass=NullPool,
        connect_args=_connect_args(database_url),
    )
