"""Async engine, session factory and schema bootstrap.

Statement and lock-wait bounds are handed to the database itself, so a slow
statement fails inside the transaction and is rolled back there. Nothing on
the client side cancels a transaction after its commit has been sent.
"""
import asyncio
import logging
import os
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from newsletter.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()

_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def postgres_connect_args(settings: Settings) -> dict[str, Any]:
    """asyncpg arguments that make the server enforce the statement timeout."""
    timeout_ms = str(int(settings.db_statement_timeout * 1000))
    return {
        "timeout": settings.db_pool_timeout,
        "server_settings": {
            "statement_timeout": timeout_ms,
            "lock_timeout": timeout_ms,
        },
    }


def sqlite_connect_args(settings: Settings) -> dict[str, Any]:
    # sqlite3 waits this long on a locked database before raising OperationalError
    return {"check_same_thread": False, "timeout": settings.db_statement_timeout}


def create_engine_for_database(settings: Settings) -> AsyncEngine:
    if settings.use_sqlite:
        os.makedirs("data", exist_ok=True)
        logger.info("Using SQLite database for local development")
        engine = create_async_engine(
            settings.database_url,
            echo=settings.app_debug,
            connect_args=sqlite_connect_args(settings),
        )

        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

        return engine

    logger.info(f"Connecting to PostgreSQL at {settings.postgres_host}:{settings.postgres_port}")
    return create_async_engine(
        settings.database_url,
        echo=settings.app_debug,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        pool_recycle=settings.db_pool_recycle,
        pool_timeout=settings.db_pool_timeout,
        connect_args=postgres_connect_args(settings),
    )


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_engine_for_database(get_settings())
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_maker


async def init_db(max_retries: int = 5, base_delay: float = 2) -> None:
    """Create missing tables, retrying while the database comes up.

    Production databases are migrated with Alembic; this covers local
    development and tests.
    """
    import newsletter.models  # noqa: F401  registers the tables on Base.metadata

    for attempt in range(max_retries):
        try:
            async with get_engine().begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables initialized")
            return
        except Exception as e:
            if attempt == max_retries - 1:
                logger.error(f"Database initialization failed after {max_retries} attempts: {e}")
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(f"Database connection attempt {attempt + 1}/{max_retries} failed: {e}. Retrying in {delay}s...")
            await asyncio.sleep(delay)


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine."""
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None
