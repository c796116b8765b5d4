"""
Database Connection Management

Async database engine and session lifecycle with SQLAlchemy 2.0.
Implements engine creation, schema provisioning, health checks and
graceful shutdown.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from storefront.config import get_settings
from storefront.database.errors import constraint_guard
from storefront.database.models import Base

logger = structlog.get_logger(__name__)

# Global engine and session factory
_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """SQLite ignores foreign keys unless enabled on every connection"""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite engines get foreign key enforcement switched on for every new
    connection; without it none of the ON DELETE / ON UPDATE actions apply.

    Args:
        url: SQLAlchemy database URL (postgresql+asyncpg, sqlite+aiosqlite)
        echo: Echo SQL statements

    Returns:
        AsyncEngine: The new engine
    """
    engine_config = {
        "echo": echo,
        "pool_pre_ping": True,  # Verify connections before use
    }

    # AsyncPG handles its own connection pooling internally
    if url.startswith("postgresql"):
        engine_config["poolclass"] = NullPool

    engine = create_async_engine(url, **engine_config)

    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to ``engine``"""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_database(url: Optional[str] = None) -> AsyncEngine:
    """
    Initialize the database engine.

    Args:
        url: Override the configured database URL

    Returns:
        AsyncEngine: The initialized database engine
    """
    global _engine, _async_session_factory

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    settings = get_settings()
    _engine = create_engine(url or settings.database.async_url, echo=settings.database.echo)
    _async_session_factory = create_session_factory(_engine)

    # Verify connection
    try:
        async with _engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info(
            "Database connection established",
            dialect=_engine.dialect.name,
            database=_engine.url.database,
        )
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise

    return _engine


async def close_database() -> None:
    """
    Close the database engine.

    Gracefully closes all pooled connections.
    """
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connection pool closed")


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Returns:
        AsyncEngine: The active database engine

    Raises:
        RuntimeError: If database is not initialized
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine


async def create_schema(engine: Optional[AsyncEngine] = None) -> None:
    """Create every table, constraint and index that does not exist yet"""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Schema created", tables=len(Base.metadata.tables))


async def drop_schema(engine: Optional[AsyncEngine] = None) -> None:
    """Drop every table of the schema"""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("Schema dropped", tables=len(Base.metadata.tables))


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Get a database session.

    Context manager that provides a database session and handles
    commit/rollback/close automatically. Integrity errors raised on commit
    surface as ``ConstraintViolation``; nothing of the failed unit of work
    is committed.

    Yields:
        AsyncSession: Database session

    Example:
        async with get_db() as db:
            await UserRepository(db).add(user)
    """
    if _async_session_factory is None:
        logger.error("Database not initialized when get_db() called")
        raise RuntimeError("Database not initialized. Call init_database() first.")

    logger.debug("Creating new database session")
    session = _async_session_factory()
    try:
        yield session
        with constraint_guard("commit"):
            await session.commit()
        logger.debug("Database session committed successfully")
    except Exception as e:
        logger.error("Database session error, rolling back", error=str(e), error_type=type(e).__name__)
        await session.rollback()
        raise
    finally:
        await session.close()
        logger.debug("Database session closed")


async def check_database_health() -> dict:
    """
    Check database health status.

    Returns:
        dict: Health status with latency information
    """
    import time

    try:
        start = time.perf_counter()
        async with get_db() as db:
            await db.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
            "dialect": get_engine().dialect.name,
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }
