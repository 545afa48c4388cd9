"""
Warehouse Connection Management

Async engine and session factory for the analytical store (SQLAlchemy 2.0).
One engine per process; sessions are short-lived and scoped with get_db().
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from erp_etl.config.settings import WarehouseSettings, get_settings

logger = structlog.get_logger(__name__)

# Global engine and session factory
_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _engine_options(url: str, settings: WarehouseSettings) -> dict:
    """Dialect-specific engine arguments"""
    backend = make_url(url).get_backend_name()
    options = {
        "echo": settings.echo,
        "pool_pre_ping": True,
    }

    if backend == "sqlite":
        # In-memory SQLite lives as long as its single connection
        options["poolclass"] = StaticPool
    else:
        # asyncpg keeps its own connections; no SQLAlchemy pool on top
        options["poolclass"] = NullPool

    if make_url(url).get_driver_name() == "asyncpg":
        options["connect_args"] = {"command_timeout": settings.command_timeout}

    return options


async def init_database(
    settings: Optional[WarehouseSettings] = None,
    url: Optional[str] = None,
) -> AsyncEngine:
    """
    Initialize the warehouse engine.

    Args:
        settings: Warehouse settings (defaults to the application settings)
        url: Database URL overriding the one derived from settings

    Returns:
        AsyncEngine: The initialized database engine
    """
    global _engine, _async_session_factory

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    settings = settings or get_settings().warehouse
    url = url or settings.async_url

    _engine = create_async_engine(url, **_engine_options(url, settings))

    _async_session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    # Verify connection
    try:
        async with _engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info(
            "Database connection established",
            url=_engine.url.render_as_string(hide_password=True),
        )
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        await close_database()
        raise

    return _engine


async def close_database() -> None:
    """Dispose of the engine and forget the session factory."""
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connection closed")


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the current engine"""
    if _async_session_factory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _async_session_factory


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Get a database session.

    Commits when the block exits cleanly, rolls back and re-raises otherwise.

    Example:
        async with get_db() as db:
            result = await db.execute(query)
    """
    session = get_session_factory()()
    try:
        yield session
        await session.commit()
    except Exception as e:
        logger.debug("Database session error, rolling back", error=str(e), error_type=type(e).__name__)
        await session.rollback()
        raise
    finally:
        await session.close()


async def create_schema() -> None:
    """Create any missing warehouse tables and indexes."""
    from erp_etl.warehouse.models import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Warehouse schema ensured", tables=len(Base.metadata.tables))


async def check_database_health() -> dict:
    """
    Check database health status.

    Returns:
        dict: Health status with latency information
    """
    try:
        start = time.perf_counter()
        async with get_db() as db:
            await db.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }
