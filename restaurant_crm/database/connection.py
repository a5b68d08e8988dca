"""
Database Connection Management

One async engine per process. Stores receive sessions from here: scripts
and workflows through get_db(), request handlers through the FastAPI
dependency.
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
from sqlalchemy.pool import NullPool

from restaurant_crm.config import get_settings
from restaurant_crm.database.models import Base

logger = structlog.get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


async def init_database(url: Optional[str] = None, create_schema: bool = False) -> AsyncEngine:
    """
    Create the engine and check that the database answers.

    Args:
        url: Async database URL; the configured PostgreSQL URL by default
        create_schema: Create missing tables (development and tests only;
            deployed schemas are managed outside the app)

    Returns:
        AsyncEngine
    """
    global _engine, _session_factory

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    settings = get_settings()
    target = make_url(url or settings.database.async_url)

    # asyncpg keeps its own connections; no SQLAlchemy-side pool
    engine = create_async_engine(
        target,
        echo=settings.database.echo,
        pool_pre_ping=True,
        poolclass=NullPool,
    )

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if create_schema:
                await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.error("Failed to connect to database", database=target.database, error=str(e))
        await engine.dispose()
        raise

    _engine = engine
    _session_factory = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    logger.info(
        "Database connection established",
        backend=target.get_backend_name(),
        host=target.host,
        database=target.database,
        schema_created=create_schema,
    )
    return _engine


async def close_database() -> None:
    global _engine, _session_factory

    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Database engine disposed")


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Session in its own transaction: committed when the block exits
    cleanly, rolled back when it raises.

    Raises:
        RuntimeError: If init_database() has not run
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error("Rolling back session", error=str(e), error_type=type(e).__name__)
            await session.rollback()
            raise


async def get_db_dependency() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    async with get_db() as session:
        yield session


async def check_database_health() -> dict:
    """Round-trip SELECT 1; reports latency or the failure."""
    start = time.perf_counter()
    try:
        async with get_db() as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}

    return {"status": "healthy", "latency_ms": round((time.perf_counter() - start) * 1000, 2)}
