"""
Async database engine and session management.

One engine and session factory are created lazily per process. Request
handlers receive a session through the ``get_db`` dependency; the session
is rolled back if the handler raises and always closed afterwards.
Services commit explicitly.
"""

import asyncio
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from storefront.core.config import get_settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def to_async_url(url: str) -> str:
    """
    Rewrite a plain PostgreSQL URL to use the asyncpg driver.

    Args:
        url: Database connection URL

    Returns:
        URL with the ``postgresql+asyncpg`` scheme
    """
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def create_engine() -> AsyncEngine:
    """Create the async engine from settings."""
    settings = get_settings()
    options: dict = {
        "echo": settings.debug,
        "pool_pre_ping": True,
        "connect_args": {
            "server_settings": {"application_name": settings.app_name},
            "command_timeout": 60,
        },
    }
    if settings.environment == "test":
        options["poolclass"] = NullPool
    else:
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
        options["pool_recycle"] = 3600

    engine = create_async_engine(to_async_url(settings.database_url), **options)
    logger.info(
        "Database engine created",
        environment=settings.environment,
        pool_size=options.get("pool_size"),
    )
    return engine


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_engine()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the process-wide session factory.

    Sessions do not expire objects on commit so that committed orders can
    still be serialized after the transaction ends.
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Database session factory created")
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a database session.

    Yields:
        Async session bound to the request
    """
    session = get_session_factory()()
    try:
        yield session
    except Exception as e:
        await session.rollback()
        logger.warning(
            "Database session rolled back",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await session.close()


async def check_database_health(max_retries: int = 3, retry_delay: float = 0.5) -> bool:
    """
    Check database connectivity with exponential backoff.

    Args:
        max_retries: Maximum number of connection attempts
        retry_delay: Base delay between attempts in seconds

    Returns:
        True if a ``SELECT 1`` succeeded, False otherwise
    """
    for attempt in range(max_retries):
        try:
            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (OperationalError, DBAPIError, OSError) as e:
            logger.warning(
                "Database health check failed",
                attempt=attempt + 1,
                max_retries=max_retries,
                error=str(e),
            )
            if attempt < max_retries - 1:
                await asyncio.sleep(retry_delay * (2**attempt))

    logger.error("Database health check failed after all retries", max_retries=max_retries)
    return False


async def close_database_connections() -> None:
    """Dispose of the engine on shutdown."""
    global _engine, _session_factory
    if _engine is None:
        return
    try:
        await _engine.dispose()
        logger.info("Database connections closed")
    finally:
        _engine = None
        _session_factory = None
