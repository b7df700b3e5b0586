"""
Database Session Management

Owns the async engine, the session factory and their lifecycle.

Architecture Flow:
------------------
Application Start → Create Engine → Connection Pool Ready
↓
API Request / Task → Get Session → Repository calls → Commit/Rollback → Close
↓
Application Shutdown → Dispose Engine → Close All Connections
"""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool

from mindsift.core.config import settings
from mindsift.core.logging import get_logger

logger = get_logger(__name__)


# ================================
# Database Engine Configuration
# ================================

def get_engine_config() -> dict[str, Any]:
    """
    Build engine keyword arguments for the current environment.

    Development and production use a queue pool sized by DB_POOL_SIZE and
    DB_MAX_OVERFLOW; every other environment (test, staging) uses NullPool so
    that each session gets a fresh connection.
    """
    config: dict[str, Any] = {
        "echo": settings.DB_ECHO,
        # Detect connections dropped by database restarts
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "connect_args": {
            "server_settings": {
                "application_name": settings.APP_NAME,
            }
        },
    }

    if settings.is_development or settings.is_production:
        logger.info(
            "configuring_database_engine",
            environment=settings.APP_ENV,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )
        config.update({
            "poolclass": AsyncAdaptedQueuePool,
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_timeout": 30,
        })
        if settings.is_production:
            config["pool_recycle"] = 7200
    else:
        logger.info(
            "configuring_database_engine",
            environment=settings.APP_ENV,
            pool_type="NullPool",
        )
        config["poolclass"] = NullPool

    return config


def create_engine() -> AsyncEngine:
    """Create the async engine. DATABASE_URL must use the asyncpg driver."""
    engine_config = get_engine_config()
    engine = create_async_engine(settings.DATABASE_URL, **engine_config)

    logger.info(
        "database_engine_created",
        driver="asyncpg",
        pool_size=engine_config.get("pool_size", "NullPool"),
    )
    return engine


# ================================
# Global Engine Instance
# ================================
# The engine connects lazily, so importing this module never touches the network.
engine: AsyncEngine = create_engine()


# ================================
# Session Factory
# ================================
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
)


# ================================
# Session Lifecycle Functions
# ================================

async def init_db() -> None:
    """
    Verify connectivity and, in development, create missing tables.

    Creates the pgvector extension first so the chunk embedding column can be
    declared. Called from mindsift.main.lifespan() on startup.
    """
    logger.info("initializing_database")

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))

        logger.info("database_connection_successful")

        if settings.is_development:
            # Import models so every table is registered on the metadata
            import mindsift.models  # noqa: F401
            from mindsift.db.base import Base

            async with engine.begin() as conn:
                await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                await conn.run_sync(Base.metadata.create_all)

            logger.info("database_tables_created")

    except Exception as e:
        logger.error(
            "database_initialization_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise


async def close_db() -> None:
    """Dispose of the connection pool on shutdown."""
    logger.info("closing_database_connections")

    try:
        await engine.dispose()
        logger.info("database_connections_closed")
    except Exception as e:
        # Shutdown continues even if the pool cannot be disposed cleanly
        logger.error(
            "database_closure_failed",
            error=str(e),
            error_type=type(e).__name__,
        )


# ================================
# Database Health Check
# ================================

async def check_db_health() -> bool:
    """Return True when a trivial query succeeds."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(
            "database_health_check_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        return False
