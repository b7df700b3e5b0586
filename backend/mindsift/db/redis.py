"""
Redis connection management.

Provides the async Redis client used by:
- The distributed ingestion lease lock
- Health checks

Celery talks to Redis through its own broker connection.
"""

import logging
from typing import Optional

from redis.asyncio import Redis, ConnectionPool

from mindsift.core.config import settings

logger = logging.getLogger(__name__)

_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


def init_redis() -> Redis:
    """
    Create the Redis connection pool and client.

    Connections open lazily on the first command, so a Redis outage at
    startup surfaces later as a lock backend error rather than a crash.
    """
    global _redis_pool, _redis_client

    if _redis_pool is None:
        logger.info("Initializing Redis connection pool")

        _redis_pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=20,
            socket_connect_timeout=5,
            socket_keepalive=True
        )
        _redis_client = Redis(connection_pool=_redis_pool)

    return _redis_client


def get_redis() -> Redis:
    """Get the shared Redis client, creating it on first use."""
    if _redis_client is None:
        return init_redis()
    return _redis_client


async def close_redis():
    """
    Close the Redis client and pool.

    Called during application shutdown.
    """
    global _redis_pool, _redis_client

    if _redis_client:
        logger.info("Closing Redis connection")
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool:
        await _redis_pool.disconnect()
        _redis_pool = None


async def check_redis_health() -> bool:
    """
    Check if Redis is healthy and responsive.

    Returns:
        bool: True if Redis is healthy, False otherwise
    """
    try:
        response = await get_redis().ping()
        return response is True
    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        return False
