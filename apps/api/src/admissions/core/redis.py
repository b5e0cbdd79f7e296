"""
Redis Connection

Shared async Redis client. Redis is optional: when it is not connected the
rate limiter falls back to its in-process store.
"""

import logging

from redis.asyncio import Redis, from_url

from admissions.core.config import settings

logger = logging.getLogger(__name__)

redis_client: Redis | None = None


async def init_redis() -> Redis:
    """Connect to Redis on application startup."""
    global redis_client
    client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await client.ping()
    redis_client = client
    logger.info("Redis connected")
    return redis_client


def get_redis_client() -> Redis | None:
    """Return the connected client, or None when Redis is unavailable."""
    return redis_client


async def get_redis() -> Redis | None:
    """FastAPI dependency form of ``get_redis_client``."""
    return redis_client


async def close_redis() -> None:
    """Close the Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
