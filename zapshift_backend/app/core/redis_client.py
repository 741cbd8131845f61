"""
Redis connection for the per-transaction reconciliation lock.

Redis is optional at runtime: when it is unreachable the lock is
bypassed and the health check reports it as down.
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError
from zapshift_backend.app.core.config import settings

logger = logging.getLogger("zapshift.redis")

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """FastAPI dependency; overridden in tests."""
    return redis_client


async def ping_redis() -> bool:
    try:
        return bool(await redis_client.ping())
    except RedisError as e:
        logger.warning("Redis ping failed: %s", e)
        return False


async def close_redis() -> None:
    try:
        await redis_client.aclose()
    except RedisError as e:
        logger.warning("Error closing Redis connection: %s", e)
