"""
Redis connection and stream names.

Provides Redis clients for both sync and async operations. The async client
is bound to the event loop that created it; close it before that loop ends.
"""

from typing import Optional
from redis import Redis
from redis.asyncio import Redis as AsyncRedis
from deliverywatch.core.config import settings

# Synchronous Redis client (for Celery tasks)
redis_client: Optional[Redis] = None


def get_redis() -> Redis:
    """Get synchronous Redis client."""
    global redis_client
    if redis_client is None:
        redis_client = Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
        )
    return redis_client


# Async Redis client (for code running on the batch event loop)
async_redis_client: Optional[AsyncRedis] = None


async def get_async_redis() -> AsyncRedis:
    """Get async Redis client."""
    global async_redis_client
    if async_redis_client is None:
        async_redis_client = AsyncRedis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
        )
    return async_redis_client


async def close_async_redis() -> None:
    global async_redis_client

    if async_redis_client is not None:
        await async_redis_client.aclose()
        async_redis_client = None


async def close_redis() -> None:
    """Close Redis connections."""
    global redis_client

    if redis_client is not None:
        redis_client.close()
        redis_client = None

    await close_async_redis()


class StreamNames:
    """Redis Stream names for downstream consumers."""
    SPIKE_COUNTS = "delivery-spike-counts"
    ALERTS = "alerts"
    METRICS = "metrics"
