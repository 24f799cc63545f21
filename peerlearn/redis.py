"""Optional Redis connection used to fan out activity entries."""

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from peerlearn.logging_config import get_logger

logger = get_logger(__name__)

_redis: aioredis.Redis | None = None


def get_redis() -> aioredis.Redis | None:
    """Shared Redis connection, or None when live activity is not configured."""
    return _redis


async def init_redis(url: str) -> aioredis.Redis | None:
    """Connect when ``url`` is set; an unreachable Redis leaves live activity disabled."""
    global _redis
    if not url:
        logger.info("redis_disabled")
        return None
    client = aioredis.from_url(url, decode_responses=True)
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning("redis_unavailable", url=url, error=str(e))
        await client.aclose()
        return None
    _redis = client
    logger.info("redis_connected", url=url)
    return _redis


async def close_redis() -> None:
    """Close the Redis connection."""
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def activity_channel(user_id: str) -> str:
    return f"user:{user_id}:activity"
