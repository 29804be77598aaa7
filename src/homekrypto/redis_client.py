"""Redis connection — optional backend for per-IP request throttling.

Learn: Redis is never required. If it is unreachable at startup the
connection stays unset, get_redis() raises, and the rate limit
middleware simply lets requests through. Account lockout lives in the
database, not here, so brute-force protection per account still holds.
"""

from typing import Optional

import redis.asyncio as aioredis

from homekrypto.config import settings

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis(url: Optional[str] = None) -> aioredis.Redis:
    """Connect and ping. Only a reachable server becomes the global pool."""
    global _redis
    client = aioredis.from_url(
        url or settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise
    _redis = client
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis
