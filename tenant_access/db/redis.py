"""Redis connection management.

Mirrors engine.py: with REDIS_URL configured we build one shared
connection pool; without it ``redis_pool`` is None and the task queue
falls back to process memory, so tests and local dev need no Redis.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from tenant_access.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis, paired with lifespan_db()."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured, notification queue is in-memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis connected")
    except aioredis.RedisError:
        # Invitations still succeed; only their emails are delayed.
        logger.exception("Redis connection failed on startup")

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
