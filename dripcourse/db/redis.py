"""Redis connection management.

Mirrors engine.py: with REDIS_URL set we build one shared async client;
without it ``redis_pool`` is None and every consumer falls back to an
in-memory implementation.  Redis only backs the unlock-pass run lock, so
losing it degrades to per-process locking rather than failing requests.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from dripcourse.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=10,
    )
else:
    redis_pool = None


async def check_redis() -> bool:
    if redis_pool is None:
        return False
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except Exception:
        logger.exception("Redis health check failed")
        return False
    return True


@asynccontextmanager
async def lifespan_redis():
    if redis_pool is None:
        logger.info("No REDIS_URL configured; run lock is per-process")
        yield
        return

    if await check_redis():
        logger.info("Redis connected")
    else:
        # Keep serving; the run lock call will surface the error per request.
        logger.warning("Redis unreachable on startup")

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
