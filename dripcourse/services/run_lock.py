"""Run lock for the daily unlock pass.

Two passes running at the same time could both see "no dedup record" for
the same pair and both send.  Triggers therefore take a lock keyed by the
run date before starting a pass, and release it when done.  The TTL frees
the lock if the holder dies mid-run; a live holder keeps extending it, so
a long pass never outlives its lock.

Redis-backed when REDIS_URL is set (shared by every API instance and the
CLI), in-memory otherwise.
"""

from __future__ import annotations

import secrets
import time
from typing import Protocol, runtime_checkable

from dripcourse.db.redis import redis_pool

DEFAULT_LOCK_TTL_SECONDS = 15 * 60


@runtime_checkable
class RunLock(Protocol):
    async def acquire(self, name: str, ttl_seconds: int) -> str | None:
        """Take the lock.  Returns an owner token, or None if already held."""
        ...

    async def release(self, name: str, token: str) -> None:
        """Release the lock if ``token`` still owns it."""
        ...

    async def extend(self, name: str, token: str, ttl_seconds: int) -> bool:
        """Push the expiry out to ``ttl_seconds`` from now.  False if lost."""
        ...


class InMemoryRunLock:
    """Per-process lock for tests and local dev."""

    def __init__(self) -> None:
        # name -> (owner token, expiry as Unix seconds)
        self._held: dict[str, tuple[str, float]] = {}

    async def acquire(self, name: str, ttl_seconds: int) -> str | None:
        current = self._held.get(name)
        if current is not None and current[1] > time.time():
            return None
        token = secrets.token_hex(8)
        self._held[name] = (token, time.time() + ttl_seconds)
        return token

    async def release(self, name: str, token: str) -> None:
        current = self._held.get(name)
        if current is not None and current[0] == token:
            del self._held[name]

    async def extend(self, name: str, token: str, ttl_seconds: int) -> bool:
        current = self._held.get(name)
        if current is None or current[0] != token or current[1] <= time.time():
            return False
        self._held[name] = (token, time.time() + ttl_seconds)
        return True


class RedisRunLock:
    """SET NX EX lock, released with a compare-and-delete script."""

    _PREFIX = "lock:unlock-pass:"

    # Delete only if the stored token is ours; a lock that expired and was
    # re-taken by another runner must survive our release.
    _RELEASE_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("DEL", KEYS[1])
    end
    return 0
    """

    _EXTEND_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("EXPIRE", KEYS[1], ARGV[2])
    end
    return 0
    """

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def acquire(self, name: str, ttl_seconds: int) -> str | None:
        token = secrets.token_hex(8)
        acquired = await self._redis.set(
            f"{self._PREFIX}{name}", token, nx=True, ex=ttl_seconds
        )
        return token if acquired else None

    async def release(self, name: str, token: str) -> None:
        await self._redis.eval(self._RELEASE_SCRIPT, 1, f"{self._PREFIX}{name}", token)

    async def extend(self, name: str, token: str, ttl_seconds: int) -> bool:
        extended = await self._redis.eval(
            self._EXTEND_SCRIPT, 1, f"{self._PREFIX}{name}", token, ttl_seconds
        )
        return bool(extended)


if redis_pool is not None:
    run_lock: RunLock = RedisRunLock(redis_pool)
else:
    run_lock = InMemoryRunLock()
