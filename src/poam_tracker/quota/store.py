"""Counter/cache stores backing the quota enforcer and response cache.

Both stores offer the same two capabilities:

* ``hit``: atomic sliding-window check-and-record for one identifier;
* ``get``/``set``: string values with TTL-based expiry.

``RedisQuotaStore`` is the production backend and is safe across processes.
``MemoryQuotaStore`` serves single-process deployments and tests.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError

from poam_tracker.errors import StoreUnavailable

T = TypeVar("T")

Clock = Callable[[], float]

STORE_ERRORS: tuple[type[BaseException], ...] = (
    TimeoutError,
    RedisError,
    ConnectionError,
    OSError,
)


async def call_store(awaitable: Awaitable[T], timeout: float) -> T:
    """Await a store operation under a deadline.

    Raises:
        StoreUnavailable: timeout or connection-level failure.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except STORE_ERRORS as e:
        raise StoreUnavailable(type(e).__name__) from e


@dataclass(frozen=True)
class WindowHit:
    """Outcome of one sliding-window check.

    Attributes:
        allowed: Whether this call was admitted and recorded.
        count: Admitted calls currently inside the window, this one included.
        oldest_ms: Epoch milliseconds of the oldest call still in the window.
    """

    allowed: bool
    count: int
    oldest_ms: int


class QuotaStore(Protocol):
    async def hit(
        self, key: str, limit: int, window_ms: int, now_ms: int
    ) -> WindowHit: ...

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...


# Sliding-window log over a sorted set scored by epoch milliseconds.
# Runs as one script so concurrent callers on the same key serialize.
# Rejected calls are not recorded.
SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
local allowed = 0
if count < limit then
    redis.call('ZADD', key, now, member)
    count = count + 1
    allowed = 1
end
redis.call('PEXPIRE', key, window)

local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local oldest_ms = now
if oldest[2] then
    oldest_ms = tonumber(oldest[2])
end
return {allowed, count, oldest_ms}
"""


class RedisQuotaStore:
    """Quota store on a shared Redis instance.

    Accepts any ``redis.asyncio.Redis``, including the ARQ pool.
    """

    def __init__(self, redis: Redis) -> None:
        self._redis = redis
        self._sliding_window = redis.register_script(SLIDING_WINDOW_LUA)

    async def hit(
        self, key: str, limit: int, window_ms: int, now_ms: int
    ) -> WindowHit:
        member = f"{now_ms}-{uuid.uuid4().hex}"
        allowed, count, oldest_ms = await self._sliding_window(
            keys=[key], args=[limit, window_ms, now_ms, member]
        )
        return WindowHit(
            allowed=bool(int(allowed)), count=int(count), oldest_ms=int(oldest_ms)
        )

    async def get(self, key: str) -> str | None:
        value = await self._redis.get(key)
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode()
        return str(value)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.set(key, value, ex=ttl_seconds)


class MemoryQuotaStore:
    """Process-local quota store.

    Single-instance only. ``hit`` never awaits between reading and
    recording the window, so it is atomic under asyncio.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._windows: dict[str, list[int]] = defaultdict(list)
        self._values: dict[str, tuple[str, float]] = {}

    async def hit(
        self, key: str, limit: int, window_ms: int, now_ms: int
    ) -> WindowHit:
        cutoff = now_ms - window_ms
        timestamps = [t for t in self._windows[key] if t > cutoff]
        allowed = len(timestamps) < limit
        if allowed:
            timestamps.append(now_ms)
        self._windows[key] = timestamps
        oldest_ms = timestamps[0] if timestamps else now_ms
        return WindowHit(allowed=allowed, count=len(timestamps), oldest_ms=oldest_ms)

    async def get(self, key: str) -> str | None:
        entry = self._values.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._values[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._values[key] = (value, self._clock() + ttl_seconds)

    def cleanup(self, max_window_ms: int, now_ms: int | None = None) -> int:
        """Drop empty windows and expired values. Call periodically.

        Args:
            max_window_ms: Largest window in use; older timestamps are dead.
            now_ms: Current epoch milliseconds (defaults to the store clock).

        Returns:
            Number of keys removed.
        """
        now = self._clock()
        if now_ms is None:
            now_ms = int(now * 1000)
        cutoff = now_ms - max_window_ms
        cleaned = 0

        for key in list(self._windows):
            alive = [t for t in self._windows[key] if t > cutoff]
            if alive:
                self._windows[key] = alive
            else:
                del self._windows[key]
                cleaned += 1

        for key in [k for k, (_, exp) in self._values.items() if exp <= now]:
            del self._values[key]
            cleaned += 1

        return cleaned
