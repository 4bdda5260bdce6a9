"""Tenant-scoped response cache for side-effect-free GET handlers."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import JSONResponse, Response

from poam_tracker.errors import StoreUnavailable
from poam_tracker.quota.store import QuotaStore, call_store

logger = structlog.get_logger()

CACHE_STATUS_HEADER = "X-Cache"

MISS = object()


class CachePolicy(BaseModel):
    """Per-call-site cache options."""

    model_config = ConfigDict(frozen=True)

    ttl_seconds: int = Field(gt=0, le=86_400)
    cache_key: str = Field(min_length=1, max_length=200, pattern=r"^\S+$")


class ResponseCache:
    """JSON cache keyed by ``(namespace, key)``.

    Expiry is left to the store's TTL. Store failures are logged and treated
    as misses; writes are skipped.
    """

    def __init__(
        self,
        store: QuotaStore,
        *,
        timeout: float = 0.5,
        key_prefix: str = "cache",
    ) -> None:
        self._store = store
        self._timeout = timeout
        self._key_prefix = key_prefix

    def _key(self, namespace: str, key: str) -> str:
        return f"{self._key_prefix}:{namespace}:{key}"

    async def lookup(self, namespace: str, key: str) -> Any:
        """Return the cached value, or the ``MISS`` sentinel."""
        try:
            raw = await call_store(
                self._store.get(self._key(namespace, key)), self._timeout
            )
        except StoreUnavailable as e:
            logger.warning(
                "cache_store_unavailable", op="lookup", key=key, error=str(e)
            )
            return MISS
        if raw is None:
            return MISS
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("cache_entry_corrupt", namespace=namespace, key=key)
            return MISS

    async def store(self, namespace: str, key: str, value: Any, ttl: int) -> bool:
        """Serialize and store *value*. Returns False if the write was skipped."""
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        serialized = json.dumps(value)
        try:
            await call_store(
                self._store.set(self._key(namespace, key), serialized, ttl),
                self._timeout,
            )
        except StoreUnavailable as e:
            logger.warning(
                "cache_store_unavailable", op="store", key=key, error=str(e)
            )
            return False
        return True

    async def get_or_compute(
        self,
        namespace: str,
        policy: CachePolicy,
        handler: Callable[[], Awaitable[Response]],
    ) -> Response:
        """Serve from cache or run *handler* and cache a 200 JSON result.

        Exceptions from *handler* propagate unchanged and nothing is written.
        """
        cached = await self.lookup(namespace, policy.cache_key)
        if cached is not MISS:
            return JSONResponse(cached, headers={CACHE_STATUS_HEADER: "HIT"})

        response = await handler()
        if response.status_code == 200 and isinstance(response, JSONResponse):
            await self.store(
                namespace,
                policy.cache_key,
                json.loads(response.body),
                policy.ttl_seconds,
            )
        response.headers[CACHE_STATUS_HEADER] = "MISS"
        return response
