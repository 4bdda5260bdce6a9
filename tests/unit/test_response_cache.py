"""Tests for the tenant-scoped response cache."""

import json
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError
from redis.exceptions import RedisError
from starlette.responses import JSONResponse, PlainTextResponse, Response

from poam_tracker.quota.cache import (
    CACHE_STATUS_HEADER,
    MISS,
    CachePolicy,
    ResponseCache,
)
from poam_tracker.quota.store import MemoryQuotaStore


class CountingHandler:
    """Handler stub that counts invocations."""

    def __init__(self, response: Response | None = None) -> None:
        self.calls = 0
        self.response = response

    async def __call__(self) -> Response:
        self.calls += 1
        if self.response is not None:
            return self.response
        return JSONResponse({"items": [], "call": self.calls})


def _down_store() -> AsyncMock:
    store = AsyncMock()
    store.get = AsyncMock(side_effect=RedisError("down"))
    store.set = AsyncMock(side_effect=RedisError("down"))
    return store


class TestLookupAndStore:
    async def test_round_trip(self, clock) -> None:
        cache = ResponseCache(MemoryQuotaStore(clock=clock))
        value = {"items": [{"id": 1}], "total": 1}
        assert await cache.store("tenant_acme", "poam:list", value, ttl=30) is True
        assert await cache.lookup("tenant_acme", "poam:list") == value

    async def test_miss(self) -> None:
        cache = ResponseCache(MemoryQuotaStore())
        assert await cache.lookup("tenant_acme", "absent") is MISS

    async def test_expires_after_ttl(self, clock) -> None:
        cache = ResponseCache(MemoryQuotaStore(clock=clock))
        await cache.store("tenant_acme", "k", {"a": 1}, ttl=30)
        clock.advance(30)
        assert await cache.lookup("tenant_acme", "k") is MISS

    async def test_namespaces_isolated(self) -> None:
        cache = ResponseCache(MemoryQuotaStore())
        await cache.store("tenant_a", "k", {"owner": "a"}, ttl=30)
        assert await cache.lookup("tenant_b", "k") is MISS

    async def test_key_layout(self) -> None:
        store = MemoryQuotaStore()
        await ResponseCache(store).store("tenant_acme", "poam:list", [1], ttl=30)
        assert await store.get("cache:tenant_acme:poam:list") == "[1]"

    async def test_rejects_non_positive_ttl(self) -> None:
        cache = ResponseCache(MemoryQuotaStore())
        with pytest.raises(ValueError):
            await cache.store("tenant_acme", "k", {}, ttl=0)

    async def test_corrupt_entry_is_miss(self) -> None:
        store = MemoryQuotaStore()
        await store.set("cache:tenant_acme:k", "{not json", ttl_seconds=30)
        assert await ResponseCache(store).lookup("tenant_acme", "k") is MISS

    async def test_store_failure_is_miss(self) -> None:
        cache = ResponseCache(_down_store())
        assert await cache.lookup("tenant_acme", "k") is MISS
        assert await cache.store("tenant_acme", "k", {}, ttl=30) is False


class TestGetOrCompute:
    POLICY = CachePolicy(ttl_seconds=30, cache_key="poam:list:50:0")

    async def test_miss_then_hit(self) -> None:
        cache = ResponseCache(MemoryQuotaStore())
        handler = CountingHandler()

        first = await cache.get_or_compute("tenant_acme", self.POLICY, handler)
        second = await cache.get_or_compute("tenant_acme", self.POLICY, handler)

        assert handler.calls == 1
        assert first.headers[CACHE_STATUS_HEADER] == "MISS"
        assert second.headers[CACHE_STATUS_HEADER] == "HIT"
        assert json.loads(second.body) == json.loads(first.body)

    async def test_recomputes_after_ttl(self, clock) -> None:
        cache = ResponseCache(MemoryQuotaStore(clock=clock))
        handler = CountingHandler()
        await cache.get_or_compute("tenant_acme", self.POLICY, handler)
        clock.advance(31)
        await cache.get_or_compute("tenant_acme", self.POLICY, handler)
        assert handler.calls == 2

    async def test_tenants_do_not_share_entries(self) -> None:
        cache = ResponseCache(MemoryQuotaStore())
        handler = CountingHandler()
        await cache.get_or_compute("tenant_a", self.POLICY, handler)
        response = await cache.get_or_compute("tenant_b", self.POLICY, handler)
        assert handler.calls == 2
        assert response.headers[CACHE_STATUS_HEADER] == "MISS"

    async def test_handler_error_propagates_without_write(self) -> None:
        store = MemoryQuotaStore()
        cache = ResponseCache(store)

        async def _failing() -> Response:
            raise RuntimeError("db down")

        with pytest.raises(RuntimeError, match="db down"):
            await cache.get_or_compute("tenant_acme", self.POLICY, _failing)
        assert await cache.lookup("tenant_acme", self.POLICY.cache_key) is MISS

    async def test_non_200_not_cached(self) -> None:
        cache = ResponseCache(MemoryQuotaStore())
        handler = CountingHandler(JSONResponse({"detail": "x"}, status_code=404))
        await cache.get_or_compute("tenant_acme", self.POLICY, handler)
        await cache.get_or_compute("tenant_acme", self.POLICY, handler)
        assert handler.calls == 2

    async def test_non_json_not_cached(self) -> None:
        cache = ResponseCache(MemoryQuotaStore())
        handler = CountingHandler(PlainTextResponse("ok"))
        await cache.get_or_compute("tenant_acme", self.POLICY, handler)
        await cache.get_or_compute("tenant_acme", self.POLICY, handler)
        assert handler.calls == 2

    async def test_store_down_serves_fresh(self) -> None:
        cache = ResponseCache(_down_store())
        handler = CountingHandler()
        response = await cache.get_or_compute("tenant_acme", self.POLICY, handler)
        assert response.status_code == 200
        assert response.headers[CACHE_STATUS_HEADER] == "MISS"
        assert handler.calls == 1


class TestCachePolicy:
    def test_valid(self) -> None:
        policy = CachePolicy(ttl_seconds=60, cache_key="poam:list")
        assert policy.ttl_seconds == 60

    @pytest.mark.parametrize("ttl", [0, -5, 86_401])
    def test_ttl_bounds(self, ttl: int) -> None:
        with pytest.raises(ValidationError):
            CachePolicy(ttl_seconds=ttl, cache_key="k")

    @pytest.mark.parametrize("key", ["", "has space", "x" * 201])
    def test_key_rules(self, key: str) -> None:
        with pytest.raises(ValidationError):
            CachePolicy(ttl_seconds=30, cache_key=key)

    def test_frozen(self) -> None:
        policy = CachePolicy(ttl_seconds=30, cache_key="k")
        with pytest.raises(ValidationError):
            policy.ttl_seconds = 10  # type: ignore[misc]
