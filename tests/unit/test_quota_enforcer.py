"""Tests for sliding-window quota enforcement."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from poam_tracker.errors import QuotaExceeded, StoreUnavailable
from poam_tracker.quota.enforcer import (
    LIMIT_HEADER,
    REMAINING_HEADER,
    RESET_HEADER,
    QuotaDecision,
    QuotaEnforcer,
)
from poam_tracker.quota.store import MemoryQuotaStore, WindowHit, call_store
from poam_tracker.tenancy.tiers import Tier, TierLimits

SMALL_TIERS = {
    Tier.FREE: TierLimits(Tier.FREE, points_per_window=3, window_seconds=10),
    Tier.PROFESSIONAL: TierLimits(
        Tier.PROFESSIONAL, points_per_window=5, window_seconds=10
    ),
}


def _failing_store(error: BaseException) -> AsyncMock:
    store = AsyncMock()
    store.hit = AsyncMock(side_effect=error)
    return store


class _SlowStore(MemoryQuotaStore):
    async def hit(self, key: str, limit: int, window_ms: int, now_ms: int) -> WindowHit:
        await asyncio.sleep(1)
        return await super().hit(key, limit, window_ms, now_ms)


class TestCheckAndConsume:
    async def test_admits_n_then_rejects(self, clock) -> None:
        enforcer = QuotaEnforcer(MemoryQuotaStore(), SMALL_TIERS, clock=clock)
        decisions = [
            await enforcer.check_and_consume("acme:1.1.1.1", Tier.FREE)
            for _ in range(4)
        ]
        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert [d.remaining for d in decisions] == [2, 1, 0, 0]

    async def test_free_tier_scenario(self, clock) -> None:
        """50 calls in one window pass with remaining 49..0; the 51st is rejected."""
        enforcer = QuotaEnforcer(MemoryQuotaStore(), clock=clock)
        start = int(clock())

        remaining = []
        for _ in range(50):
            decision = await enforcer.check_and_consume("acme:10.0.0.1", Tier.FREE)
            assert decision.allowed is True
            assert decision.limit == 50
            remaining.append(decision.remaining)
        assert remaining == list(range(49, -1, -1))

        rejected = await enforcer.check_and_consume("acme:10.0.0.1", Tier.FREE)
        assert rejected.allowed is False
        assert rejected.remaining == 0
        assert start < rejected.reset_at <= start + 60

    async def test_tier_selects_limit(self, clock) -> None:
        enforcer = QuotaEnforcer(MemoryQuotaStore(), clock=clock)
        pro = await enforcer.check_and_consume("a:ip", Tier.PROFESSIONAL)
        ent = await enforcer.check_and_consume("b:ip", Tier.ENTERPRISE)
        assert pro.limit == 200
        assert ent.limit == 1000

    async def test_window_resets(self, clock) -> None:
        enforcer = QuotaEnforcer(MemoryQuotaStore(), SMALL_TIERS, clock=clock)
        for _ in range(3):
            await enforcer.check_and_consume("acme:ip", Tier.FREE)
        assert (await enforcer.check_and_consume("acme:ip", Tier.FREE)).allowed is False

        clock.advance(10)
        decision = await enforcer.check_and_consume("acme:ip", Tier.FREE)
        assert decision.allowed is True
        assert decision.remaining == 2

    async def test_reset_tracks_oldest_call(self, clock) -> None:
        enforcer = QuotaEnforcer(MemoryQuotaStore(), SMALL_TIERS, clock=clock)
        start = int(clock())
        await enforcer.check_and_consume("acme:ip", Tier.FREE)
        clock.advance(4)
        decision = await enforcer.check_and_consume("acme:ip", Tier.FREE)
        assert decision.reset_at == start + 10

    async def test_identifiers_do_not_share_quota(self, clock) -> None:
        enforcer = QuotaEnforcer(MemoryQuotaStore(), SMALL_TIERS, clock=clock)
        for _ in range(3):
            await enforcer.check_and_consume("acme:1.1.1.1", Tier.FREE)
        other_ip = await enforcer.check_and_consume("acme:2.2.2.2", Tier.FREE)
        other_tenant = await enforcer.check_and_consume("globex:1.1.1.1", Tier.FREE)
        assert other_ip.allowed is True
        assert other_tenant.allowed is True

    async def test_concurrent_calls_admit_exactly_limit(self, clock) -> None:
        enforcer = QuotaEnforcer(MemoryQuotaStore(), SMALL_TIERS, clock=clock)
        limit = SMALL_TIERS[Tier.PROFESSIONAL].points_per_window

        decisions = await asyncio.gather(
            *(
                enforcer.check_and_consume("acme:ip", Tier.PROFESSIONAL)
                for _ in range(2 * limit)
            )
        )
        assert sum(d.allowed for d in decisions) == limit

    async def test_unknown_tier_rejected(self, clock) -> None:
        enforcer = QuotaEnforcer(MemoryQuotaStore(), SMALL_TIERS, clock=clock)
        with pytest.raises(ValueError, match="No limits configured"):
            await enforcer.check_and_consume("acme:ip", Tier.ENTERPRISE)

    async def test_key_prefix(self, clock) -> None:
        store = AsyncMock()
        store.hit = AsyncMock(return_value=WindowHit(True, 1, 1_700_000_000_000))
        enforcer = QuotaEnforcer(store, SMALL_TIERS, clock=clock)
        await enforcer.check_and_consume("acme:ip", Tier.FREE)
        assert store.hit.call_args.args[0] == "ratelimit:acme:ip"


class TestFailOpen:
    @pytest.mark.parametrize(
        "error",
        [RedisError("boom"), RedisConnectionError("refused"), OSError("reset")],
    )
    async def test_store_errors_admit_unenforced(
        self, clock, error: BaseException
    ) -> None:
        enforcer = QuotaEnforcer(_failing_store(error), SMALL_TIERS, clock=clock)
        decision = await enforcer.check_and_consume("acme:ip", Tier.FREE)
        assert decision.allowed is True
        assert decision.enforced is False
        assert decision.headers() == {}

    async def test_timeout_admits_unenforced(self, clock) -> None:
        enforcer = QuotaEnforcer(_SlowStore(), SMALL_TIERS, timeout=0.01, clock=clock)
        decision = await enforcer.check_and_consume("acme:ip", Tier.FREE)
        assert decision.allowed is True
        assert decision.enforced is False

    async def test_enforce_does_not_raise_when_store_down(self, clock) -> None:
        enforcer = QuotaEnforcer(
            _failing_store(RedisError("down")), SMALL_TIERS, clock=clock
        )
        for _ in range(10):
            await enforcer.enforce("acme:ip", Tier.FREE)


class TestEnforce:
    async def test_raises_when_exhausted(self, clock) -> None:
        enforcer = QuotaEnforcer(MemoryQuotaStore(), SMALL_TIERS, clock=clock)
        for _ in range(3):
            await enforcer.enforce("acme:ip", Tier.FREE)

        with pytest.raises(QuotaExceeded) as exc_info:
            await enforcer.enforce("acme:ip", Tier.FREE)
        decision = exc_info.value.decision
        assert decision.allowed is False
        assert decision.limit == 3


class TestMaxWindow:
    def test_longest_configured_window(self) -> None:
        tiers = {
            Tier.FREE: TierLimits(Tier.FREE, points_per_window=3, window_seconds=60),
            Tier.ENTERPRISE: TierLimits(
                Tier.ENTERPRISE, points_per_window=9, window_seconds=3600
            ),
        }
        assert QuotaEnforcer(MemoryQuotaStore(), tiers).max_window_ms == 3_600_000

    def test_default_tiers(self) -> None:
        assert QuotaEnforcer(MemoryQuotaStore()).max_window_ms == 60_000


class TestQuotaDecision:
    def test_headers(self) -> None:
        decision = QuotaDecision(allowed=True, limit=50, remaining=49, reset_at=1234)
        assert decision.headers() == {
            LIMIT_HEADER: "50",
            REMAINING_HEADER: "49",
            RESET_HEADER: "1234",
        }


class TestCallStore:
    async def test_passes_result_through(self) -> None:
        async def _value() -> int:
            return 7

        assert await call_store(_value(), timeout=1) == 7

    async def test_wraps_redis_error(self) -> None:
        async def _boom() -> None:
            raise RedisError("x")

        with pytest.raises(StoreUnavailable, match="RedisError"):
            await call_store(_boom(), timeout=1)
