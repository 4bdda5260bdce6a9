"""Per-tenant sliding-window quota enforcement."""

from __future__ import annotations

import math
import time
from collections.abc import Mapping
from dataclasses import dataclass

import structlog

from poam_tracker.errors import QuotaExceeded, StoreUnavailable
from poam_tracker.quota.store import Clock, QuotaStore, call_store
from poam_tracker.tenancy.tiers import DEFAULT_TIER_LIMITS, Tier, TierLimits

logger = structlog.get_logger()

LIMIT_HEADER = "X-RateLimit-Limit"
REMAINING_HEADER = "X-RateLimit-Remaining"
RESET_HEADER = "X-RateLimit-Reset"


@dataclass(frozen=True)
class QuotaDecision:
    """Result of one quota check.

    ``enforced`` is False when the store was unreachable and the call was
    admitted without counting; such decisions carry no quota headers.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    enforced: bool = True

    def headers(self) -> dict[str, str]:
        if not self.enforced:
            return {}
        return {
            LIMIT_HEADER: str(self.limit),
            REMAINING_HEADER: str(self.remaining),
            RESET_HEADER: str(self.reset_at),
        }


class QuotaEnforcer:
    """Sliding-window request quota keyed by tenant and client.

    Counting is delegated to the injected store, which performs the
    check-and-record atomically. Store failures fail open.
    """

    def __init__(
        self,
        store: QuotaStore,
        tiers: Mapping[Tier, TierLimits] | None = None,
        *,
        timeout: float = 0.5,
        clock: Clock = time.time,
        key_prefix: str = "ratelimit",
    ) -> None:
        self._store = store
        self._tiers = dict(tiers or DEFAULT_TIER_LIMITS)
        self._timeout = timeout
        self._clock = clock
        self._key_prefix = key_prefix

    @property
    def max_window_ms(self) -> int:
        """Longest configured window; bounds how long a timestamp can matter."""
        return max(limits.window_seconds for limits in self._tiers.values()) * 1000

    def limits_for(self, tier: Tier) -> TierLimits:
        try:
            return self._tiers[tier]
        except KeyError:
            raise ValueError(f"No limits configured for tier {tier!r}") from None

    async def check_and_consume(self, identifier: str, tier: Tier) -> QuotaDecision:
        """Count one call for *identifier* against the tier's window.

        Args:
            identifier: Composite key, e.g. ``"{tenant_id}:{client_ip}"``.
            tier: Subscription tier selecting the limits.

        Returns:
            Decision with the remaining allowance after this call. When the
            store is unavailable the call is admitted unenforced.
        """
        limits = self.limits_for(tier)
        window_ms = limits.window_seconds * 1000
        now_ms = int(self._clock() * 1000)

        try:
            hit = await call_store(
                self._store.hit(
                    f"{self._key_prefix}:{identifier}",
                    limits.points_per_window,
                    window_ms,
                    now_ms,
                ),
                self._timeout,
            )
        except StoreUnavailable as e:
            logger.warning(
                "quota_store_unavailable",
                identifier=identifier,
                error=str(e),
                policy="fail_open",
            )
            return QuotaDecision(
                allowed=True,
                limit=limits.points_per_window,
                remaining=limits.points_per_window,
                reset_at=math.ceil((now_ms + window_ms) / 1000),
                enforced=False,
            )

        remaining = max(limits.points_per_window - hit.count, 0) if hit.allowed else 0
        return QuotaDecision(
            allowed=hit.allowed,
            limit=limits.points_per_window,
            remaining=remaining,
            reset_at=math.ceil((hit.oldest_ms + window_ms) / 1000),
        )

    async def enforce(self, identifier: str, tier: Tier) -> QuotaDecision:
        """Like ``check_and_consume`` but raises when the call is rejected.

        Raises:
            QuotaExceeded: window exhausted for *identifier*.
        """
        decision = await self.check_and_consume(identifier, tier)
        if not decision.allowed:
            logger.info(
                "quota_exceeded",
                identifier=identifier,
                tier=str(tier),
                limit=decision.limit,
                reset_at=decision.reset_at,
            )
            raise QuotaExceeded(decision)
        return decision
