"""Subscription tiers, their quota limits, and tier lookup."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from poam_tracker.errors import StoreUnavailable, TenantContextError
from poam_tracker.quota.store import QuotaStore, call_store
from poam_tracker.storage.orm import Organization
from poam_tracker.tenancy.context import derive_namespace

logger = structlog.get_logger()


class Tier(StrEnum):
    FREE = "free"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


@dataclass(frozen=True)
class TierLimits:
    """Sliding-window quota for one subscription tier."""

    tier: Tier
    points_per_window: int
    window_seconds: int

    def __post_init__(self) -> None:
        if self.points_per_window < 1:
            raise ValueError("points_per_window must be positive")
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be positive")


DEFAULT_TIER_LIMITS: dict[Tier, TierLimits] = {
    Tier.FREE: TierLimits(Tier.FREE, points_per_window=50, window_seconds=60),
    Tier.PROFESSIONAL: TierLimits(
        Tier.PROFESSIONAL, points_per_window=200, window_seconds=60
    ),
    Tier.ENTERPRISE: TierLimits(
        Tier.ENTERPRISE, points_per_window=1000, window_seconds=60
    ),
}


class TierResolver(Protocol):
    async def __call__(self, tenant_id: str) -> Tier: ...


class StaticTierResolver:
    """Resolves every tenant to the same tier."""

    def __init__(self, default: Tier = Tier.FREE) -> None:
        self.default = default

    async def __call__(self, tenant_id: str) -> Tier:
        return self.default


ScopedSessionFactory = Callable[[str], AbstractAsyncContextManager[AsyncSession]]


class OrganizationTierResolver:
    """Reads ``organizations.subscription_tier`` from the tenant's namespace.

    Resolved tiers are kept in the quota store under ``tier:{namespace}``
    for ``cache_ttl`` seconds, so repeat callers skip the database. Both
    the store and the database are bounded by ``timeout``.

    Falls back to ``default`` when the tenant id is unusable, the
    organization row is missing, the stored value is not a known tier,
    or the database fails or is slow. Lookup errors never block a request;
    failed lookups are not cached.
    """

    def __init__(
        self,
        session_factory: ScopedSessionFactory,
        default: Tier = Tier.FREE,
        *,
        store: QuotaStore | None = None,
        cache_ttl: int = 60,
        timeout: float = 0.5,
    ) -> None:
        self._session_factory = session_factory
        self.default = default
        self._store = store
        self._cache_ttl = cache_ttl
        self._timeout = timeout

    async def __call__(self, tenant_id: str) -> Tier:
        try:
            namespace = derive_namespace(tenant_id)
        except TenantContextError:
            return self.default

        cached = await self._cached(namespace)
        if cached is not None:
            return cached

        try:
            raw = await asyncio.wait_for(
                self._lookup(tenant_id, namespace), timeout=self._timeout
            )
        except (SQLAlchemyError, TimeoutError) as e:
            logger.warning(
                "tier_lookup_failed",
                tenant_id=tenant_id,
                error=type(e).__name__,
                fallback=str(self.default),
            )
            return self.default

        tier = self.default
        if raw is not None:
            try:
                tier = Tier(raw)
            except ValueError:
                logger.warning("tier_unknown", tenant_id=tenant_id, tier=raw)
        await self._remember(namespace, tier)
        return tier

    async def _lookup(self, tenant_id: str, namespace: str) -> str | None:
        async with self._session_factory(namespace) as session:
            result = await session.execute(
                select(Organization.subscription_tier).where(
                    Organization.id == tenant_id
                )
            )
            return result.scalar_one_or_none()

    async def _cached(self, namespace: str) -> Tier | None:
        if self._store is None:
            return None
        try:
            raw = await call_store(
                self._store.get(_tier_key(namespace)), self._timeout
            )
        except StoreUnavailable:
            return None
        if raw is None:
            return None
        try:
            return Tier(raw)
        except ValueError:
            return None

    async def _remember(self, namespace: str, tier: Tier) -> None:
        if self._store is None:
            return
        try:
            await call_store(
                self._store.set(_tier_key(namespace), str(tier), self._cache_ttl),
                self._timeout,
            )
        except StoreUnavailable as e:
            logger.debug("tier_cache_write_failed", namespace=namespace, error=str(e))


def _tier_key(namespace: str) -> str:
    return f"tier:{namespace}"
