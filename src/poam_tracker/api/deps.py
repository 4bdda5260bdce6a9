"""FastAPI dependency injection."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated, cast

from arq.connections import ArqRedis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from poam_tracker.quota.cache import ResponseCache
from poam_tracker.storage.scoped import get_scoped_access
from poam_tracker.tenancy.context import TenantContext
from poam_tracker.tenancy.resolver import TenantResolver

__all__ = [
    "get_arq_redis",
    "get_response_cache",
    "get_tenant",
    "get_tenant_session",
]


async def get_tenant(request: Request) -> TenantContext:
    """Tenant context for the current request.

    Normally set by ``TenantGatewayMiddleware``. Routes mounted outside the
    gateway prefix resolve the headers here instead.

    Raises:
        MissingTenantContext / InvalidTenantId: mapped to 403 by the app.
    """
    tenant = getattr(request.state, "tenant", None)
    if tenant is not None:
        return cast(TenantContext, tenant)
    resolver = cast(TenantResolver, request.app.state.tenant_resolver)
    return resolver.resolve(request.headers)


TenantDep = Annotated[TenantContext, Depends(get_tenant)]


async def get_tenant_session(tenant: TenantDep) -> AsyncGenerator[AsyncSession]:
    """Session confined to the tenant's namespace."""
    async with get_scoped_access(tenant.namespace) as session:
        yield session


async def get_response_cache(request: Request) -> ResponseCache:
    """Retrieve ResponseCache from app state.

    Initialized during lifespan startup.
    """
    return cast(ResponseCache, request.app.state.response_cache)


async def get_arq_redis(request: Request) -> ArqRedis:
    """Retrieve the ARQ Redis pool from app state.

    Initialized during lifespan startup.
    """
    return cast(ArqRedis, request.app.state.arq_redis)
