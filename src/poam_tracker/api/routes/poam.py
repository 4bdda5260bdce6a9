"""POA&M item endpoints."""

from __future__ import annotations

import uuid
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from poam_tracker.api.deps import (
    TenantDep,
    get_response_cache,
    get_tenant_session,
)
from poam_tracker.api.middleware import client_address
from poam_tracker.api.schemas import (
    PoamItemCreateRequest,
    PoamItemListResponse,
    PoamItemResponse,
)
from poam_tracker.audit import log_audit_action
from poam_tracker.config import settings
from poam_tracker.quota.cache import CachePolicy, ResponseCache
from poam_tracker.storage.repositories import PoamItemRepository

logger = structlog.get_logger()

router = APIRouter(tags=["poam"])

SessionDep = Annotated[AsyncSession, Depends(get_tenant_session)]
CacheDep = Annotated[ResponseCache, Depends(get_response_cache)]


@router.get("/poam", response_model=PoamItemListResponse)
async def list_poam_items(
    tenant: TenantDep,
    session: SessionDep,
    cache: CacheDep,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> Response:
    """List POA&M items for the tenant, newest first.

    Served from the tenant's response cache for ``POAM_CACHE_TTL`` seconds.
    The ``X-Cache`` header reports ``HIT`` or ``MISS``.
    """

    async def _load() -> JSONResponse:
        repo = PoamItemRepository(session, tenant.tenant_id)
        items = await repo.list_all(limit=limit, offset=offset)
        total = await repo.count()
        body = PoamItemListResponse(
            items=[PoamItemResponse.model_validate(i) for i in items],
            total=total,
            limit=limit,
            offset=offset,
        )
        return JSONResponse(body.model_dump(mode="json"))

    policy = CachePolicy(
        ttl_seconds=settings.poam_cache_ttl,
        cache_key=f"poam:list:{limit}:{offset}",
    )
    return await cache.get_or_compute(tenant.namespace, policy, _load)


@router.get("/poam/{item_id}")
async def get_poam_item(
    item_id: uuid.UUID,
    tenant: TenantDep,
    session: SessionDep,
) -> PoamItemResponse:
    repo = PoamItemRepository(session, tenant.tenant_id)
    item = await repo.get_by_id(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="POA&M item not found")
    return PoamItemResponse.model_validate(item)


@router.post("/poam", status_code=201)
async def create_poam_item(
    body: PoamItemCreateRequest,
    request: Request,
    tenant: TenantDep,
    session: SessionDep,
) -> PoamItemResponse:
    """Create a POA&M item and record it in the audit trail."""
    repo = PoamItemRepository(session, tenant.tenant_id)
    item = await repo.create(
        security_control=body.security_control,
        weakness=body.weakness,
        severity_level=body.severity_level,
        weakness_description=body.weakness_description,
        risk_score=body.risk_score,
        planned_completion_date=body.planned_completion_date,
        comments=body.comments,
    )
    await log_audit_action(
        session,
        tenant,
        action="create",
        entity_type="poam_item",
        entity_id=str(item.id),
        details={"security_control": item.security_control},
        ip_address=client_address(request),
        user_agent=request.headers.get("user-agent"),
    )
    await session.commit()
    logger.info("poam_item_created", item_id=str(item.id))
    return PoamItemResponse.model_validate(item)
