"""Audit trail for tenant-scoped actions."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from poam_tracker.storage.repositories import AuditLogRepository
from poam_tracker.tenancy.context import TenantContext

logger = structlog.get_logger()


async def log_audit_action(
    session: AsyncSession,
    tenant: TenantContext,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    details: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> bool:
    """Record an audit entry inside a savepoint.

    A failed write rolls back only the savepoint: the caller's transaction
    stays usable and the main operation proceeds.

    Returns:
        True if the entry was written.
    """
    try:
        async with session.begin_nested():
            await AuditLogRepository(session, tenant.tenant_id).record(
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=tenant.user_id,
                details=details,
                ip_address=ip_address,
                user_agent=user_agent,
            )
    except SQLAlchemyError as e:
        logger.warning(
            "audit_log_failed",
            tenant_id=tenant.tenant_id,
            action=action,
            entity_type=entity_type,
            error=type(e).__name__,
        )
        return False
    return True
