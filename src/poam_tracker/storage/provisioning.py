"""Tenant namespace provisioning.

Creates the tenant's PostgreSQL schema, the tenant tables inside it, and
the organization row. Every step is idempotent, so a redelivered
``organization.created`` event or a retried job is harmless.
"""

from __future__ import annotations

import structlog
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.schema import CreateSchema

from poam_tracker.errors import TenantProvisioningError
from poam_tracker.storage.orm import Base, Organization
from poam_tracker.storage.scoped import SCHEMA_TRANSLATE_MAP
from poam_tracker.tenancy.context import derive_namespace
from poam_tracker.tenancy.tiers import Tier

logger = structlog.get_logger()


async def provision_tenant(
    engine: AsyncEngine,
    tenant_id: str,
    name: str,
    *,
    tier: Tier = Tier.FREE,
) -> str:
    """Create (or complete) the storage namespace for a tenant.

    Args:
        engine: Unscoped async engine.
        tenant_id: Identifier issued by the identity provider.
        name: Organization display name.
        tier: Initial subscription tier for a new organization row.

    Returns:
        The tenant namespace.

    Raises:
        InvalidTenantId: *tenant_id* cannot name a namespace.
        TenantProvisioningError: any database failure (transaction rolled back).
    """
    namespace = derive_namespace(tenant_id)
    log = logger.bind(tenant_id=tenant_id, namespace=namespace)

    try:
        async with engine.begin() as conn:
            await conn.execute(CreateSchema(namespace, if_not_exists=True))
            scoped = await conn.execution_options(
                **{SCHEMA_TRANSLATE_MAP: {None: namespace}}
            )
            await scoped.run_sync(Base.metadata.create_all)
            await scoped.execute(
                pg_insert(Organization)
                .values(id=tenant_id, name=name, subscription_tier=str(tier))
                .on_conflict_do_nothing(index_elements=[Organization.id])
            )
    except SQLAlchemyError as e:
        log.error("tenant_provisioning_failed", error=type(e).__name__)
        raise TenantProvisioningError(tenant_id) from e

    log.info("tenant_provisioned", tier=str(tier))
    return namespace
