"""Background tasks executed by the ARQ worker."""

from __future__ import annotations

from typing import Any

import structlog
from arq import Retry
from sqlalchemy.ext.asyncio import AsyncEngine

from poam_tracker.errors import TenantProvisioningError
from poam_tracker.storage.provisioning import provision_tenant
from poam_tracker.tenancy.tiers import Tier

PROVISION_TASK = "arq_provision_tenant"
RETRY_BACKOFF_SECONDS = 10


async def arq_provision_tenant(
    ctx: dict[str, Any],
    tenant_id: str,
    name: str,
    tier: str = "free",
) -> str:
    """ARQ task: create the storage namespace for a new organization.

    Provisioning errors are re-queued through ``arq.Retry`` with a linear
    backoff; the worker's ``max_tries`` bounds the attempts.

    Args:
        ctx: ARQ worker context (engine).
        tenant_id: Identifier issued by the identity provider.
        name: Organization display name.
        tier: Initial subscription tier.

    Returns:
        The provisioned namespace (kept as the ARQ job result).

    Raises:
        arq.Retry: when provisioning failed and may succeed on a later try.
    """
    engine: AsyncEngine = ctx["engine"]
    job_try: int = ctx.get("job_try", 1)
    log = structlog.get_logger().bind(tenant_id=tenant_id, job_try=job_try)
    log.info("provisioning_started")
    try:
        namespace = await provision_tenant(engine, tenant_id, name, tier=Tier(tier))
    except TenantProvisioningError as e:
        defer = job_try * RETRY_BACKOFF_SECONDS
        log.warning("provisioning_retry", error=str(e), defer_seconds=defer)
        raise Retry(defer=defer) from e
    log.info("provisioning_finished", namespace=namespace)
    return namespace
