"""Enqueue helpers for submitting jobs to ARQ."""

from __future__ import annotations

import structlog
from arq.connections import ArqRedis

from poam_tracker.api.tasks import PROVISION_TASK
from poam_tracker.tenancy.context import validate_tenant_id
from poam_tracker.tenancy.tiers import Tier


async def enqueue_provisioning(
    *,
    redis: ArqRedis,
    tenant_id: str,
    name: str,
    tier: Tier = Tier.FREE,
) -> str | None:
    """Enqueue namespace provisioning for a tenant.

    The ARQ job id is derived from the tenant id, so a redelivered
    webhook while the first job is still queued does not enqueue twice.

    Returns:
        The ARQ job id, or None if an identical job is already queued.

    Raises:
        InvalidTenantId: *tenant_id* cannot name a namespace.
    """
    validate_tenant_id(tenant_id)
    log = structlog.get_logger().bind(tenant_id=tenant_id)

    arq_job = await redis.enqueue_job(
        PROVISION_TASK,
        tenant_id,
        name,
        str(tier),
        _job_id=f"provision:{tenant_id}",
    )
    if arq_job is None:
        log.info("provisioning_already_queued")
        return None

    log.info("provisioning_enqueued", arq_job_id=arq_job.job_id)
    return arq_job.job_id
