"""Identity-provider webhooks driving tenant provisioning."""

from __future__ import annotations

import hashlib
import hmac
from typing import Annotated

import structlog
from arq.connections import ArqRedis
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from poam_tracker.api.deps import get_arq_redis
from poam_tracker.api.schemas import OrganizationEvent, WebhookAck
from poam_tracker.config import settings
from poam_tracker.enqueue import enqueue_provisioning
from poam_tracker.errors import TenantContextError, WebhookVerificationError

logger = structlog.get_logger()

router = APIRouter(tags=["webhooks"])

SIGNATURE_HEADER = "x-webhook-signature"
SIGNATURE_SCHEME = "sha256="
ORGANIZATION_CREATED = "organization.created"

ArqDep = Annotated[ArqRedis, Depends(get_arq_redis)]


def sign_payload(secret: str, body: bytes) -> str:
    """Signature header value for *body*: ``sha256=<hex HMAC-SHA256>``."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_SCHEME}{digest}"


def verify_signature(secret: str, body: bytes, signature: str | None) -> None:
    """Raises WebhookVerificationError unless *signature* matches *body*."""
    if not signature:
        raise WebhookVerificationError("Missing signature header")
    expected = sign_payload(secret, body)
    if not hmac.compare_digest(expected, signature.strip()):
        raise WebhookVerificationError("Signature mismatch")


@router.post("/webhooks/organizations")
async def organization_webhook(request: Request, arq: ArqDep) -> WebhookAck:
    """Provision a tenant namespace when an organization is created.

    Provisioning runs in the ARQ worker. Other event types are
    acknowledged and ignored.
    """
    if settings.webhook_secret is None:
        logger.error("webhook_secret_missing")
        raise HTTPException(status_code=500, detail="Server misconfigured")

    body = await request.body()
    try:
        verify_signature(
            settings.webhook_secret.get_secret_value(),
            body,
            request.headers.get(SIGNATURE_HEADER),
        )
    except WebhookVerificationError as e:
        logger.warning("webhook_rejected", reason=str(e))
        raise HTTPException(status_code=400, detail="Error verifying webhook") from e

    try:
        event = OrganizationEvent.model_validate_json(body)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail="Malformed event") from e

    if event.type != ORGANIZATION_CREATED:
        logger.debug("webhook_event_ignored", event_type=event.type)
        return WebhookAck()

    try:
        job_id = await enqueue_provisioning(
            redis=arq, tenant_id=event.data.id, name=event.data.name
        )
    except TenantContextError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    return WebhookAck(job_id=job_id)
