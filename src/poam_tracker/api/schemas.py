"""Request/response schemas for the API layer."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from poam_tracker.storage.orm import SeverityLevel

# --- POA&M ---


class PoamItemCreateRequest(BaseModel):
    """Request body for POST /poam."""

    security_control: str = Field(..., min_length=1, max_length=100)
    weakness: str = Field(..., min_length=1, max_length=500)
    severity_level: SeverityLevel
    weakness_description: str | None = None
    risk_score: int | None = Field(default=None, ge=0, le=100)
    planned_completion_date: datetime | None = None
    comments: str | None = None


class PoamItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    security_control: str
    weakness: str
    weakness_description: str | None
    severity_level: str
    status: str
    risk_score: int | None
    planned_completion_date: datetime | None
    comments: str | None
    creation_date: datetime


class PoamItemListResponse(BaseModel):
    """Paginated response for ``GET /poam``."""

    items: list[PoamItemResponse]
    total: int = Field(description="Total number of items across all pages.")
    limit: int
    offset: int


# --- Webhooks ---


class OrganizationData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)


class OrganizationEvent(BaseModel):
    """Identity-provider event envelope, e.g. ``organization.created``."""

    model_config = ConfigDict(extra="ignore")

    type: str
    data: OrganizationData


class WebhookAck(BaseModel):
    success: bool = True
    job_id: str | None = None
