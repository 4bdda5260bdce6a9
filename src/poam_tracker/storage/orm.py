"""SQLAlchemy ORM models for tenant-scoped entities.

Tables declare no schema. Every tenant owns a PostgreSQL schema
(``tenant_<id>``) holding its own copy of these tables, and sessions reach
the right copy through ``schema_translate_map`` (see ``storage.scoped``).
"""

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any

import uuid_utils as uuid7_lib
from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _uuid7() -> uuid.UUID:
    """Generate a UUIDv7 (time-ordered) for use as default PK value."""
    return uuid.UUID(bytes=uuid7_lib.uuid7().bytes)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class SeverityLevel(StrEnum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


class PoamStatus(StrEnum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELAYED = "delayed"
    RISK_ACCEPTED = "risk_accepted"


# ──────────────────────────────────────────────
# Organization
# ──────────────────────────────────────────────


class Organization(Base):
    """The tenant's own organization record (one row per namespace).

    ``id`` is the tenant identifier issued by the identity provider.
    """

    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(63), primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    subscription_tier: Mapped[str] = mapped_column(
        String(32), default="free", server_default="free"
    )
    status: Mapped[str] = mapped_column(
        String(32), default="active", server_default="active"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    poam_items: Mapped[list["PoamItem"]] = relationship(
        back_populates="organization", cascade="all, delete-orphan"
    )


# ──────────────────────────────────────────────
# POA&M
# ──────────────────────────────────────────────


class PoamItem(Base):
    __tablename__ = "poam_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=_uuid7)
    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), index=True
    )
    security_control: Mapped[str] = mapped_column(String(100))
    weakness: Mapped[str] = mapped_column(String(500))
    weakness_description: Mapped[str | None] = mapped_column(Text)
    severity_level: Mapped[str] = mapped_column(String(16))
    status: Mapped[str] = mapped_column(
        String(32),
        default=PoamStatus.IN_PROGRESS,
        server_default=PoamStatus.IN_PROGRESS.value,
    )
    risk_score: Mapped[int | None] = mapped_column(Integer)
    planned_completion_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    comments: Mapped[str | None] = mapped_column(Text)
    creation_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    organization: Mapped["Organization"] = relationship(back_populates="poam_items")


# ──────────────────────────────────────────────
# Audit trail
# ──────────────────────────────────────────────


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=_uuid7)
    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[str | None] = mapped_column(String(100))
    action: Mapped[str] = mapped_column(String(50))
    entity_type: Mapped[str] = mapped_column(String(50))
    entity_id: Mapped[str | None] = mapped_column(String(100))
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONB)
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
