"""CRUD repositories for tenant-scoped entities."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from poam_tracker.storage.orm import AuditLog, PoamItem


class PoamItemRepository:
    """Repository for POA&M items.

    The session is expected to be namespace-bound (``get_scoped_access``).
    Queries additionally filter on ``organization_id`` so a session bound to
    the wrong namespace still cannot return another organization's rows.
    """

    def __init__(self, session: AsyncSession, organization_id: str) -> None:
        self._session = session
        self._organization_id = organization_id

    async def create(
        self,
        *,
        security_control: str,
        weakness: str,
        severity_level: str,
        weakness_description: str | None = None,
        risk_score: int | None = None,
        planned_completion_date: datetime | None = None,
        comments: str | None = None,
    ) -> PoamItem:
        """Create a POA&M item for the current organization."""
        item = PoamItem(
            organization_id=self._organization_id,
            security_control=security_control,
            weakness=weakness,
            weakness_description=weakness_description,
            severity_level=severity_level,
            risk_score=risk_score,
            planned_completion_date=planned_completion_date,
            comments=comments,
        )
        self._session.add(item)
        await self._session.flush()
        await self._session.refresh(item)
        return item

    async def get_by_id(self, item_id: uuid.UUID) -> PoamItem | None:
        stmt = select(PoamItem).where(
            PoamItem.id == item_id,
            PoamItem.organization_id == self._organization_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_all(self, *, limit: int = 50, offset: int = 0) -> list[PoamItem]:
        """List items, newest first."""
        stmt = (
            select(PoamItem)
            .where(PoamItem.organization_id == self._organization_id)
            .order_by(PoamItem.creation_date.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count(self) -> int:
        stmt = (
            select(func.count())
            .select_from(PoamItem)
            .where(PoamItem.organization_id == self._organization_id)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()


class AuditLogRepository:
    def __init__(self, session: AsyncSession, organization_id: str) -> None:
        self._session = session
        self._organization_id = organization_id

    async def record(
        self,
        *,
        action: str,
        entity_type: str,
        entity_id: str | None = None,
        user_id: str | None = None,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            organization_id=self._organization_id,
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self._session.add(entry)
        await self._session.flush()
        return entry
