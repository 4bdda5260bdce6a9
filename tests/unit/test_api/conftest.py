"""Fixtures for tests against the full FastAPI application."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from poam_tracker.api.app import app, install_gateway
from poam_tracker.api.deps import get_tenant_session
from poam_tracker.quota.store import MemoryQuotaStore
from poam_tracker.tenancy.tiers import StaticTierResolver


@pytest.fixture()
def quota_store(clock) -> MemoryQuotaStore:
    return MemoryQuotaStore(clock=clock)


@pytest.fixture()
def mock_session() -> AsyncMock:
    session = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture()
async def client(
    quota_store: MemoryQuotaStore, mock_session: AsyncMock
) -> AsyncGenerator[AsyncClient]:
    """AsyncClient with in-memory quota/cache store and no real database."""
    install_gateway(app, quota_store, StaticTierResolver())
    app.state.arq_redis = AsyncMock()
    app.dependency_overrides[get_tenant_session] = lambda: mock_session
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
