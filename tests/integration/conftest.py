"""Shared fixtures for integration tests requiring live infrastructure."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from typing import Any

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from poam_tracker.config import get_settings

# ── Engine ─────────────────────────────────────────────────────────


@pytest.fixture()
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an async engine from settings."""
    engine = create_async_engine(
        get_settings().database_url,
        pool_size=5,
        max_overflow=0,
    )
    yield engine
    await engine.dispose()


# ── Throwaway tenant (schema dropped after the test) ──────────────


@pytest.fixture()
async def tenant_ids(async_engine: AsyncEngine) -> AsyncGenerator[list[str]]:
    """Unique tenant ids; their schemas are dropped on teardown."""
    ids = [f"it_{uuid.uuid4().hex[:12]}" for _ in range(2)]
    yield ids

    async with async_engine.begin() as conn:
        for tenant_id in ids:
            await conn.execute(
                text(f'DROP SCHEMA IF EXISTS "tenant_{tenant_id}" CASCADE')
            )


# ── Redis fixture ─────────────────────────────────────────────────


@pytest.fixture()
async def arq_redis() -> AsyncGenerator[Any]:
    """Create and close a real ArqRedis connection pool."""
    from arq.connections import RedisSettings, create_pool

    pool = await create_pool(RedisSettings.from_dsn(get_settings().redis_url))
    yield pool
    await pool.aclose()
