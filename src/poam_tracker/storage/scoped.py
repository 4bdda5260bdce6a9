"""Tenant-scoped data access.

A scoped handle is an ``AsyncSession`` bound to an engine copy whose
``schema_translate_map`` sends every schema-less table to the tenant's
namespace. The mapping lives on the engine, not the transaction, so it
survives commits and applies to every connection the session checks out.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from poam_tracker.storage.database import engine as default_engine

SCHEMA_TRANSLATE_MAP = "schema_translate_map"


def scoped_engine(namespace: str, base: AsyncEngine | None = None) -> AsyncEngine:
    """Return a proxy of *base* that routes unqualified tables to *namespace*.

    Shares the connection pool of *base*; creating one per request is cheap.
    """
    base = base if base is not None else default_engine
    return base.execution_options(**{SCHEMA_TRANSLATE_MAP: {None: namespace}})


@asynccontextmanager
async def get_scoped_access(
    namespace: str,
    base: AsyncEngine | None = None,
) -> AsyncIterator[AsyncSession]:
    """Open a session confined to *namespace*.

    Usage::

        async with get_scoped_access(ctx.namespace) as session:
            await session.execute(select(PoamItem))
    """
    async with AsyncSession(
        scoped_engine(namespace, base), expire_on_commit=False
    ) as session:
        yield session
