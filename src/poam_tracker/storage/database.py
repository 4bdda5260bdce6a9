"""Async engine and session factory shared by the API process."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from poam_tracker.config import settings

engine = create_async_engine(
    settings.database_url,
    pool_size=10,
    max_overflow=10,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
