"""ARQ worker configuration and lifecycle hooks.

Run with::

    arq poam_tracker.worker.WorkerSettings

Or in Docker::

    python -m arq poam_tracker.worker.WorkerSettings
"""

from typing import Any, ClassVar

import structlog
from arq.connections import RedisSettings

from poam_tracker.api.tasks import arq_provision_tenant
from poam_tracker.config import get_settings
from poam_tracker.logging_config import configure_logging

WorkerCtx = dict[str, Any]


async def startup(ctx: WorkerCtx) -> None:
    """Create the async engine used by provisioning tasks."""
    from sqlalchemy.ext.asyncio import create_async_engine

    s = get_settings()
    configure_logging(
        environment=str(s.environment),
        log_level=s.log_level,
    )

    ctx["engine"] = create_async_engine(
        s.database_url,
        pool_size=2,
        max_overflow=2,
    )

    log = structlog.get_logger()
    log.info("worker_started", redis_url=s.redis_url, max_jobs=s.worker_max_jobs)


async def shutdown(ctx: WorkerCtx) -> None:
    """Dispose the engine."""
    engine = ctx.get("engine")
    if engine is not None:
        await engine.dispose()

    structlog.get_logger().info("worker_stopped")


class WorkerSettings:
    """ARQ worker settings, consumed by the ``arq`` CLI."""

    _settings = get_settings()

    redis_settings: RedisSettings = RedisSettings.from_dsn(
        _settings.redis_url,
    )
    functions: ClassVar[list[Any]] = [arq_provision_tenant]
    on_startup = startup
    on_shutdown = shutdown

    max_jobs: int = _settings.worker_max_jobs
    job_timeout: int = _settings.worker_job_timeout
    max_tries: int = _settings.worker_max_tries

    keep_result: int = 3600
    poll_delay: float = 0.5
