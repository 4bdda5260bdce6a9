"""FastAPI application with lifespan management."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import structlog
from arq import create_pool
from arq.connections import RedisSettings
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from poam_tracker.api.middleware import (
    RequestLoggingMiddleware,
    TenantGatewayMiddleware,
)
from poam_tracker.api.responses import quota_exceeded_response, tenant_error_response
from poam_tracker.api.routes.poam import router as poam_router
from poam_tracker.api.routes.webhooks import router as webhooks_router
from poam_tracker.config import QuotaBackend, settings
from poam_tracker.errors import QuotaExceeded, TenantContextError
from poam_tracker.logging_config import configure_logging
from poam_tracker.quota.cache import ResponseCache
from poam_tracker.quota.enforcer import QuotaEnforcer
from poam_tracker.quota.store import MemoryQuotaStore, QuotaStore, RedisQuotaStore
from poam_tracker.storage.database import async_session, engine
from poam_tracker.storage.scoped import get_scoped_access
from poam_tracker.tenancy.resolver import TenantResolver
from poam_tracker.tenancy.tiers import (
    OrganizationTierResolver,
    StaticTierResolver,
    TierResolver,
)

logger = structlog.get_logger()

CLEANUP_INTERVAL_SECONDS = 300


def install_gateway(
    app: FastAPI,
    store: QuotaStore,
    tier_resolver: TierResolver,
) -> None:
    """Attach gateway collaborators to ``app.state``."""
    app.state.quota_store = store
    app.state.quota_enforcer = QuotaEnforcer(
        store, timeout=settings.quota_store_timeout
    )
    app.state.response_cache = ResponseCache(
        store, timeout=settings.quota_store_timeout
    )
    app.state.tenant_resolver = TenantResolver()
    app.state.tier_resolver = tier_resolver


def build_tier_resolver(store: QuotaStore | None = None) -> TierResolver:
    default = settings.default_tier
    if settings.tier_lookup_enabled:
        return OrganizationTierResolver(
            get_scoped_access,
            default=default,
            store=store,
            cache_ttl=settings.tier_cache_ttl,
            timeout=settings.quota_store_timeout,
        )
    return StaticTierResolver(default)


async def _cleanup_loop(store: MemoryQuotaStore, max_window_ms: int) -> None:
    """Periodic cleanup of expired in-memory quota entries."""
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
        cleaned = store.cleanup(max_window_ms)
        if cleaned:
            logger.debug("quota_store_cleanup", keys_removed=cleaned)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application startup and shutdown.

    Startup:
        - Open the ARQ Redis pool (job enqueue and, by default, quotas).
        - Install the quota store, enforcer, cache and resolvers.
        - Start the cleanup task for the in-memory quota backend.
    Shutdown:
        - Cancel cleanup task, close Redis, dispose the database engine.
    """
    configure_logging(
        environment=str(settings.environment),
        log_level=settings.log_level,
    )

    arq_redis = await create_pool(RedisSettings.from_dsn(settings.redis_url))
    app.state.arq_redis = arq_redis

    store: QuotaStore
    if settings.quota_backend == QuotaBackend.MEMORY:
        store = MemoryQuotaStore()
    else:
        store = RedisQuotaStore(arq_redis)
    install_gateway(app, store, build_tier_resolver(store))

    cleanup_task: asyncio.Task[None] | None = None
    if isinstance(store, MemoryQuotaStore):
        cleanup_task = asyncio.create_task(
            _cleanup_loop(store, app.state.quota_enforcer.max_window_ms)
        )
    logger.info(
        "app_started",
        environment=str(settings.environment),
        quota_backend=str(settings.quota_backend),
    )
    yield

    if cleanup_task is not None:
        cleanup_task.cancel()
    await arq_redis.aclose()
    await engine.dispose()
    logger.info("app_stopped")


app = FastAPI(
    title="POA&M Tracker",
    description="Multi-tenant Plans of Action & Milestones tracking",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.is_dev,
)

app.add_middleware(
    TenantGatewayMiddleware,
    path_prefix=settings.tenant_path_prefix,
    exempt_paths=settings.gateway_exempt_paths,
)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allowed_methods,
    allow_headers=settings.cors_allowed_headers,
)


HEALTH_CHECK_TIMEOUT = 5.0


@app.get("/health")
async def health() -> JSONResponse:
    """Deep health check: verifies DB and Redis connectivity."""
    checks: dict[str, str] = {}
    overall = "ok"

    # DB check
    try:
        async with async_session() as session:
            await asyncio.wait_for(
                session.execute(text("SELECT 1")),
                timeout=HEALTH_CHECK_TIMEOUT,
            )
        checks["db"] = "ok"
    except (TimeoutError, OperationalError, SQLAlchemyError) as e:
        logger.warning("health_check_db_error", error=type(e).__name__)
        checks["db"] = f"error: {type(e).__name__}"
        overall = "degraded"

    # Redis check
    try:
        arq_redis = app.state.arq_redis
        await asyncio.wait_for(
            arq_redis.ping(),
            timeout=HEALTH_CHECK_TIMEOUT,
        )
        checks["redis"] = "ok"
    except (TimeoutError, RedisError, ConnectionError, OSError) as e:
        logger.warning("health_check_redis_error", error=type(e).__name__)
        checks["redis"] = f"error: {type(e).__name__}"
        overall = "degraded"

    status_code = 200 if overall == "ok" else 503
    return JSONResponse(
        status_code=status_code,
        content={
            "status": overall,
            "checks": checks,
            "timestamp": datetime.now(UTC).isoformat(timespec="seconds"),
        },
    )


@app.exception_handler(TenantContextError)
async def tenant_context_handler(
    request: Request,
    exc: TenantContextError,
) -> JSONResponse:
    return tenant_error_response(exc)


@app.exception_handler(QuotaExceeded)
async def quota_exceeded_handler(
    request: Request,
    exc: QuotaExceeded,
) -> JSONResponse:
    return quota_exceeded_response(exc)


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Catch-all handler for unhandled exceptions."""
    logger.error("unhandled_exception", exc_info=exc, path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


app.include_router(poam_router, prefix="/api/v1")
app.include_router(webhooks_router, prefix="/api/v1")
