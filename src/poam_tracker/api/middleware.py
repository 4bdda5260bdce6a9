"""HTTP middleware: request logging and the tenant gateway."""

from __future__ import annotations

import time
from collections.abc import Iterable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from poam_tracker.api.responses import quota_exceeded_response, tenant_error_response
from poam_tracker.errors import QuotaExceeded, TenantContextError
from poam_tracker.quota.enforcer import QuotaDecision, QuotaEnforcer
from poam_tracker.tenancy.context import TENANT_ID_HEADER, TENANT_SCHEMA_HEADER
from poam_tracker.tenancy.resolver import TenantResolver
from poam_tracker.tenancy.tiers import TierResolver

logger = structlog.get_logger()


def client_address(request: Request) -> str:
    """Best-effort client IP: proxy headers first, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests with method, path, status code, and latency."""

    SKIP_PATHS: frozenset[str] = frozenset(
        {"/health", "/docs", "/openapi.json", "/redoc"}
    )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request and log timing information."""
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        latency_ms = int((time.perf_counter() - start) * 1000)

        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            latency_ms=latency_ms,
            tenant_id=request.headers.get(TENANT_ID_HEADER),
        )
        return response


class TenantGatewayMiddleware(BaseHTTPMiddleware):
    """Quota enforcement followed by tenant resolution for tenant-scoped paths.

    Collaborators are read from ``app.state`` on each request
    (``quota_enforcer``, ``tenant_resolver``, ``tier_resolver``) so they can
    be created in the lifespan and swapped in tests.

    Order:
        1. Quota: when a tenant id is present, count the call against
           ``"{tenant_id}:{client_ip}"``; 429 without calling the handler.
        2. Tenant: resolve the context; 403 without calling the handler.
        3. Handler, then quota headers on the response.
    """

    def __init__(
        self,
        app: ASGIApp,
        path_prefix: str = "/api/",
        exempt_paths: Iterable[str] = (),
    ) -> None:
        super().__init__(app)
        self.path_prefix = path_prefix
        self.exempt_paths = frozenset(exempt_paths)

    def is_tenant_scoped(self, path: str) -> bool:
        return path.startswith(self.path_prefix) and path not in self.exempt_paths

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not self.is_tenant_scoped(request.url.path):
            return await call_next(request)

        state = request.app.state
        enforcer: QuotaEnforcer = state.quota_enforcer
        resolver: TenantResolver = state.tenant_resolver
        tier_resolver: TierResolver = state.tier_resolver

        decision: QuotaDecision | None = None
        raw_tenant_id = (request.headers.get(TENANT_ID_HEADER) or "").strip()
        if raw_tenant_id:
            tier = await tier_resolver(raw_tenant_id)
            identifier = f"{raw_tenant_id}:{client_address(request)}"
            try:
                decision = await enforcer.enforce(identifier, tier)
            except QuotaExceeded as exc:
                return quota_exceeded_response(exc)

        try:
            tenant = resolver.resolve(request.headers)
        except TenantContextError as exc:
            logger.info(
                "tenant_context_rejected",
                path=request.url.path,
                reason=type(exc).__name__,
            )
            rejected = tenant_error_response(exc)
            if decision is not None:
                rejected.headers.update(decision.headers())
            return rejected

        request.state.tenant = tenant
        structlog.contextvars.bind_contextvars(tenant_id=tenant.tenant_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("tenant_id")

        response.headers[TENANT_SCHEMA_HEADER] = tenant.namespace
        if decision is not None:
            response.headers.update(decision.headers())
        return response
