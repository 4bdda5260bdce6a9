"""Error responses shared by the gateway middleware and exception handlers."""

from starlette.responses import JSONResponse

from poam_tracker.errors import QuotaExceeded, TenantContextError


def tenant_error_response(exc: TenantContextError) -> JSONResponse:
    return JSONResponse(status_code=403, content={"error": str(exc)})


def quota_exceeded_response(exc: QuotaExceeded) -> JSONResponse:
    decision = exc.decision
    return JSONResponse(
        status_code=429,
        content={
            "error": "Too many requests",
            "limit": decision.limit,
            "reset": decision.reset_at,
        },
        headers=decision.headers(),
    )
