"""Domain-specific exceptions for the tenant gateway."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from poam_tracker.quota.enforcer import QuotaDecision


class TenantContextError(Exception):
    """Request cannot be bound to a tenant. Maps to HTTP 403."""


class MissingTenantContext(TenantContextError):
    """No tenant identifier present on the request."""

    def __init__(self) -> None:
        super().__init__("No tenant context")


class InvalidTenantId(TenantContextError):
    """Tenant identifier is present but cannot name a storage namespace."""

    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id
        super().__init__("Invalid tenant identifier")


class QuotaExceeded(Exception):
    """Sliding-window quota exhausted for the identifier. Maps to HTTP 429."""

    def __init__(self, decision: QuotaDecision) -> None:
        self.decision = decision
        super().__init__(
            f"Quota of {decision.limit} exceeded, resets at {decision.reset_at}"
        )


class StoreUnavailable(Exception):
    """Counter/cache store unreachable within the configured timeout.

    Never surfaced to clients: callers recover by failing open.
    """


class WebhookVerificationError(Exception):
    """Webhook signature missing or invalid."""


class TenantProvisioningError(Exception):
    """Creating a tenant namespace failed."""

    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id
        super().__init__(f"Failed to provision tenant {tenant_id}")
