"""Tenant context resolution and subscription tiers."""

from poam_tracker.tenancy.context import TenantContext, derive_namespace
from poam_tracker.tenancy.resolver import TenantResolver
from poam_tracker.tenancy.tiers import Tier, TierLimits

__all__ = ["Tier", "TierLimits", "TenantContext", "TenantResolver", "derive_namespace"]
