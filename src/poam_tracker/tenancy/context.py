"""Per-request tenant context and namespace derivation."""

from __future__ import annotations

import re
from dataclasses import dataclass

from poam_tracker.errors import InvalidTenantId

TENANT_ID_HEADER = "x-tenant-id"
TENANT_SCHEMA_HEADER = "x-tenant-schema"
USER_ID_HEADER = "x-user-id"

NAMESPACE_PREFIX = "tenant_"

# PostgreSQL identifiers are capped at 63 bytes; leave room for the prefix.
MAX_TENANT_ID_LENGTH = 63 - len(NAMESPACE_PREFIX)
_TENANT_ID_RE = re.compile(rf"^[A-Za-z0-9_-]{{1,{MAX_TENANT_ID_LENGTH}}}$")


@dataclass(frozen=True)
class TenantContext:
    """Tenant binding for one request.

    Derived from trusted request headers populated by the identity
    provider upstream. Never persisted.
    """

    tenant_id: str
    namespace: str
    user_id: str | None = None


def validate_tenant_id(tenant_id: str) -> str:
    """Return *tenant_id* unchanged if it can name a namespace.

    Raises:
        InvalidTenantId: characters outside ``[A-Za-z0-9_-]`` or too long.
    """
    if not _TENANT_ID_RE.fullmatch(tenant_id):
        raise InvalidTenantId(tenant_id)
    return tenant_id


def derive_namespace(tenant_id: str) -> str:
    """Map a tenant id to its storage namespace (schema name / key prefix).

    Fixed-prefix concatenation: deterministic, and injective because the
    prefix is constant and the id is kept verbatim.
    """
    return f"{NAMESPACE_PREFIX}{validate_tenant_id(tenant_id)}"
