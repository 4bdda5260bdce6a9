"""Tenant resolution from inbound request headers."""

from __future__ import annotations

from collections.abc import Mapping

from poam_tracker.errors import MissingTenantContext
from poam_tracker.tenancy.context import (
    TENANT_ID_HEADER,
    USER_ID_HEADER,
    TenantContext,
    derive_namespace,
)


class TenantResolver:
    """Builds a TenantContext from request headers. Fails closed.

    Header lookup is case-insensitive when given Starlette ``Headers``;
    plain mappings must use lowercase keys.
    """

    def __init__(
        self,
        tenant_header: str = TENANT_ID_HEADER,
        user_header: str = USER_ID_HEADER,
    ) -> None:
        self._tenant_header = tenant_header
        self._user_header = user_header

    def resolve(self, headers: Mapping[str, str]) -> TenantContext:
        """Resolve tenant context for a request.

        Raises:
            MissingTenantContext: tenant header absent or blank.
            InvalidTenantId: tenant header cannot name a namespace.
        """
        tenant_id = (headers.get(self._tenant_header) or "").strip()
        if not tenant_id:
            raise MissingTenantContext()

        user_id = (headers.get(self._user_header) or "").strip() or None
        return TenantContext(
            tenant_id=tenant_id,
            namespace=derive_namespace(tenant_id),
            user_id=user_id,
        )
