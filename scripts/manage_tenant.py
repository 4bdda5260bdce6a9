"""CLI for tenant provisioning and subscription management.

Usage::

    uv run python -m scripts.manage_tenant <command> [options]

Commands:
    provision   Create a tenant namespace, its tables and organization row
    set-tier    Change an organization's subscription tier
    show        Show an organization and its POA&M item count
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Callable

from sqlalchemy import create_engine, func, select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import Session

from poam_tracker.config import settings
from poam_tracker.errors import TenantContextError, TenantProvisioningError
from poam_tracker.storage.orm import Organization, PoamItem
from poam_tracker.storage.provisioning import provision_tenant
from poam_tracker.storage.scoped import SCHEMA_TRANSLATE_MAP
from poam_tracker.tenancy.context import derive_namespace
from poam_tracker.tenancy.tiers import Tier


def get_sync_session(namespace: str) -> Session:
    """Create sync session confined to *namespace*.

    Uses the same database URL as the async app (psycopg v3
    handles both sync and async natively).
    """
    engine = create_engine(settings.database_url).execution_options(
        **{SCHEMA_TRANSLATE_MAP: {None: namespace}}
    )
    return Session(engine)


def _namespace_or_exit(tenant_id: str) -> str:
    try:
        return derive_namespace(tenant_id)
    except TenantContextError:
        print(f"Invalid tenant id: {tenant_id!r}", file=sys.stderr)
        sys.exit(1)


async def _provision(tenant_id: str, name: str, tier: Tier) -> str:
    engine = create_async_engine(settings.database_url)
    try:
        return await provision_tenant(engine, tenant_id, name, tier=tier)
    finally:
        await engine.dispose()


def provision(args: argparse.Namespace) -> None:
    """Provision a tenant namespace. Safe to re-run."""
    _namespace_or_exit(args.tenant)
    try:
        namespace = asyncio.run(_provision(args.tenant, args.name, Tier(args.tier)))
    except TenantProvisioningError as e:
        print(f"Provisioning failed: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"Tenant provisioned: {args.tenant} (schema: {namespace})")


def set_tier(args: argparse.Namespace) -> None:
    """Change the subscription tier of an organization."""
    namespace = _namespace_or_exit(args.tenant)
    with get_sync_session(namespace) as session:
        org = session.execute(
            select(Organization).where(Organization.id == args.tenant)
        ).scalar_one_or_none()
        if org is None:
            print(f"Organization not found: {args.tenant}", file=sys.stderr)
            sys.exit(1)

        if org.subscription_tier == args.tier:
            print(f"Tier unchanged: {args.tenant} is already {args.tier}")
            return

        previous = org.subscription_tier
        org.subscription_tier = args.tier
        session.commit()
        print(f"Tier updated: {args.tenant} {previous} -> {args.tier}")


def show(args: argparse.Namespace) -> None:
    """Show an organization and how many POA&M items it holds."""
    namespace = _namespace_or_exit(args.tenant)
    with get_sync_session(namespace) as session:
        org = session.execute(
            select(Organization).where(Organization.id == args.tenant)
        ).scalar_one_or_none()
        if org is None:
            print(f"Organization not found: {args.tenant}", file=sys.stderr)
            sys.exit(1)

        items = session.execute(
            select(func.count())
            .select_from(PoamItem)
            .where(PoamItem.organization_id == org.id)
        ).scalar_one()

        print(f"Organization: {org.name} ({org.id})")
        print(f"   Schema:  {namespace}")
        print(f"   Tier:    {org.subscription_tier}")
        print(f"   Status:  {org.status}")
        print(f"   Items:   {items}")


def main() -> None:
    """Parse arguments and dispatch to command handler."""
    parser = argparse.ArgumentParser(description="Tenant management CLI")
    sub = parser.add_subparsers(dest="command", required=True)
    tiers = [t.value for t in Tier]

    # provision
    p = sub.add_parser("provision", help="Provision a tenant namespace")
    p.add_argument("--tenant", required=True, help="Tenant (organization) id")
    p.add_argument("--name", required=True, help="Organization name")
    p.add_argument("--tier", choices=tiers, default=Tier.FREE.value)

    # set-tier
    p = sub.add_parser("set-tier", help="Change subscription tier")
    p.add_argument("--tenant", required=True, help="Tenant (organization) id")
    p.add_argument("--tier", required=True, choices=tiers)

    # show
    p = sub.add_parser("show", help="Show an organization")
    p.add_argument("--tenant", required=True, help="Tenant (organization) id")

    args = parser.parse_args()
    commands: dict[str, Callable[[argparse.Namespace], None]] = {
        "provision": provision,
        "set-tier": set_tier,
        "show": show,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
