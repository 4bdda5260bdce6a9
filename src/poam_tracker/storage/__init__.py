"""Persistence: ORM models, tenant-scoped sessions, provisioning."""
