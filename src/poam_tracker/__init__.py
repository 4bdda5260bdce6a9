"""Multi-tenant POA&M tracking backend: tenant isolation and quota gateway."""
