"""Sliding-window quota enforcement and tenant-scoped response caching.

Store clients are injected at construction time. Import concrete classes
from their modules: ``poam_tracker.quota.enforcer``,
``poam_tracker.quota.cache``, ``poam_tracker.quota.store``.
"""
