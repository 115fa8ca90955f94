"""Application cache – CacheKey builder."""
from __future__ import annotations

__all__ = ["CacheKey"]


class CacheKey:
    """Factory for deterministic cache key and tag strings."""

    @staticmethod
    def for_resource(resource_type: str, resource_id: str | int) -> str:
        return f"resource:{resource_type}:{resource_id}"

    @staticmethod
    def for_principal(principal_id: str | int) -> str:
        return f"principal:{principal_id}"

    @staticmethod
    def for_permission(
        principal_id: str | int,
        resource_type: str,
        resource_id: str | int,
        action: str,
    ) -> str:
        return f"perm:{principal_id}:{resource_type}:{resource_id}:{action}"
