"""Domain-specific exceptions for storefront."""

from __future__ import annotations


class TenantConfigError(Exception):
    """Tenant configuration could not be loaded or is malformed."""

    def __init__(self, tenant_id: str, reason: str) -> None:
        self.tenant_id = tenant_id
        self.reason = reason
        super().__init__(f"Tenant config unavailable for '{tenant_id}': {reason}")


class CounterStoreError(Exception):
    """The shared rate-limit counter store failed or timed out."""


class InvalidSessionError(Exception):
    """Session token is missing, malformed, expired or badly signed."""


class ReservedSlugError(ValueError):
    """Store slug collides with a system route or is not a valid slug."""

    def __init__(self, slug: str) -> None:
        self.slug = slug
        super().__init__(f"Store slug is reserved or invalid: {slug!r}")


class StoreAlreadyExistsError(Exception):
    """A store with this slug already exists."""

    def __init__(self, slug: str) -> None:
        self.slug = slug
        super().__init__(f"Store already exists: {slug}")
