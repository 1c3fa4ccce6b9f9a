"""Classify a request's tenant from its host and path.

Subdomain routing (``acme.platform.example/...``) takes precedence over
path routing (``platform.example/acme/...``). Anything else falls back to
the default tenant.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from storefront.tenancy.context import DEFAULT_TENANT_ID, RoutingStrategy

SLUG_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")


@dataclass(frozen=True)
class TenantClassification:
    tenant_id: str | None
    tenant_slug: str | None
    strategy: RoutingStrategy

    def with_defaults(self) -> TenantClassification:
        """Substitute the default tenant for a missing id or slug."""
        return TenantClassification(
            tenant_id=self.tenant_id or DEFAULT_TENANT_ID,
            tenant_slug=self.tenant_slug or DEFAULT_TENANT_ID,
            strategy=self.strategy,
        )


_DEFAULT = TenantClassification(None, None, RoutingStrategy.DEFAULT)


class TenantClassifier:
    """Pure host/path classifier. Holds only its configuration."""

    def __init__(
        self,
        base_domain: str,
        reserved_subdomains: Iterable[str] = ("api",),
        reserved_routes: Iterable[str] = (),
    ) -> None:
        self._base_domain = base_domain.lower().strip(".")
        root_label = self._base_domain.split(".")[0]
        self._reserved_subdomains = frozenset(
            {root_label, *(s.lower() for s in reserved_subdomains)}
        )
        self._reserved_routes = frozenset(r.lower() for r in reserved_routes)

    @property
    def reserved_routes(self) -> frozenset[str]:
        return self._reserved_routes

    def classify(self, hostname: str | None, pathname: str) -> TenantClassification:
        slug = self._from_subdomain(hostname)
        if slug is not None:
            return TenantClassification(slug, slug, RoutingStrategy.SUBDOMAIN)

        slug = self._from_path(pathname)
        if slug is not None:
            return TenantClassification(slug, slug, RoutingStrategy.PATH)

        return _DEFAULT

    def is_reserved_slug(self, slug: str) -> bool:
        """True if *slug* cannot be used as a store slug."""
        lowered = slug.lower()
        return (
            lowered in self._reserved_routes
            or lowered in self._reserved_subdomains
            or lowered == "www"
            or SLUG_PATTERN.match(lowered) is None
        )

    def _from_subdomain(self, hostname: str | None) -> str | None:
        if not hostname:
            return None
        host = hostname.lower().split(":", 1)[0]
        if host.startswith("www.") or not host.endswith(f".{self._base_domain}"):
            return None
        label = host.split(".", 1)[0]
        if not label or label in self._reserved_subdomains:
            return None
        return label

    def _from_path(self, pathname: str) -> str | None:
        segment = pathname.lstrip("/").split("/", 1)[0]
        if not segment or segment.lower() in self._reserved_routes:
            return None
        return segment.lower()
