"""Tenant identity propagation through request headers.

The routing middleware writes these headers once per request; route
handlers only ever read them back.
"""

from __future__ import annotations

import json
import time
from collections.abc import Mapping
from dataclasses import dataclass

from storefront.tenancy.classifier import TenantClassification
from storefront.tenancy.context import DEFAULT_TENANT_ID, RoutingStrategy

TENANT_ID_HEADER = "x-tenant-id"
TENANT_SLUG_HEADER = "x-tenant-slug"
TENANT_STRATEGY_HEADER = "x-tenant-strategy"
ORIGINAL_PATHNAME_HEADER = "x-original-pathname"
ORIGINAL_HOSTNAME_HEADER = "x-original-hostname"
API_TENANT_CONTEXT_HEADER = "x-api-tenant-context"

# Every header the routing middleware owns; client-sent copies are dropped.
INJECTED_HEADERS: tuple[str, ...] = (
    TENANT_ID_HEADER,
    TENANT_SLUG_HEADER,
    TENANT_STRATEGY_HEADER,
    ORIGINAL_PATHNAME_HEADER,
    ORIGINAL_HOSTNAME_HEADER,
    API_TENANT_CONTEXT_HEADER,
)

API_PREFIX = "/api"


@dataclass(frozen=True)
class TenantIdentity:
    tenant_id: str
    tenant_slug: str
    strategy: RoutingStrategy


def build_tenant_headers(
    classification: TenantClassification,
    *,
    hostname: str,
    pathname: str,
    now_ms: int | None = None,
) -> dict[str, str]:
    """Headers describing the request's tenant. Values are never empty."""
    tenant_id = classification.tenant_id or DEFAULT_TENANT_ID
    tenant_slug = classification.tenant_slug or DEFAULT_TENANT_ID
    headers = {
        TENANT_ID_HEADER: tenant_id,
        TENANT_SLUG_HEADER: tenant_slug,
        TENANT_STRATEGY_HEADER: str(classification.strategy),
        ORIGINAL_PATHNAME_HEADER: pathname,
        ORIGINAL_HOSTNAME_HEADER: hostname,
    }
    if pathname.startswith(API_PREFIX):
        headers[API_TENANT_CONTEXT_HEADER] = json.dumps(
            {
                "tenantId": tenant_id,
                "tenantSlug": tenant_slug,
                "strategy": str(classification.strategy),
                "timestamp": now_ms if now_ms is not None else int(time.time() * 1000),
            }
        )
    return headers


def rewrite_path(classification: TenantClassification, pathname: str) -> str:
    """Prefix the slug for subdomain requests so one route tree serves both strategies."""
    if classification.strategy != RoutingStrategy.SUBDOMAIN or not classification.tenant_slug:
        return pathname
    return f"/{classification.tenant_slug}{pathname}"


def read_tenant_identity(headers: Mapping[str, str]) -> TenantIdentity:
    """Read injected tenant headers back, defaulting anything missing."""
    raw_strategy = headers.get(TENANT_STRATEGY_HEADER, RoutingStrategy.DEFAULT)
    try:
        strategy = RoutingStrategy(raw_strategy)
    except ValueError:
        strategy = RoutingStrategy.DEFAULT
    return TenantIdentity(
        tenant_id=headers.get(TENANT_ID_HEADER) or DEFAULT_TENANT_ID,
        tenant_slug=headers.get(TENANT_SLUG_HEADER) or DEFAULT_TENANT_ID,
        strategy=strategy,
    )


def tenant_relative_path(identity: TenantIdentity, pathname: str) -> str:
    """Path inside the tenant's own route tree.

    ``/acme/api/x`` becomes ``/api/x`` for a path-routed ``acme`` request.
    Subdomain and default requests are already relative.
    """
    if identity.strategy != RoutingStrategy.PATH:
        return pathname
    head, sep, rest = pathname.lstrip("/").partition("/")
    if head.lower() != identity.tenant_slug:
        return pathname
    return f"/{rest}" if sep else "/"
