"""Tenant identity resolution and tier gating."""

from storefront.tenancy.classifier import TenantClassification, TenantClassifier
from storefront.tenancy.context import (
    DEFAULT_TENANT_ID,
    PaymentStatus,
    RoutingStrategy,
    Subscription,
    TenantContext,
    TenantStatus,
    default_context,
)
from storefront.tenancy.resolver import (
    CachedTenantConfigSource,
    RequestTenantScope,
    TenantConfig,
    TenantConfigSource,
    TenantContextResolver,
)
from storefront.tenancy.tiers import TenantLimits, Tier

__all__ = [
    "DEFAULT_TENANT_ID",
    "CachedTenantConfigSource",
    "PaymentStatus",
    "RequestTenantScope",
    "RoutingStrategy",
    "Subscription",
    "TenantClassification",
    "TenantClassifier",
    "TenantConfig",
    "TenantConfigSource",
    "TenantContext",
    "TenantContextResolver",
    "TenantLimits",
    "TenantStatus",
    "Tier",
    "default_context",
]
