"""Resolved tenant context for request processing."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from storefront.tenancy.tiers import TenantLimits, Tier, preset_for

DEFAULT_TENANT_ID = "default"


class RoutingStrategy(StrEnum):
    SUBDOMAIN = "subdomain"
    PATH = "path"
    DEFAULT = "default"


class TenantStatus(StrEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    PENDING = "pending"


class PaymentStatus(StrEnum):
    CURRENT = "current"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Subscription:
    expires_at: datetime | None = None
    auto_renew: bool = False
    payment_status: PaymentStatus = PaymentStatus.CURRENT


@dataclass(frozen=True)
class TenantContext:
    """Tenant identity plus tier, limits and features for one request.

    Built once per request and never mutated. The default tenant is
    always an active starter tenant.
    """

    tenant_id: str
    tenant_slug: str
    strategy: RoutingStrategy
    tier: Tier
    limits: TenantLimits
    features: frozenset[str]
    status: TenantStatus
    subscription: Subscription = field(default_factory=Subscription)

    def __post_init__(self) -> None:
        if self.tenant_id == DEFAULT_TENANT_ID and (
            self.tier != Tier.STARTER or self.status != TenantStatus.ACTIVE
        ):
            raise ValueError("Default tenant must be an active starter tenant")

    @property
    def is_default(self) -> bool:
        return self.tenant_id == DEFAULT_TENANT_ID

    def to_dict(self) -> dict[str, Any]:
        expires_at = self.subscription.expires_at
        return {
            "tenantId": self.tenant_id,
            "tenantSlug": self.tenant_slug,
            "strategy": str(self.strategy),
            "tier": str(self.tier),
            "limits": self.limits.to_dict(),
            "features": sorted(self.features),
            "status": str(self.status),
            "subscription": {
                "expires_at": expires_at.isoformat() if expires_at else None,
                "auto_renew": self.subscription.auto_renew,
                "payment_status": str(self.subscription.payment_status),
            },
        }


def default_context() -> TenantContext:
    """Fallback context used when no tenant is recognised or resolution fails."""
    preset = preset_for(Tier.STARTER)
    return TenantContext(
        tenant_id=DEFAULT_TENANT_ID,
        tenant_slug=DEFAULT_TENANT_ID,
        strategy=RoutingStrategy.DEFAULT,
        tier=Tier.STARTER,
        limits=preset.limits,
        features=preset.features,
        status=TenantStatus.ACTIVE,
        subscription=Subscription(),
    )
