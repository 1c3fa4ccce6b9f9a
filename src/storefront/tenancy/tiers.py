"""Canonical subscription tier table.

Every place that needs per-tier numbers (default context, resolver merges,
limit gates) reads them from here.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any

UNLIMITED = -1


class Tier(StrEnum):
    STARTER = "starter"
    GROWTH = "growth"
    PRO = "pro"
    ENTERPRISE = "enterprise"


@dataclass(frozen=True)
class TenantLimits:
    """Resource limits for a tenant. ``-1`` means unlimited."""

    products: int
    orders: int
    storage: int  # MB
    bandwidth: int  # GB
    api_calls: int  # per month

    def __post_init__(self) -> None:
        for name in LIMIT_TYPES:
            value = getattr(self, name)
            if value < UNLIMITED:
                raise ValueError(f"Limit '{name}' must be >= -1, got {value}")

    def get(self, limit_type: str) -> int:
        if limit_type not in LIMIT_TYPES:
            raise KeyError(f"Unknown limit type: {limit_type}")
        return int(getattr(self, limit_type))

    def merged(self, overrides: dict[str, Any] | None) -> TenantLimits:
        """Return a copy with known keys from *overrides* applied."""
        if not overrides:
            return self
        known = {k: int(v) for k, v in overrides.items() if k in LIMIT_TYPES}
        return replace(self, **known)

    def to_dict(self) -> dict[str, int]:
        return {name: self.get(name) for name in LIMIT_TYPES}


LIMIT_TYPES: tuple[str, ...] = ("products", "orders", "storage", "bandwidth", "api_calls")


@dataclass(frozen=True)
class TierPreset:
    limits: TenantLimits
    features: frozenset[str]


_STARTER_FEATURES = frozenset({"basic_store", "product_management", "order_processing"})
_GROWTH_FEATURES = _STARTER_FEATURES | {"advanced_analytics", "custom_domain", "email_support"}
_PRO_FEATURES = _GROWTH_FEATURES | {"api_access", "priority_support", "white_label"}
_ENTERPRISE_FEATURES = _PRO_FEATURES | {"dedicated_account_manager", "advanced_integrations"}

TIER_PRESETS: dict[Tier, TierPreset] = {
    Tier.STARTER: TierPreset(
        limits=TenantLimits(products=10, orders=100, storage=100, bandwidth=1, api_calls=1000),
        features=_STARTER_FEATURES,
    ),
    Tier.GROWTH: TierPreset(
        limits=TenantLimits(
            products=200, orders=2000, storage=1000, bandwidth=10, api_calls=10000
        ),
        features=_GROWTH_FEATURES,
    ),
    Tier.PRO: TierPreset(
        limits=TenantLimits(
            products=1000, orders=10000, storage=10000, bandwidth=100, api_calls=100000
        ),
        features=_PRO_FEATURES,
    ),
    Tier.ENTERPRISE: TierPreset(
        limits=TenantLimits(
            products=UNLIMITED,
            orders=UNLIMITED,
            storage=100000,
            bandwidth=1000,
            api_calls=UNLIMITED,
        ),
        features=_ENTERPRISE_FEATURES,
    ),
}

# Requests per minute for per-tenant API quotas.
TIER_API_RATE_LIMITS: dict[Tier, int] = {
    Tier.STARTER: 100,
    Tier.GROWTH: 500,
    Tier.PRO: 2000,
    Tier.ENTERPRISE: 10000,
}

TIER_MONTHLY_REQUEST_QUOTAS: dict[Tier, int] = {
    Tier.STARTER: 10000,
    Tier.GROWTH: 50000,
    Tier.PRO: 200000,
    Tier.ENTERPRISE: UNLIMITED,
}


def preset_for(tier: Tier | str) -> TierPreset:
    """Look up a tier preset; unknown tiers resolve to starter."""
    try:
        return TIER_PRESETS[Tier(tier)]
    except ValueError:
        return TIER_PRESETS[Tier.STARTER]


def tier_for_growth_stage(monthly_orders: int, products: int) -> Tier:
    """Smallest tier that fits a store of this size."""
    if monthly_orders < 100 and products < 50:
        return Tier.STARTER
    if monthly_orders < 1000 and products < 500:
        return Tier.GROWTH
    if monthly_orders < 5000:
        return Tier.PRO
    return Tier.ENTERPRISE
