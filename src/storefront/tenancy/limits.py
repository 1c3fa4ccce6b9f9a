"""Advisory limit and feature gates over a resolved TenantContext.

Pure functions: no I/O, no side effects. Callers decide what to do with
a negative answer (usually an upgrade prompt).
"""

from __future__ import annotations

from dataclasses import dataclass

from storefront.tenancy.context import PaymentStatus, TenantContext, TenantStatus
from storefront.tenancy.tiers import (
    TIER_API_RATE_LIMITS,
    TIER_MONTHLY_REQUEST_QUOTAS,
    UNLIMITED,
    Tier,
    tier_for_growth_stage,
)

UPGRADE_THRESHOLD = 0.8
UPGRADE_REASON = "You're approaching your current plan limits"


@dataclass(frozen=True)
class LimitCheck:
    allowed: bool
    remaining: int
    percentage: float


def check_limit(context: TenantContext, limit_type: str, current_usage: int) -> LimitCheck:
    """Compare usage against one of the tenant's limits.

    An unlimited limit always allows and reports ``remaining == -1``.

    Raises:
        KeyError: unknown ``limit_type``.
    """
    limit = context.limits.get(limit_type)
    if limit == UNLIMITED:
        return LimitCheck(allowed=True, remaining=UNLIMITED, percentage=0.0)
    return LimitCheck(
        allowed=current_usage < limit,
        remaining=max(0, limit - current_usage),
        percentage=(current_usage / limit * 100) if limit > 0 else 0.0,
    )


def has_feature(context: TenantContext, feature: str) -> bool:
    return feature in context.features


def get_tier_rate_limit(context: TenantContext) -> int:
    """Per-tenant API quota (requests/minute) for the tenant's tier."""
    return TIER_API_RATE_LIMITS.get(context.tier, TIER_API_RATE_LIMITS[Tier.STARTER])


def check_subscription_quota(context: TenantContext, monthly_usage: int) -> LimitCheck:
    """Monthly request quota by tier. Enterprise is unlimited."""
    quota = TIER_MONTHLY_REQUEST_QUOTAS.get(context.tier, TIER_MONTHLY_REQUEST_QUOTAS[Tier.STARTER])
    if quota == UNLIMITED:
        return LimitCheck(allowed=True, remaining=UNLIMITED, percentage=0.0)
    return LimitCheck(
        allowed=monthly_usage < quota,
        remaining=max(0, quota - monthly_usage),
        percentage=monthly_usage / quota * 100,
    )


def is_operational(context: TenantContext) -> bool:
    """Active tenant whose subscription has not been cancelled."""
    return (
        context.status == TenantStatus.ACTIVE
        and context.subscription.payment_status != PaymentStatus.CANCELLED
    )


@dataclass(frozen=True)
class Usage:
    products: int
    orders: int  # this month
    storage: int  # MB


@dataclass(frozen=True)
class UpgradeRecommendation:
    should_upgrade: bool
    recommended_tier: Tier | None = None
    reason: str | None = None


def recommend_upgrade(context: TenantContext, usage: Usage) -> UpgradeRecommendation:
    """Suggest a higher tier once any tracked usage reaches 80% of its limit.

    The suggestion is the tier that fits the store's size, and always above
    the current one. Unlimited and zero limits never trigger; a top-tier
    store gets no recommendation.
    """
    nearing = any(
        limit > 0 and used >= limit * UPGRADE_THRESHOLD
        for limit, used in (
            (context.limits.products, usage.products),
            (context.limits.orders, usage.orders),
            (context.limits.storage, usage.storage),
        )
    )
    tiers = list(Tier)
    current = tiers.index(context.tier)
    if not nearing or current == len(tiers) - 1:
        return UpgradeRecommendation(should_upgrade=False)

    fitting = tiers.index(tier_for_growth_stage(usage.orders, usage.products))
    return UpgradeRecommendation(
        should_upgrade=True,
        recommended_tier=tiers[max(fitting, current + 1)],
        reason=UPGRADE_REASON,
    )
