"""Tests for limit and feature gates."""

import dataclasses

import pytest

from storefront.tenancy.context import (
    PaymentStatus,
    Subscription,
    TenantContext,
    TenantStatus,
    default_context,
)
from storefront.tenancy.limits import (
    LimitCheck,
    UpgradeRecommendation,
    Usage,
    check_limit,
    check_subscription_quota,
    get_tier_rate_limit,
    has_feature,
    is_operational,
    recommend_upgrade,
)
from storefront.tenancy.tiers import (
    TIER_PRESETS,
    UNLIMITED,
    Tier,
    tier_for_growth_stage,
)


def _context(tier: Tier, **overrides: object) -> TenantContext:
    preset = TIER_PRESETS[tier]
    ctx = dataclasses.replace(
        default_context(),
        tenant_id="acme",
        tenant_slug="acme",
        tier=tier,
        limits=preset.limits,
        features=preset.features,
    )
    return dataclasses.replace(ctx, **overrides)


class TestCheckLimit:
    def test_at_limit_is_denied(self) -> None:
        """Starter allows 10 products: usage 10 is not allowed."""
        ctx = _context(Tier.STARTER)
        assert check_limit(ctx, "products", 10) == LimitCheck(
            allowed=False, remaining=0, percentage=100.0
        )

    def test_below_limit_is_allowed(self) -> None:
        result = check_limit(_context(Tier.STARTER), "products", 9)
        assert result.allowed is True
        assert result.remaining == 1
        assert result.percentage == pytest.approx(90.0)

    def test_over_limit_remaining_clamped(self) -> None:
        result = check_limit(_context(Tier.STARTER), "products", 15)
        assert result.allowed is False
        assert result.remaining == 0

    @pytest.mark.parametrize("usage", [0, 1, 10_000, 10**12])
    def test_unlimited_always_allowed(self, usage: int) -> None:
        result = check_limit(_context(Tier.ENTERPRISE), "products", usage)
        assert result == LimitCheck(allowed=True, remaining=UNLIMITED, percentage=0.0)

    def test_zero_limit(self) -> None:
        preset = TIER_PRESETS[Tier.STARTER]
        ctx = _context(Tier.STARTER, limits=preset.limits.merged({"orders": 0}))
        result = check_limit(ctx, "orders", 0)
        assert result.allowed is False
        assert result.percentage == 0.0

    def test_unknown_limit_type(self) -> None:
        with pytest.raises(KeyError):
            check_limit(_context(Tier.STARTER), "widgets", 1)


class TestFeaturesAndQuotas:
    def test_has_feature(self) -> None:
        assert has_feature(_context(Tier.PRO), "api_access") is True
        assert has_feature(_context(Tier.STARTER), "api_access") is False

    def test_tier_rate_limit(self) -> None:
        assert get_tier_rate_limit(_context(Tier.GROWTH)) == 500
        assert get_tier_rate_limit(default_context()) == 100

    def test_monthly_quota(self) -> None:
        result = check_subscription_quota(_context(Tier.STARTER), 10_000)
        assert result.allowed is False
        assert result.remaining == 0

    def test_enterprise_quota_unlimited(self) -> None:
        result = check_subscription_quota(_context(Tier.ENTERPRISE), 10**9)
        assert result.allowed is True
        assert result.remaining == UNLIMITED


class TestIsOperational:
    def test_active_current(self) -> None:
        assert is_operational(_context(Tier.GROWTH)) is True

    def test_suspended(self) -> None:
        assert is_operational(_context(Tier.GROWTH, status=TenantStatus.SUSPENDED)) is False

    def test_cancelled_subscription(self) -> None:
        ctx = _context(
            Tier.GROWTH,
            subscription=Subscription(payment_status=PaymentStatus.CANCELLED),
        )
        assert is_operational(ctx) is False


class TestGrowthStage:
    @pytest.mark.parametrize(
        ("orders", "products", "expected"),
        [
            (0, 0, Tier.STARTER),
            (99, 49, Tier.STARTER),
            (99, 50, Tier.GROWTH),
            (999, 499, Tier.GROWTH),
            (999, 500, Tier.PRO),
            (4999, 10_000, Tier.PRO),
            (5000, 0, Tier.ENTERPRISE),
        ],
    )
    def test_boundaries(self, orders: int, products: int, expected: Tier) -> None:
        assert tier_for_growth_stage(orders, products) == expected


class TestRecommendUpgrade:
    def test_well_under_limits(self) -> None:
        usage = Usage(products=7, orders=79, storage=79)
        result = recommend_upgrade(_context(Tier.STARTER), usage)
        assert result == UpgradeRecommendation(should_upgrade=False)

    def test_products_at_eighty_percent(self) -> None:
        """Starter allows 10 products: the eighth triggers a recommendation."""
        usage = Usage(products=8, orders=0, storage=0)
        result = recommend_upgrade(_context(Tier.STARTER), usage)

        assert result.should_upgrade is True
        assert result.recommended_tier == Tier.GROWTH
        assert result.reason == "You're approaching your current plan limits"

    def test_storage_alone_triggers(self) -> None:
        usage = Usage(products=0, orders=0, storage=800)
        result = recommend_upgrade(_context(Tier.GROWTH), usage)
        assert result.should_upgrade is True
        assert result.recommended_tier == Tier.PRO

    def test_recommends_tier_matching_size(self) -> None:
        result = recommend_upgrade(
            _context(Tier.STARTER), Usage(products=9, orders=4000, storage=0)
        )
        assert result.recommended_tier == Tier.PRO

    def test_unlimited_limits_never_trigger(self) -> None:
        result = recommend_upgrade(
            _context(Tier.PRO, limits=TIER_PRESETS[Tier.ENTERPRISE].limits),
            Usage(products=10**6, orders=10**6, storage=0),
        )
        assert result.should_upgrade is False

    def test_top_tier_has_nowhere_to_go(self) -> None:
        result = recommend_upgrade(
            _context(Tier.ENTERPRISE), Usage(products=0, orders=0, storage=99_000)
        )
        assert result.should_upgrade is False

    def test_uses_overridden_limits(self) -> None:
        limits = TIER_PRESETS[Tier.STARTER].limits.merged({"products": 100})
        usage = Usage(products=8, orders=0, storage=0)
        result = recommend_upgrade(_context(Tier.STARTER, limits=limits), usage)
        assert result.should_upgrade is False

    def test_zero_limit_never_triggers(self) -> None:
        limits = TIER_PRESETS[Tier.STARTER].limits.merged({"products": 0})
        usage = Usage(products=0, orders=0, storage=0)
        result = recommend_upgrade(_context(Tier.STARTER, limits=limits), usage)
        assert result.should_upgrade is False
