"""Resolve a tenant identifier into a full TenantContext.

Resolution never raises: unknown tenants, store outages and malformed
records all degrade to the default context and are logged.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Protocol

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from storefront.cache import TTLCache
from storefront.errors import TenantConfigError
from storefront.tenancy.context import (
    DEFAULT_TENANT_ID,
    PaymentStatus,
    RoutingStrategy,
    Subscription,
    TenantContext,
    TenantStatus,
    default_context,
)
from storefront.tenancy.tiers import Tier, preset_for

logger = structlog.get_logger()


class SubscriptionConfig(BaseModel):
    expires_at: datetime | None = None
    auto_renew: bool = False
    payment_status: PaymentStatus = PaymentStatus.CURRENT


class TenantConfig(BaseModel):
    """Tenant record as returned by the config store.

    Only ``tier`` is required; everything else falls back to the tier preset.
    """

    model_config = ConfigDict(extra="ignore")

    tier: Tier = Tier.STARTER
    limits: dict[str, int] | None = None
    features: list[str] | None = None
    status: TenantStatus = TenantStatus.ACTIVE
    subscription: SubscriptionConfig | None = None


class TenantConfigSource(Protocol):
    async def fetch(self, tenant_id: str) -> TenantConfig | None:
        """Return the tenant's config, or None if the tenant does not exist."""
        ...


class CachedTenantConfigSource:
    """Wrap a config source with a TTL cache. Misses are not cached."""

    def __init__(self, source: TenantConfigSource, cache: TTLCache[TenantConfig]) -> None:
        self._source = source
        self._cache = cache

    async def fetch(self, tenant_id: str) -> TenantConfig | None:
        return await self._cache.get_or_compute(
            tenant_id, lambda: self._source.fetch(tenant_id)
        )

    def invalidate(self, tenant_id: str) -> None:
        self._cache.invalidate(tenant_id)


def build_context(
    config: TenantConfig,
    *,
    tenant_id: str,
    tenant_slug: str,
    strategy: RoutingStrategy,
) -> TenantContext:
    """Merge a fetched record onto its tier preset. Every field is populated."""
    preset = preset_for(config.tier)
    features = (
        frozenset(config.features) if config.features is not None else preset.features
    )
    sub = config.subscription or SubscriptionConfig()
    return TenantContext(
        tenant_id=tenant_id,
        tenant_slug=tenant_slug,
        strategy=strategy,
        tier=config.tier,
        limits=preset.limits.merged(config.limits),
        features=features,
        status=config.status,
        subscription=Subscription(
            expires_at=sub.expires_at,
            auto_renew=sub.auto_renew,
            payment_status=sub.payment_status,
        ),
    )


class TenantContextResolver:
    """Turn a tenant id into a TenantContext via a config source."""

    def __init__(self, source: TenantConfigSource, timeout: float = 2.0) -> None:
        self._source = source
        self._timeout = timeout

    async def resolve(
        self,
        tenant_id: str,
        tenant_slug: str | None = None,
        strategy: RoutingStrategy = RoutingStrategy.DEFAULT,
    ) -> TenantContext:
        if not tenant_id or tenant_id == DEFAULT_TENANT_ID:
            return default_context()

        try:
            async with asyncio.timeout(self._timeout):
                config = await self._source.fetch(tenant_id)
            if config is None:
                logger.warning("tenant_not_found", tenant_id=tenant_id)
                return default_context()
            return build_context(
                config,
                tenant_id=tenant_id,
                tenant_slug=tenant_slug or tenant_id,
                strategy=strategy,
            )
        except (ValidationError, TenantConfigError, TimeoutError) as exc:
            logger.warning(
                "tenant_resolution_failed",
                tenant_id=tenant_id,
                error=type(exc).__name__,
                detail=str(exc),
            )
        except Exception as exc:
            logger.warning(
                "tenant_resolution_failed",
                tenant_id=tenant_id,
                error=type(exc).__name__,
                detail=str(exc),
                exc_info=True,
            )
        return default_context()


class RequestTenantScope:
    """Memoises one resolution for the lifetime of a single request.

    Concurrent callers within the request await the same task.
    """

    def __init__(
        self,
        resolver: TenantContextResolver,
        tenant_id: str,
        tenant_slug: str,
        strategy: RoutingStrategy,
    ) -> None:
        self._resolver = resolver
        self._args: tuple[Any, ...] = (tenant_id, tenant_slug, strategy)
        self._task: asyncio.Task[TenantContext] | None = None

    async def get(self) -> TenantContext:
        if self._task is None:
            self._task = asyncio.ensure_future(self._resolver.resolve(*self._args))
        return await asyncio.shield(self._task)
