"""Tenant config source backed by the stores table."""

from __future__ import annotations

from pydantic import ValidationError

from storefront.errors import TenantConfigError
from storefront.storage.orm import Store
from storefront.storage.shards import ShardRouter
from storefront.storage.store_repository import StoreRepository
from storefront.tenancy.classifier import TenantClassifier
from storefront.tenancy.resolver import SubscriptionConfig, TenantConfig


def store_to_config(store: Store) -> TenantConfig:
    """Convert a Store row into a validated TenantConfig.

    Raises:
        TenantConfigError: the row holds values outside the allowed sets.
    """
    try:
        return TenantConfig(
            tier=store.tier,
            limits=store.limits,
            features=store.features,
            status=store.status,
            subscription=SubscriptionConfig(
                expires_at=store.subscription_expires_at,
                auto_renew=store.auto_renew,
                payment_status=store.payment_status,
            ),
        )
    except ValidationError as exc:
        raise TenantConfigError(store.slug, str(exc)) from exc


class SQLTenantConfigSource:
    """Fetch tenant configs from the shard owning each tenant."""

    def __init__(self, shards: ShardRouter, classifier: TenantClassifier) -> None:
        self._shards = shards
        self._classifier = classifier

    async def fetch(self, tenant_id: str) -> TenantConfig | None:
        session_factory = self._shards.session_factory_for(tenant_id)
        async with session_factory() as session:
            store = await StoreRepository(session, self._classifier).get_by_slug(tenant_id)
        if store is None:
            return None
        return store_to_config(store)
