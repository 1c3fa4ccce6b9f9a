"""Repository for Store records."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.errors import ReservedSlugError, StoreAlreadyExistsError
from storefront.storage.orm import Store
from storefront.tenancy.classifier import TenantClassifier
from storefront.tenancy.tiers import Tier


class StoreRepository:
    """Store lookups and creation.

    Slugs are validated against the classifier's reserved names so a store
    can never shadow a system route or subdomain.
    """

    def __init__(self, session: AsyncSession, classifier: TenantClassifier) -> None:
        self._session = session
        self._classifier = classifier

    async def get_by_slug(self, slug: str) -> Store | None:
        stmt = select(Store).where(Store.slug == slug.lower())
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        *,
        slug: str,
        name: str,
        email: str | None = None,
        tier: Tier = Tier.STARTER,
        limits: dict[str, Any] | None = None,
        features: list[str] | None = None,
    ) -> Store:
        """Create a new store.

        Raises:
            ReservedSlugError: slug is reserved or not a valid slug.
            StoreAlreadyExistsError: slug is already taken.
        """
        if self._classifier.is_reserved_slug(slug):
            raise ReservedSlugError(slug)
        normalized = slug.lower()
        if await self.get_by_slug(normalized) is not None:
            raise StoreAlreadyExistsError(normalized)

        store = Store(
            slug=normalized,
            name=name,
            email=email,
            tier=str(tier),
            limits=limits,
            features=features,
        )
        self._session.add(store)
        await self._session.flush()
        return store

    async def list_all(self) -> Sequence[Store]:
        result = await self._session.execute(select(Store).order_by(Store.slug))
        return result.scalars().all()
