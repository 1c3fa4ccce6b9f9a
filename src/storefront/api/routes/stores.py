"""Store creation endpoint."""

from typing import cast

import structlog
from fastapi import APIRouter, HTTPException, Request

from storefront.api.schemas import StoreCreateRequest, StoreResponse
from storefront.errors import ReservedSlugError, StoreAlreadyExistsError
from storefront.storage.shards import ShardRouter
from storefront.storage.store_repository import StoreRepository
from storefront.tenancy.classifier import TenantClassifier

logger = structlog.get_logger()

router = APIRouter(prefix="/api/stores", tags=["stores"])


@router.post("", status_code=201, response_model=StoreResponse)
async def create_store(body: StoreCreateRequest, request: Request) -> StoreResponse:
    """Create a store on the shard that owns its slug.

    Raises:
        HTTPException 400: slug is reserved or malformed.
        HTTPException 409: slug already taken.
    """
    shards = cast(ShardRouter, request.app.state.shard_router)
    classifier = cast(TenantClassifier, request.app.state.classifier)
    session_factory = shards.session_factory_for(body.slug.lower())

    async with session_factory() as session:
        repo = StoreRepository(session, classifier)
        try:
            store = await repo.create(
                slug=body.slug,
                name=body.name,
                email=body.email,
                tier=body.tier,
            )
        except ReservedSlugError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except StoreAlreadyExistsError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        await session.commit()
        await session.refresh(store)

    logger.info("store_created", slug=store.slug, tier=store.tier)
    return StoreResponse.model_validate(store)
