"""Request/response schemas for the API layer."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from storefront.tenancy.tiers import Tier


class LimitCheckResponse(BaseModel):
    """Response for ``GET /api/tenant/limits/{limit_type}``.

    ``limit`` and ``remaining`` are ``-1`` when the limit is unlimited.
    """

    tenant_id: str
    tier: str
    limit_type: str
    limit: int
    usage: int
    allowed: bool
    remaining: int
    percentage: float = Field(description="Share of the limit used, 0-100+.")


class QuotaResponse(BaseModel):
    """Monthly request quota for the tenant's tier."""

    tenant_id: str
    tier: str
    usage: int
    allowed: bool
    remaining: int
    percentage: float
    rate_limit_per_minute: int


class FeatureResponse(BaseModel):
    tenant_id: str
    feature: str
    enabled: bool


class UpgradeResponse(BaseModel):
    """Response for ``GET /api/tenant/upgrade``."""

    tenant_id: str
    tier: str
    should_upgrade: bool
    recommended_tier: str | None = None
    reason: str | None = None


class StoreCreateRequest(BaseModel):
    """Request body for POST /api/stores."""

    slug: str = Field(..., min_length=1, max_length=63)
    name: str = Field(..., min_length=1, max_length=200)
    email: str | None = Field(None, max_length=320)
    tier: Tier = Tier.STARTER


class StoreResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    slug: str
    name: str
    email: str | None
    tier: str
    status: str
    created_at: datetime
