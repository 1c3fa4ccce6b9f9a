"""Tenant context and limit-gate endpoints.

Mounted both at the root and under ``/{store}`` so path-routed and
subdomain-rewritten requests reach the same handlers.
"""

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse

from storefront.api.deps import get_tenant_context
from storefront.api.schemas import (
    FeatureResponse,
    LimitCheckResponse,
    QuotaResponse,
    UpgradeResponse,
)
from storefront.auth.guards import require_roles
from storefront.auth.session import Role, SessionUser
from storefront.tenancy.context import TenantContext
from storefront.tenancy.headers import INJECTED_HEADERS
from storefront.tenancy.limits import (
    Usage,
    check_limit,
    check_subscription_quota,
    get_tier_rate_limit,
    has_feature,
    is_operational,
    recommend_upgrade,
)
from storefront.tenancy.tiers import LIMIT_TYPES

logger = structlog.get_logger()

router = APIRouter(prefix="/api/tenant", tags=["tenant"])

_tenant_dep = Depends(get_tenant_context)
_manager_dep = Depends(require_roles(Role.STORE_OWNER, Role.PLATFORM_ADMIN))


@router.get("/context")
async def get_context(
    request: Request,
    context: TenantContext = _tenant_dep,
) -> JSONResponse:
    """Resolved tenant context plus the headers the routing middleware injected."""
    return JSONResponse(
        content={
            "success": True,
            "timestamp": datetime.now(UTC).isoformat(timespec="seconds"),
            "tenant": context.to_dict(),
            "operational": is_operational(context),
            "headers": {name: request.headers.get(name) for name in INJECTED_HEADERS},
            "request": {
                "url": str(request.url),
                "method": request.method,
                "pathname": request.url.path,
                "hostname": request.headers.get("host"),
            },
        }
    )


@router.head("/context")
async def tenant_health(request: Request) -> Response:
    """Tenant routing health check for monitoring."""
    try:
        context = await get_tenant_context(request)
    except Exception as e:
        logger.error("tenant_health_error", error=type(e).__name__, exc_info=True)
        return Response(status_code=503, headers={"X-Tenant-Health": "ERROR"})
    return Response(
        status_code=200,
        headers={
            "X-Tenant-Health": "OK",
            "X-Tenant-ID": context.tenant_id,
            "X-Tenant-Tier": str(context.tier),
        },
    )


@router.get("/limits/{limit_type}", response_model=LimitCheckResponse)
async def get_limit(
    limit_type: str,
    usage: int = Query(0, ge=0),
    context: TenantContext = _tenant_dep,
) -> LimitCheckResponse:
    """Check current usage against one of the tenant's limits."""
    if limit_type not in LIMIT_TYPES:
        raise HTTPException(status_code=404, detail=f"Unknown limit type: {limit_type}")
    result = check_limit(context, limit_type, usage)
    return LimitCheckResponse(
        tenant_id=context.tenant_id,
        tier=str(context.tier),
        limit_type=limit_type,
        limit=context.limits.get(limit_type),
        usage=usage,
        allowed=result.allowed,
        remaining=result.remaining,
        percentage=result.percentage,
    )


@router.get("/quota", response_model=QuotaResponse)
async def get_quota(
    usage: int = Query(0, ge=0),
    context: TenantContext = _tenant_dep,
) -> QuotaResponse:
    """Monthly request quota for the tenant's subscription tier."""
    result = check_subscription_quota(context, usage)
    return QuotaResponse(
        tenant_id=context.tenant_id,
        tier=str(context.tier),
        usage=usage,
        allowed=result.allowed,
        remaining=result.remaining,
        percentage=result.percentage,
        rate_limit_per_minute=get_tier_rate_limit(context),
    )


@router.get("/features/{feature}", response_model=FeatureResponse)
async def get_feature(
    feature: str,
    context: TenantContext = _tenant_dep,
) -> FeatureResponse:
    return FeatureResponse(
        tenant_id=context.tenant_id,
        feature=feature,
        enabled=has_feature(context, feature),
    )


@router.get("/upgrade", response_model=UpgradeResponse)
async def get_upgrade_recommendation(
    products: int = Query(0, ge=0),
    orders: int = Query(0, ge=0),
    storage: int = Query(0, ge=0),
    context: TenantContext = _tenant_dep,
) -> UpgradeResponse:
    """Whether current usage warrants a plan upgrade, and to which tier."""
    result = recommend_upgrade(
        context, Usage(products=products, orders=orders, storage=storage)
    )
    return UpgradeResponse(
        tenant_id=context.tenant_id,
        tier=str(context.tier),
        should_upgrade=result.should_upgrade,
        recommended_tier=(
            str(result.recommended_tier) if result.recommended_tier else None
        ),
        reason=result.reason,
    )


@router.get("/manage")
async def get_management_summary(
    user: SessionUser = _manager_dep,
    context: TenantContext = _tenant_dep,
) -> JSONResponse:
    """Store management summary for the owning store owner or a platform admin."""
    return JSONResponse(
        content={
            "tenant": context.to_dict(),
            "operational": is_operational(context),
            "rateLimitPerMinute": get_tier_rate_limit(context),
            "user": {"id": user.id, "role": str(user.role)},
        }
    )
