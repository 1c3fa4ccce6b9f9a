"""FastAPI dependency injection."""

from __future__ import annotations

from typing import cast

from fastapi import HTTPException, Request

from storefront.auth.session import SessionAuthenticator, SessionUser
from storefront.config import settings
from storefront.errors import InvalidSessionError
from storefront.ratelimit.limiter import LayeredRateLimiter
from storefront.tenancy.context import TenantContext
from storefront.tenancy.headers import TenantIdentity, read_tenant_identity
from storefront.tenancy.resolver import RequestTenantScope, TenantContextResolver

__all__ = [
    "get_authenticator",
    "get_current_user",
    "get_optional_user",
    "get_rate_limiter",
    "get_tenant_context",
    "get_tenant_identity",
    "get_tenant_resolver",
]

BEARER_PREFIX = "bearer "


async def get_tenant_identity(request: Request) -> TenantIdentity:
    """Tenant identity injected by the routing middleware."""
    return read_tenant_identity(request.headers)


async def get_tenant_resolver(request: Request) -> TenantContextResolver:
    """Retrieve TenantContextResolver from app state.

    Initialized during lifespan startup.
    """
    return cast(TenantContextResolver, request.app.state.tenant_resolver)


async def get_tenant_context(request: Request) -> TenantContext:
    """Resolve the request's tenant once; later calls reuse the same result."""
    scope: RequestTenantScope | None = getattr(request.state, "tenant_scope", None)
    if scope is None:
        identity = read_tenant_identity(request.headers)
        scope = RequestTenantScope(
            await get_tenant_resolver(request),
            identity.tenant_id,
            identity.tenant_slug,
            identity.strategy,
        )
        request.state.tenant_scope = scope
    return await scope.get()


async def get_rate_limiter(request: Request) -> LayeredRateLimiter:
    """Retrieve LayeredRateLimiter from app state."""
    return cast(LayeredRateLimiter, request.app.state.rate_limiter)


async def get_authenticator(request: Request) -> SessionAuthenticator:
    """Retrieve SessionAuthenticator from app state."""
    return cast(SessionAuthenticator, request.app.state.authenticator)


def session_token(request: Request) -> str | None:
    """Session token from the session cookie, else a Bearer header."""
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        return token
    authorization = request.headers.get("authorization", "")
    if authorization.lower().startswith(BEARER_PREFIX):
        return authorization[len(BEARER_PREFIX) :].strip() or None
    return None


async def get_optional_user(request: Request) -> SessionUser | None:
    """Authenticated user, or None for anonymous or invalid sessions."""
    token = session_token(request)
    authenticator: SessionAuthenticator | None = getattr(
        request.app.state, "authenticator", None
    )
    if token is None or authenticator is None:
        return None
    try:
        return authenticator.verify(token)
    except InvalidSessionError:
        return None


async def get_current_user(request: Request) -> SessionUser:
    """Authenticate request via session token.

    Raises:
        HTTPException 401: missing, invalid, or expired session.
    """
    token = session_token(request)
    if token is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    authenticator = await get_authenticator(request)
    try:
        return authenticator.verify(token)
    except InvalidSessionError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
