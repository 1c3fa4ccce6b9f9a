"""Role-based route protection."""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from fastapi import Depends, HTTPException, Request

from storefront.api.deps import get_current_user
from storefront.auth.session import Role, SessionUser
from storefront.tenancy.headers import read_tenant_identity


class GuardDecision(StrEnum):
    ALLOW = "allow"
    LOGIN_REQUIRED = "login_required"
    INACTIVE = "inactive"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class RouteRule:
    prefix: str
    roles: frozenset[Role]


ROUTE_RULES: tuple[RouteRule, ...] = (
    RouteRule("/admin", frozenset({Role.PLATFORM_ADMIN, Role.SUPPORT_AGENT})),
    RouteRule("/admin/stores", frozenset({Role.PLATFORM_ADMIN})),
    RouteRule("/admin/users", frozenset({Role.PLATFORM_ADMIN})),
    RouteRule("/admin/analytics", frozenset({Role.PLATFORM_ADMIN, Role.SUPPORT_AGENT})),
    RouteRule("/api/admin", frozenset({Role.PLATFORM_ADMIN})),
    RouteRule("/api/stores/approve", frozenset({Role.PLATFORM_ADMIN})),
)

# Matched against the path inside a store, so /acme/manage and
# acme.<base>/manage hit the same rule.
STORE_ROUTE_RULES: tuple[RouteRule, ...] = (
    RouteRule("/manage", frozenset({Role.STORE_OWNER, Role.PLATFORM_ADMIN})),
)

PUBLIC_ROUTES: tuple[str, ...] = (
    "/",
    "/login",
    "/register",
    "/onboarding",
    "/api/auth",
    "/api/stores/public",
)


def _matches(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(f"{prefix.rstrip('/')}/")


def is_public(path: str) -> bool:
    if path == "/":
        return True
    return any(route != "/" and _matches(path, route) for route in PUBLIC_ROUTES)


def required_roles(
    path: str, rules: tuple[RouteRule, ...] = ROUTE_RULES
) -> frozenset[Role] | None:
    """Roles allowed on *path*, from the most specific matching rule."""
    matching = [rule for rule in rules if _matches(path, rule.prefix)]
    if not matching:
        return None
    return max(matching, key=lambda rule: len(rule.prefix)).roles


def authorize(
    user: SessionUser | None,
    path: str,
    *,
    store_path: str | None = None,
    tenant_id: str | None = None,
) -> GuardDecision:
    """Decide whether *user* may access *path*.

    Unprotected and public paths are always allowed; protected paths need
    an active user holding one of the rule's roles. For tenant requests
    *store_path* is the path inside the store and is checked against
    ``STORE_ROUTE_RULES``; a store owner there must own *tenant_id*.
    """
    roles = None if is_public(path) else required_roles(path)
    store_roles = None
    if store_path is not None:
        store_roles = required_roles(store_path, STORE_ROUTE_RULES)
    if roles is None and store_roles is None:
        return GuardDecision.ALLOW
    if user is None:
        return GuardDecision.LOGIN_REQUIRED
    if not user.is_active:
        return GuardDecision.INACTIVE
    if roles is not None and user.role not in roles:
        return GuardDecision.FORBIDDEN
    if store_roles is not None:
        if user.role not in store_roles:
            return GuardDecision.FORBIDDEN
        if user.role == Role.STORE_OWNER and user.tenant_id != tenant_id:
            return GuardDecision.FORBIDDEN
    return GuardDecision.ALLOW


_user_dep = Depends(get_current_user)


def require_roles(
    *roles: Role,
) -> Callable[..., Coroutine[Any, Any, SessionUser]]:
    """Dependency factory: require one of *roles* within the request's tenant.

    Usage as parameter dependency (returns SessionUser)::

        async def endpoint(
            user: SessionUser = Depends(require_roles(Role.STORE_OWNER)),
        ): ...

    Raises:
        HTTPException 403: inactive account, wrong role, or a store owner
            acting on another tenant.
    """
    allowed = frozenset(roles)

    async def _check_roles(
        request: Request,
        user: SessionUser = _user_dep,
    ) -> SessionUser:
        if not user.is_active:
            raise HTTPException(status_code=403, detail="Account is not active")
        if user.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail=f"Requires role: {' or '.join(sorted(allowed))}",
            )
        if user.role == Role.STORE_OWNER:
            identity = read_tenant_identity(request.headers)
            if user.tenant_id != identity.tenant_id:
                raise HTTPException(
                    status_code=403,
                    detail="Store owners may only manage their own store",
                )
        return user

    return _check_roles
