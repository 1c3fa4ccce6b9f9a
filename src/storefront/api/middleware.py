"""HTTP middleware: request logging, tenant routing, rate limiting, route guards."""

import dataclasses
import time

import structlog
from starlette.datastructures import Headers, MutableHeaders
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from storefront.api.deps import get_optional_user
from storefront.auth.guards import GuardDecision, authorize
from storefront.ratelimit.limiter import (
    LayeredRateLimiter,
    rate_limit_headers,
    request_info_from_headers,
)
from storefront.tenancy.classifier import TenantClassifier
from storefront.tenancy.context import RoutingStrategy
from storefront.tenancy.headers import (
    INJECTED_HEADERS,
    ORIGINAL_PATHNAME_HEADER,
    TENANT_ID_HEADER,
    build_tenant_headers,
    read_tenant_identity,
    rewrite_path,
    tenant_relative_path,
)

logger = structlog.get_logger()

SKIP_PATHS: frozenset[str] = frozenset({"/health", "/docs", "/openapi.json", "/redoc"})

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}
ADMIN_CSP = (
    "default-src 'self'; script-src 'self'; style-src 'self' 'unsafe-inline'; "
    "img-src 'self' data: https:; font-src 'self' data:;"
)


def _original_path(request: Request) -> str:
    return request.headers.get(ORIGINAL_PATHNAME_HEADER) or request.url.path


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests with method, path, status code, latency and tenant."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request and log timing information."""
        path = request.url.path
        if path in SKIP_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        latency_ms = int((time.perf_counter() - start) * 1000)

        # Inner middleware writes tenant headers into the shared scope.
        tenant_id = Headers(scope=request.scope).get(TENANT_ID_HEADER)
        logger.info(
            "http_request",
            method=request.method,
            path=path,
            status_code=response.status_code,
            latency_ms=latency_ms,
            tenant_id=tenant_id,
        )
        return response


class TenantRoutingMiddleware(BaseHTTPMiddleware):
    """Classify the tenant and inject its identity into the request headers.

    Client-supplied tenant headers are dropped before injection. Subdomain requests are
    rewritten to ``/{slug}{path}`` so both strategies share one route tree.
    """

    def __init__(self, app: ASGIApp, classifier: TenantClassifier) -> None:
        super().__init__(app)
        self.classifier = classifier

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        hostname = request.headers.get("host", "")
        pathname = request.url.path
        classification = self.classifier.classify(hostname, pathname)

        headers = MutableHeaders(scope=request.scope)
        for name in INJECTED_HEADERS:
            del headers[name]
        for name, value in build_tenant_headers(
            classification, hostname=hostname, pathname=pathname
        ).items():
            headers[name] = value

        rewritten = rewrite_path(classification, pathname)
        if rewritten != pathname:
            request.scope["path"] = rewritten
            request.scope["raw_path"] = rewritten.encode()

        logger.debug(
            "tenant_classified",
            tenant_id=classification.tenant_id,
            strategy=str(classification.strategy),
            path=pathname,
        )
        return await call_next(request)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Admit or reject requests through the layered rate limiter.

    Uses ``app.state.rate_limiter``; requests pass unchecked until it exists.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        limiter: LayeredRateLimiter | None = getattr(
            request.app.state, "rate_limiter", None
        )
        if limiter is None or _original_path(request) in SKIP_PATHS:
            return await call_next(request)

        info = request_info_from_headers(
            request.headers, _original_path(request), request.method
        )
        if info.client_ip == "unknown" and request.client is not None:
            info = dataclasses.replace(info, client_ip=request.client.host)

        result = await limiter.check(info)
        headers = rate_limit_headers(result)
        if result.blocked:
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Too Many Requests",
                    "message": result.reason,
                    "retryAfter": result.retry_after,
                },
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response


class RouteGuardMiddleware(BaseHTTPMiddleware):
    """Role-based protection of admin and store-management paths.

    Also sets security headers on every response.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = _original_path(request)
        identity = read_tenant_identity(request.headers)
        store_path = (
            None
            if identity.strategy == RoutingStrategy.DEFAULT
            else tenant_relative_path(identity, path)
        )
        user = await get_optional_user(request)
        decision = authorize(
            user, path, store_path=store_path, tenant_id=identity.tenant_id
        )

        if decision == GuardDecision.ALLOW:
            response = await call_next(request)
        else:
            logger.info(
                "route_access_denied",
                path=path,
                decision=str(decision),
                user_id=user.id if user else None,
            )
            status_code = 401 if decision == GuardDecision.LOGIN_REQUIRED else 403
            response = JSONResponse(
                status_code=status_code,
                content={"detail": _DENIAL_MESSAGES[decision], "redirect": path},
            )

        response.headers.update(SECURITY_HEADERS)
        if path.startswith("/admin"):
            response.headers["Content-Security-Policy"] = ADMIN_CSP
        return response


_DENIAL_MESSAGES: dict[GuardDecision, str] = {
    GuardDecision.LOGIN_REQUIRED: "Authentication required",
    GuardDecision.INACTIVE: "Account is not active",
    GuardDecision.FORBIDDEN: "Insufficient permissions",
}
