"""Rate limit policies and endpoint classification."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class Algorithm(StrEnum):
    SLIDING_WINDOW = "sliding_window"
    FIXED_WINDOW = "fixed_window"
    TOKEN_BUCKET = "token_bucket"


class EndpointClass(StrEnum):
    AUTH = "auth"
    STORE_CREATION = "store_creation"
    ORDERS = "orders"
    API = "api"
    GENERAL = "general"


@dataclass(frozen=True)
class RateLimitPolicy:
    """One limiter layer.

    For token buckets ``limit`` is the refill amount per window and
    ``burst`` the bucket size; windowed algorithms ignore ``burst``.
    """

    name: str
    algorithm: Algorithm
    limit: int
    window_seconds: int
    burst: int | None = None

    @property
    def capacity(self) -> int:
        if self.algorithm == Algorithm.TOKEN_BUCKET and self.burst is not None:
            return self.burst
        return self.limit


IP_POLICY = RateLimitPolicy("ip", Algorithm.SLIDING_WINDOW, limit=100, window_seconds=60)
TENANT_POLICY = RateLimitPolicy("tenant", Algorithm.SLIDING_WINDOW, limit=1000, window_seconds=60)
API_POLICY = RateLimitPolicy(
    "api", Algorithm.TOKEN_BUCKET, limit=50, window_seconds=60, burst=100
)
AUTH_POLICY = RateLimitPolicy("auth", Algorithm.FIXED_WINDOW, limit=5, window_seconds=60)
STORE_CREATION_POLICY = RateLimitPolicy(
    "store_creation", Algorithm.FIXED_WINDOW, limit=2, window_seconds=3600
)
ORDERS_POLICY = RateLimitPolicy("orders", Algorithm.SLIDING_WINDOW, limit=20, window_seconds=60)


@dataclass(frozen=True)
class LayerPolicies:
    ip: RateLimitPolicy = IP_POLICY
    tenant: RateLimitPolicy = TENANT_POLICY
    endpoints: dict[EndpointClass, RateLimitPolicy] = field(
        default_factory=lambda: {
            EndpointClass.API: API_POLICY,
            EndpointClass.AUTH: AUTH_POLICY,
            EndpointClass.STORE_CREATION: STORE_CREATION_POLICY,
            EndpointClass.ORDERS: ORDERS_POLICY,
        }
    )


AUTH_PATH_MARKERS: tuple[str, ...] = ("/api/auth", "/login", "/signup")
STORE_CREATION_PREFIX = "/api/stores"
ORDERS_MARKER = "/api/orders"


def classify_endpoint(path: str, method: str = "GET") -> EndpointClass:
    """Pick the endpoint-class layer for a request path."""
    if any(marker in path for marker in AUTH_PATH_MARKERS):
        return EndpointClass.AUTH
    if method.upper() == "POST" and (
        path == STORE_CREATION_PREFIX or path.startswith(f"{STORE_CREATION_PREFIX}/")
    ):
        return EndpointClass.STORE_CREATION
    if ORDERS_MARKER in path:
        return EndpointClass.ORDERS
    if path.startswith("/api/"):
        return EndpointClass.API
    return EndpointClass.GENERAL
