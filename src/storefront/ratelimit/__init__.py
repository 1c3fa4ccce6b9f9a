"""Layered request rate limiting."""

from storefront.ratelimit.limiter import (
    LayeredRateLimiter,
    RateLimitResult,
    RequestInfo,
    client_ip,
    rate_limit_headers,
    request_info_from_headers,
)
from storefront.ratelimit.policies import (
    Algorithm,
    EndpointClass,
    LayerPolicies,
    RateLimitPolicy,
    classify_endpoint,
)
from storefront.ratelimit.store import (
    CounterStore,
    InMemoryCounterStore,
    LayerResult,
    RedisCounterStore,
)

__all__ = [
    "Algorithm",
    "CounterStore",
    "EndpointClass",
    "InMemoryCounterStore",
    "LayerPolicies",
    "LayerResult",
    "LayeredRateLimiter",
    "RateLimitPolicy",
    "RateLimitResult",
    "RedisCounterStore",
    "RequestInfo",
    "classify_endpoint",
    "client_ip",
    "rate_limit_headers",
    "request_info_from_headers",
]
