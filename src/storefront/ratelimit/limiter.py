"""Layered rate limiting: IP, then tenant, then endpoint class.

Layers are evaluated in order and the first rejection wins; later layers
are not charged. Counter-store outages and timeouts fail open; any other
error is a bug and propagates.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import structlog

from storefront.errors import CounterStoreError
from storefront.ratelimit.policies import (
    EndpointClass,
    LayerPolicies,
    RateLimitPolicy,
    classify_endpoint,
)
from storefront.ratelimit.store import CounterStore, LayerResult
from storefront.tenancy.headers import (
    ORIGINAL_PATHNAME_HEADER,
    read_tenant_identity,
    tenant_relative_path,
)

logger = structlog.get_logger()

UNAVAILABLE_REASON = "Rate limiting service unavailable"
FAIL_OPEN_WINDOW_SECONDS = 60


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: float  # unix seconds
    blocked: bool = False
    reason: str | None = None
    retry_after: int | None = None

    def __post_init__(self) -> None:
        if self.blocked == self.success:
            raise ValueError("blocked must be the negation of success")
        if self.remaining < 0:
            object.__setattr__(self, "remaining", 0)


@dataclass(frozen=True)
class RequestInfo:
    client_ip: str
    tenant_id: str
    path: str
    method: str = "GET"


@dataclass(frozen=True)
class _Layer:
    label: str
    policy: RateLimitPolicy
    key: str


def client_ip(headers: Mapping[str, str]) -> str:
    """Best-effort client IP behind proxies."""
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return headers.get("x-client-ip") or "unknown"


def request_info_from_headers(
    headers: Mapping[str, str], path: str, method: str = "GET"
) -> RequestInfo:
    """Build limiter input from tenant headers injected by the routing middleware.

    The path is tenant-relative so both routing strategies classify alike.
    """
    identity = read_tenant_identity(headers)
    original = headers.get(ORIGINAL_PATHNAME_HEADER) or path
    return RequestInfo(
        client_ip=client_ip(headers),
        tenant_id=identity.tenant_id,
        path=tenant_relative_path(identity, original),
        method=method,
    )


def most_restrictive(results: Sequence[LayerResult]) -> LayerResult:
    """The layer closest to its limit (smallest remaining)."""
    return min(results, key=lambda r: r.remaining)


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(math.ceil(result.reset)),
    }
    if result.blocked and result.retry_after:
        headers["Retry-After"] = str(result.retry_after)
    return headers


@dataclass
class LayeredRateLimiter:
    """Admission control over a shared counter store.

    Each store round trip is bounded by ``timeout`` seconds.
    """

    store: CounterStore
    timeout: float = 0.5
    policies: LayerPolicies = field(default_factory=LayerPolicies)

    def layers_for(self, info: RequestInfo) -> list[_Layer]:
        endpoint = classify_endpoint(info.path, info.method)
        layers = [
            _Layer("IP", self.policies.ip, info.client_ip),
            _Layer("Tenant", self.policies.tenant, info.tenant_id),
        ]
        policy = self.policies.endpoints.get(endpoint)
        if policy is not None:
            layers.append(_Layer(str(endpoint), policy, self._endpoint_key(endpoint, info)))
        return layers

    @staticmethod
    def _endpoint_key(endpoint: EndpointClass, info: RequestInfo) -> str:
        if endpoint == EndpointClass.AUTH:
            return f"{info.tenant_id}:{info.client_ip}:{endpoint}"
        if endpoint == EndpointClass.STORE_CREATION:
            return info.client_ip
        if endpoint == EndpointClass.ORDERS:
            return info.tenant_id
        return f"{info.tenant_id}:{info.path}"

    async def check(self, info: RequestInfo) -> RateLimitResult:
        start = time.perf_counter()
        passed: list[LayerResult] = []
        try:
            for layer in self.layers_for(info):
                async with asyncio.timeout(self.timeout):
                    result = await self.store.hit(layer.key, layer.policy)
                if not result.success:
                    return self._blocked(layer, result, info)
                passed.append(result)
        except (CounterStoreError, TimeoutError, OSError) as exc:
            logger.error(
                "rate_limiter_unavailable",
                tenant_id=info.tenant_id,
                path=info.path,
                error=type(exc).__name__,
                exc_info=True,
            )
            return self._fail_open()

        duration_ms = int((time.perf_counter() - start) * 1000)
        if duration_ms > 100:
            logger.info(
                "rate_limit_check_slow",
                tenant_id=info.tenant_id,
                path=info.path,
                duration_ms=duration_ms,
            )

        tightest = most_restrictive(passed)
        return RateLimitResult(
            success=True,
            limit=tightest.limit,
            remaining=tightest.remaining,
            reset=tightest.reset,
        )

    def _blocked(self, layer: _Layer, result: LayerResult, info: RequestInfo) -> RateLimitResult:
        reason = f"{layer.label} rate limit exceeded"
        logger.warning(
            "rate_limit_exceeded",
            layer=layer.policy.name,
            tenant_id=info.tenant_id,
            client_ip=info.client_ip,
            path=info.path,
        )
        return RateLimitResult(
            success=False,
            limit=result.limit,
            remaining=result.remaining,
            reset=result.reset,
            blocked=True,
            reason=reason,
            retry_after=max(1, math.ceil(result.reset - time.time())),
        )

    def _fail_open(self) -> RateLimitResult:
        capacity = self.policies.ip.capacity
        return RateLimitResult(
            success=True,
            limit=capacity,
            remaining=capacity,
            reset=time.time() + FAIL_OPEN_WINDOW_SECONDS,
            reason=UNAVAILABLE_REASON,
        )
