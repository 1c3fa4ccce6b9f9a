"""Counter stores backing the rate limiter.

Each ``hit`` atomically counts one request against a policy and reports
the outcome. The application never reads or writes counters directly.
"""

from __future__ import annotations

import math
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import TYPE_CHECKING, Any, Protocol

from redis.exceptions import RedisError

from storefront.errors import CounterStoreError
from storefront.ratelimit.policies import Algorithm, RateLimitPolicy

if TYPE_CHECKING:
    from redis.asyncio import Redis

KEY_PREFIX = "rl"


@dataclass(frozen=True)
class LayerResult:
    success: bool
    limit: int
    remaining: int
    reset: float  # unix seconds


class CounterStore(Protocol):
    async def hit(self, key: str, policy: RateLimitPolicy) -> LayerResult:
        """Count one request for *key* under *policy*."""
        ...


def storage_key(key: str, policy: RateLimitPolicy) -> str:
    return f"{KEY_PREFIX}:{policy.name}:{key}"


class InMemoryCounterStore:
    """Single-process counter store.

    Thread-safe via Lock. For multi-instance deployments use
    RedisCounterStore.
    """

    def __init__(self) -> None:
        self._requests: dict[str, list[float]] = defaultdict(list)
        self._windows: dict[str, tuple[float, int]] = {}
        self._buckets: dict[str, tuple[float, float]] = {}
        self._expires: dict[str, float] = {}
        self._lock = Lock()

    async def hit(self, key: str, policy: RateLimitPolicy) -> LayerResult:
        full_key = storage_key(key, policy)
        now = time.time()
        with self._lock:
            if policy.algorithm == Algorithm.SLIDING_WINDOW:
                return self._sliding(full_key, policy, now)
            if policy.algorithm == Algorithm.FIXED_WINDOW:
                return self._fixed(full_key, policy, now)
            return self._token_bucket(full_key, policy, now)

    def _sliding(self, key: str, policy: RateLimitPolicy, now: float) -> LayerResult:
        cutoff = now - policy.window_seconds
        # Remove expired entries
        self._requests[key] = [t for t in self._requests[key] if t > cutoff]
        timestamps = self._requests[key]

        if len(timestamps) >= policy.limit:
            return LayerResult(
                success=False,
                limit=policy.limit,
                remaining=0,
                reset=timestamps[0] + policy.window_seconds,
            )

        timestamps.append(now)
        self._expires[key] = now + policy.window_seconds
        return LayerResult(
            success=True,
            limit=policy.limit,
            remaining=policy.limit - len(timestamps),
            reset=timestamps[0] + policy.window_seconds,
        )

    def _fixed(self, key: str, policy: RateLimitPolicy, now: float) -> LayerResult:
        window_end = (now // policy.window_seconds + 1) * policy.window_seconds
        current_end, count = self._windows.get(key, (window_end, 0))
        if current_end != window_end:
            count = 0
        count += 1
        self._windows[key] = (window_end, count)
        self._expires[key] = window_end
        return LayerResult(
            success=count <= policy.limit,
            limit=policy.limit,
            remaining=max(0, policy.limit - count),
            reset=window_end,
        )

    def _token_bucket(self, key: str, policy: RateLimitPolicy, now: float) -> LayerResult:
        capacity = policy.capacity
        seconds_per_token = policy.window_seconds / policy.limit
        tokens, last = self._buckets.get(key, (float(capacity), now))
        tokens = min(capacity, tokens + max(0.0, now - last) / seconds_per_token)

        success = tokens >= 1
        if success:
            tokens -= 1
            wait = seconds_per_token
        else:
            wait = (1.0 - tokens) * seconds_per_token
        self._buckets[key] = (tokens, now)
        self._expires[key] = now + (capacity - tokens) * seconds_per_token
        return LayerResult(
            success=success,
            limit=capacity,
            remaining=math.floor(tokens),
            reset=now + wait,
        )

    def cleanup(self) -> int:
        """Remove all expired keys. Call periodically.

        Returns:
            Number of keys cleaned up.
        """
        now = time.time()

        with self._lock:
            expired = [key for key, expires_at in self._expires.items() if expires_at <= now]
            for key in expired:
                del self._expires[key]
                self._requests.pop(key, None)
                self._windows.pop(key, None)
                self._buckets.pop(key, None)

        return len(expired)


# KEYS[1]=key; ARGV: now_ms, window_ms, limit, member
_SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
local count = redis.call('ZCARD', key)
if count < limit then
  redis.call('ZADD', key, now, ARGV[4])
  redis.call('PEXPIRE', key, window)
  local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
  return {1, limit - count - 1, tonumber(oldest[2]) + window}
end
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
return {0, 0, tonumber(oldest[2]) + window}
"""

# KEYS[1]=key; ARGV: window_ms
_FIXED_WINDOW_LUA = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
  redis.call('PEXPIRE', KEYS[1], tonumber(ARGV[1]))
end
return count
"""

# KEYS[1]=key; ARGV: now_ms, ms_per_token, capacity
_TOKEN_BUCKET_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local ms_per_token = tonumber(ARGV[2])
local capacity = tonumber(ARGV[3])
local state = redis.call('HMGET', key, 'tokens', 'ts')
local tokens = tonumber(state[1])
local ts = tonumber(state[2])
if tokens == nil or ts == nil then
  tokens = capacity
  ts = now
end
tokens = math.min(capacity, tokens + math.max(0, now - ts) / ms_per_token)
local allowed = 0
if tokens >= 1 then
  tokens = tokens - 1
  allowed = 1
end
redis.call('HSET', key, 'tokens', tostring(tokens), 'ts', tostring(now))
redis.call('PEXPIRE', key, math.ceil(capacity * ms_per_token))
return {allowed, tostring(tokens)}
"""


class RedisCounterStore:
    """Counter store on Redis. Each algorithm is a single Lua script, so
    every hit is one atomic round trip."""

    def __init__(self, redis: Redis) -> None:
        self._redis = redis
        self._sliding = redis.register_script(_SLIDING_WINDOW_LUA)
        self._fixed = redis.register_script(_FIXED_WINDOW_LUA)
        self._bucket = redis.register_script(_TOKEN_BUCKET_LUA)

    async def hit(self, key: str, policy: RateLimitPolicy) -> LayerResult:
        full_key = storage_key(key, policy)
        now = time.time()
        try:
            if policy.algorithm == Algorithm.SLIDING_WINDOW:
                return await self._hit_sliding(full_key, policy, now)
            if policy.algorithm == Algorithm.FIXED_WINDOW:
                return await self._hit_fixed(full_key, policy, now)
            return await self._hit_bucket(full_key, policy, now)
        except (RedisError, OSError) as exc:
            raise CounterStoreError(f"Redis unavailable: {exc}") from exc

    async def _hit_sliding(
        self, key: str, policy: RateLimitPolicy, now: float
    ) -> LayerResult:
        now_ms = int(now * 1000)
        raw: list[Any] = await self._sliding(
            keys=[key],
            args=[now_ms, policy.window_seconds * 1000, policy.limit, f"{now_ms}:{uuid.uuid4().hex}"],
        )
        allowed, remaining, reset_ms = (int(v) for v in raw)
        return LayerResult(
            success=bool(allowed),
            limit=policy.limit,
            remaining=max(0, remaining),
            reset=reset_ms / 1000,
        )

    async def _hit_fixed(self, key: str, policy: RateLimitPolicy, now: float) -> LayerResult:
        window = int(now // policy.window_seconds)
        count = int(
            await self._fixed(
                keys=[f"{key}:{window}"], args=[policy.window_seconds * 1000]
            )
        )
        return LayerResult(
            success=count <= policy.limit,
            limit=policy.limit,
            remaining=max(0, policy.limit - count),
            reset=float((window + 1) * policy.window_seconds),
        )

    async def _hit_bucket(self, key: str, policy: RateLimitPolicy, now: float) -> LayerResult:
        ms_per_token = policy.window_seconds * 1000 / policy.limit
        raw: list[Any] = await self._bucket(
            keys=[key], args=[int(now * 1000), ms_per_token, policy.capacity]
        )
        allowed = int(raw[0])
        tokens = float(raw[1])
        seconds_per_token = ms_per_token / 1000
        wait = seconds_per_token if allowed else max(1.0 - tokens, 0.0) * seconds_per_token
        return LayerResult(
            success=bool(allowed),
            limit=policy.capacity,
            remaining=math.floor(tokens),
            reset=now + wait,
        )
