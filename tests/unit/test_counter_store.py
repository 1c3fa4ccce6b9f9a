"""Tests for the in-process counter store."""

from unittest.mock import patch

import pytest

from storefront.ratelimit.policies import Algorithm, RateLimitPolicy
from storefront.ratelimit.store import InMemoryCounterStore, storage_key

T0 = 1_800_000_000.0  # aligned to a 60s window

SLIDING = RateLimitPolicy("test_sliding", Algorithm.SLIDING_WINDOW, limit=5, window_seconds=60)
FIXED = RateLimitPolicy("test_fixed", Algorithm.FIXED_WINDOW, limit=3, window_seconds=60)
BUCKET = RateLimitPolicy(
    "test_bucket", Algorithm.TOKEN_BUCKET, limit=60, window_seconds=60, burst=3
)


@pytest.fixture()
def clock():
    with patch("storefront.ratelimit.store.time.time") as mock_time:
        mock_time.return_value = T0
        yield mock_time


def test_storage_key_is_namespaced() -> None:
    assert storage_key("1.2.3.4", SLIDING) == "rl:test_sliding:1.2.3.4"


class TestSlidingWindow:
    async def test_remaining_strictly_decreases(self, clock) -> None:
        store = InMemoryCounterStore()
        remaining = [(await store.hit("k", SLIDING)).remaining for _ in range(5)]
        assert remaining == [4, 3, 2, 1, 0]

    async def test_request_over_capacity_blocked(self, clock) -> None:
        store = InMemoryCounterStore()
        for _ in range(5):
            assert (await store.hit("k", SLIDING)).success is True

        result = await store.hit("k", SLIDING)
        assert result.success is False
        assert result.remaining == 0
        assert result.reset == T0 + 60

    async def test_window_slides(self, clock) -> None:
        store = InMemoryCounterStore()
        for _ in range(5):
            await store.hit("k", SLIDING)

        clock.return_value = T0 + 60.5
        result = await store.hit("k", SLIDING)
        assert result.success is True
        assert result.remaining == 4

    async def test_keys_are_independent(self, clock) -> None:
        store = InMemoryCounterStore()
        for _ in range(5):
            await store.hit("a", SLIDING)
        assert (await store.hit("b", SLIDING)).success is True


class TestFixedWindow:
    async def test_blocks_after_limit(self, clock) -> None:
        store = InMemoryCounterStore()
        results = [await store.hit("k", FIXED) for _ in range(4)]
        assert [r.success for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert results[-1].reset == T0 + 60

    async def test_new_window_resets(self, clock) -> None:
        store = InMemoryCounterStore()
        for _ in range(4):
            await store.hit("k", FIXED)

        clock.return_value = T0 + 60
        assert (await store.hit("k", FIXED)).remaining == 2


class TestTokenBucket:
    async def test_burst_then_block(self, clock) -> None:
        store = InMemoryCounterStore()
        results = [await store.hit("k", BUCKET) for _ in range(4)]
        assert [r.success for r in results] == [True, True, True, False]
        assert results[0].limit == 3

    async def test_refill(self, clock) -> None:
        store = InMemoryCounterStore()
        for _ in range(3):
            await store.hit("k", BUCKET)

        # 60 tokens per 60s -> one token per second
        clock.return_value = T0 + 1.0
        assert (await store.hit("k", BUCKET)).success is True
        assert (await store.hit("k", BUCKET)).success is False


class TestCleanup:
    async def test_removes_expired_keys(self, clock) -> None:
        store = InMemoryCounterStore()
        await store.hit("a", SLIDING)
        await store.hit("b", FIXED)

        clock.return_value = T0 + 30
        assert store.cleanup() == 0

        clock.return_value = T0 + 61
        assert store.cleanup() == 2
