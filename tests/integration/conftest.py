"""Shared fixtures for integration tests requiring live infrastructure."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator

import pytest
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
)

from storefront.config import get_settings

# ── Engine ─────────────────────────────────────────────────────────


@pytest.fixture()
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an async engine for the primary shard from settings."""
    engine = create_async_engine(
        get_settings().database_url,
        pool_size=5,
        max_overflow=0,
    )
    yield engine
    await engine.dispose()


# ── Session with rollback ─────────────────────────────────────────


@pytest.fixture()
async def db_session(
    async_engine: AsyncEngine,
) -> AsyncGenerator[AsyncSession]:
    """Provide a session wrapped in a transaction, rolled back after test.

    Suitable for repository tests that use ``flush()`` but NOT ``commit()``.
    """
    async with async_engine.connect() as conn:
        trans = await conn.begin()
        session = AsyncSession(bind=conn, expire_on_commit=False)

        yield session

        await session.close()
        await trans.rollback()


# ── Redis ──────────────────────────────────────────────────────────


@pytest.fixture()
async def redis_client() -> AsyncGenerator[Redis]:
    """Real Redis connection; keys written by a test are removed afterwards."""
    client = Redis.from_url(get_settings().redis_url)
    yield client
    keys = [key async for key in client.scan_iter(match="rl:it-*")]
    if keys:
        await client.delete(*keys)
    await client.aclose()


@pytest.fixture()
def unique_key() -> str:
    """Counter key prefix unique to one test run."""
    return f"it-{uuid.uuid4().hex[:8]}"
