"""Tenant to database shard routing."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger()

SHARD_HEALTH_TIMEOUT = 5.0


def tenant_hash(tenant_id: str) -> int:
    """Stable signed 32-bit string hash (``h * 31 + c`` over UTF-16 code units)."""
    h = 0
    encoded = tenant_id.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    return h - (1 << 32) if h & 0x80000000 else h


def shard_name(index: int) -> str:
    return f"shard-{index + 1}"


class ShardRouter:
    """Maps tenants onto an explicit set of shard session factories.

    The same tenant id always lands on the same shard for a given shard
    count. Missing shards fall back to the default shard.
    """

    def __init__(
        self,
        shards: Mapping[str, async_sessionmaker[AsyncSession]],
        default: str = "shard-1",
    ) -> None:
        if default not in shards:
            raise ValueError(f"Default shard '{default}' is not configured")
        self._shards = dict(shards)
        self._default = default

    @property
    def shard_names(self) -> list[str]:
        return list(self._shards)

    def shard_for(self, tenant_id: str) -> str:
        return shard_name(abs(tenant_hash(tenant_id)) % len(self._shards))

    def session_factory_for(self, tenant_id: str) -> async_sessionmaker[AsyncSession]:
        name = self.shard_for(tenant_id)
        factory = self._shards.get(name)
        if factory is None:
            logger.warning("shard_not_found", shard=name, tenant_id=tenant_id)
            return self._shards[self._default]
        return factory

    async def health_check(self) -> dict[str, str]:
        """Run ``SELECT 1`` on every shard."""
        results: dict[str, str] = {}
        for name, factory in self._shards.items():
            start = time.perf_counter()
            try:
                async with factory() as session:
                    await asyncio.wait_for(
                        session.execute(text("SELECT 1")),
                        timeout=SHARD_HEALTH_TIMEOUT,
                    )
                results[name] = "ok"
            except (TimeoutError, SQLAlchemyError, OSError) as e:
                logger.warning("shard_health_error", shard=name, error=type(e).__name__)
                results[name] = f"error: {type(e).__name__}"
            logger.debug(
                "shard_health_checked",
                shard=name,
                latency_ms=int((time.perf_counter() - start) * 1000),
            )
        return results
