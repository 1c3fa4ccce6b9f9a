"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from storefront.ratelimit.limiter import LayeredRateLimiter
from storefront.ratelimit.store import InMemoryCounterStore
from storefront.tenancy.resolver import TenantConfig


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-db",
        action="store_true",
        default=False,
        help="Run tests that require a live PostgreSQL instance",
    )
    parser.addoption(
        "--run-redis",
        action="store_true",
        default=False,
        help="Run tests that require a live Redis instance",
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    markers_to_check = {
        "requires_db": ("--run-db", "needs --run-db flag"),
        "requires_redis": ("--run-redis", "needs --run-redis flag"),
    }

    skip_conditions = {
        marker_name: (not config.getoption(option_flag), reason_msg)
        for marker_name, (option_flag, reason_msg) in markers_to_check.items()
    }

    for item in items:
        for marker_name, (should_skip, reason_msg) in skip_conditions.items():
            if should_skip and marker_name in item.keywords:
                item.add_marker(pytest.mark.skip(reason=reason_msg))


class StaticConfigSource:
    """In-memory TenantConfigSource that records every fetch."""

    def __init__(self, configs: dict[str, TenantConfig] | None = None) -> None:
        self.configs = configs or {}
        self.calls: list[str] = []

    async def fetch(self, tenant_id: str) -> TenantConfig | None:
        self.calls.append(tenant_id)
        return self.configs.get(tenant_id)


@pytest.fixture()
def config_source() -> StaticConfigSource:
    return StaticConfigSource(
        {
            "acme": TenantConfig(tier="growth"),
            "bigco": TenantConfig(tier="enterprise"),
            "frozen": TenantConfig(tier="pro", status="suspended"),
        }
    )


@pytest.fixture()
def memory_store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture()
def limiter(memory_store: InMemoryCounterStore) -> LayeredRateLimiter:
    return LayeredRateLimiter(memory_store, timeout=0.5)
