"""Fixtures wiring app.state for API tests without running the lifespan."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable, Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from storefront.api.app import app, build_classifier
from storefront.auth.session import Role, SessionAuthenticator, SessionUser, UserStatus
from storefront.config import settings
from storefront.ratelimit.limiter import LayeredRateLimiter
from storefront.ratelimit.store import InMemoryCounterStore
from storefront.tenancy.resolver import TenantConfigSource, TenantContextResolver

TEST_SECRET = "test-session-secret"

STATE_ATTRS = (
    "classifier",
    "shard_router",
    "tenant_resolver",
    "authenticator",
    "rate_limiter",
    "redis",
)


@pytest.fixture()
def authenticator() -> SessionAuthenticator:
    return SessionAuthenticator(TEST_SECRET)


@pytest.fixture()
def shard_router() -> MagicMock:
    router = MagicMock()
    router.health_check = AsyncMock(return_value={"shard-1": "ok"})
    return router


@pytest.fixture()
def app_state(
    config_source: TenantConfigSource,
    authenticator: SessionAuthenticator,
    shard_router: MagicMock,
) -> Generator[None]:
    """Populate app.state the way the lifespan does, then clear it."""
    app.state.classifier = build_classifier(settings)
    app.state.shard_router = shard_router
    app.state.tenant_resolver = TenantContextResolver(config_source, timeout=1.0)
    app.state.authenticator = authenticator
    app.state.rate_limiter = LayeredRateLimiter(InMemoryCounterStore())
    app.state.redis = None
    yield
    for name in STATE_ATTRS:
        if hasattr(app.state, name):
            delattr(app.state, name)


@pytest.fixture()
async def client(app_state: None) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url=f"http://{settings.base_domain}",
    ) as ac:
        yield ac


@pytest.fixture()
def issue_token(authenticator: SessionAuthenticator) -> Callable[..., str]:
    """Build a signed session token for a user with the given role."""

    def _issue(
        role: Role,
        *,
        tenant_id: str | None = None,
        status: UserStatus = UserStatus.ACTIVE,
    ) -> str:
        user = SessionUser(
            id="user-1",
            email="user@example.com",
            role=role,
            status=status,
            session_id="session-1",
            tenant_id=tenant_id,
        )
        return authenticator.issue(user)

    return _issue
