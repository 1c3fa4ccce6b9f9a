"""Tests for tenant routing, rate limiting and route guard middleware."""

import json
from collections.abc import Callable, Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient

from storefront.api.app import app
from storefront.api.middleware import ADMIN_CSP, SECURITY_HEADERS
from storefront.auth.session import Role, UserStatus
from storefront.errors import CounterStoreError
from storefront.ratelimit.limiter import LayeredRateLimiter
from storefront.ratelimit.policies import Algorithm, LayerPolicies, RateLimitPolicy

T0 = 1_800_000_000.0


@pytest.fixture()
def frozen_time() -> Generator[None]:
    with patch("storefront.ratelimit.store.time.time", return_value=T0):
        yield


class TestTenantRouting:
    async def test_client_tenant_headers_overwritten(self, client: AsyncClient) -> None:
        response = await client.get(
            "/acme/api/tenant/context",
            headers={"X-Tenant-ID": "bigco", "X-Tenant-Strategy": "subdomain"},
        )

        body = response.json()
        assert body["headers"]["x-tenant-id"] == "acme"
        assert body["headers"]["x-tenant-strategy"] == "path"
        assert body["tenant"]["tier"] == "growth"

    async def test_spoofed_tenant_on_platform_root(self, client: AsyncClient) -> None:
        response = await client.get(
            "/api/tenant/context", headers={"X-Tenant-ID": "bigco"}
        )

        body = response.json()
        assert body["headers"]["x-tenant-id"] == "default"
        assert body["tenant"]["tenantId"] == "default"

    async def test_client_api_context_dropped(self, client: AsyncClient) -> None:
        spoofed = '{"tenantId": "evil", "tenantSlug": "evil", "strategy": "subdomain"}'

        by_path = await client.get(
            "/acme/api/tenant/context", headers={"X-API-Tenant-Context": spoofed}
        )
        by_host = await client.get(
            "http://acme.platform.example/api/tenant/context",
            headers={"X-API-Tenant-Context": spoofed},
        )

        assert by_path.json()["headers"]["x-api-tenant-context"] is None
        snapshot = json.loads(by_host.json()["headers"]["x-api-tenant-context"])
        assert snapshot["tenantId"] == "acme"

    async def test_www_is_platform(self, client: AsyncClient) -> None:
        response = await client.get("http://www.platform.example/api/tenant/context")
        assert response.json()["tenant"]["tenantId"] == "default"

    async def test_subdomain_path_rewritten(self, client: AsyncClient) -> None:
        response = await client.get("http://acme.platform.example/api/tenant/context")

        body = response.json()
        assert body["request"]["pathname"] == "/acme/api/tenant/context"
        assert body["headers"]["x-original-hostname"] == "acme.platform.example"


class TestRateLimiting:
    async def test_headers_on_allowed_response(self, client: AsyncClient) -> None:
        response = await client.get("/acme/api/tenant/context")

        assert response.status_code == 200
        assert response.headers["x-ratelimit-limit"] == "100"
        assert response.headers["x-ratelimit-remaining"] == "99"
        assert "x-ratelimit-reset" in response.headers
        assert "retry-after" not in response.headers

    async def test_sixth_login_attempt_rejected(
        self, client: AsyncClient, frozen_time: None
    ) -> None:
        for _ in range(5):
            response = await client.post("/acme/api/auth/login")
            assert response.status_code != 429

        response = await client.post("/acme/api/auth/login")

        assert response.status_code == 429
        assert response.json() == {
            "error": "Too Many Requests",
            "message": "auth rate limit exceeded",
            "retryAfter": 60,
        }
        assert response.headers["retry-after"] == "60"
        assert response.headers["x-ratelimit-remaining"] == "0"

    async def test_ip_layer_shared_across_stores(self, client: AsyncClient) -> None:
        policies = LayerPolicies(
            ip=RateLimitPolicy("ip", Algorithm.SLIDING_WINDOW, limit=2, window_seconds=60)
        )
        app.state.rate_limiter = LayeredRateLimiter(
            app.state.rate_limiter.store, policies=policies
        )

        await client.get("/acme/api/tenant/context")
        await client.get("/bigco/api/tenant/context")
        response = await client.get("/frozen/api/tenant/context")

        assert response.status_code == 429
        assert response.json()["message"] == "IP rate limit exceeded"

    async def test_forwarded_for_keys_ip_layer(self, client: AsyncClient) -> None:
        policies = LayerPolicies(
            ip=RateLimitPolicy("ip", Algorithm.SLIDING_WINDOW, limit=1, window_seconds=60)
        )
        app.state.rate_limiter = LayeredRateLimiter(
            app.state.rate_limiter.store, policies=policies
        )

        first = await client.get(
            "/acme/api/tenant/context", headers={"X-Forwarded-For": "203.0.113.1"}
        )
        second = await client.get(
            "/acme/api/tenant/context", headers={"X-Forwarded-For": "203.0.113.2, 10.0.0.1"}
        )

        assert first.status_code == 200
        assert second.status_code == 200

    async def test_store_outage_fails_open(self, client: AsyncClient) -> None:
        store = MagicMock()
        store.hit = AsyncMock(side_effect=CounterStoreError("down"))
        app.state.rate_limiter = LayeredRateLimiter(store)

        response = await client.get("/acme/api/tenant/context")

        assert response.status_code == 200
        assert response.headers["x-ratelimit-remaining"] == "100"


class TestRouteGuard:
    async def test_admin_requires_login(self, client: AsyncClient) -> None:
        response = await client.get("/admin/stores")

        assert response.status_code == 401
        assert response.json() == {
            "detail": "Authentication required",
            "redirect": "/admin/stores",
        }
        assert response.headers["content-security-policy"] == ADMIN_CSP

    async def test_customer_forbidden(
        self, client: AsyncClient, issue_token: Callable[..., str]
    ) -> None:
        token = issue_token(Role.CUSTOMER)
        response = await client.get(
            "/admin", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "Insufficient permissions"

    async def test_support_agent_limited_to_analytics(
        self, client: AsyncClient, issue_token: Callable[..., str]
    ) -> None:
        headers = {"Authorization": f"Bearer {issue_token(Role.SUPPORT_AGENT)}"}

        users = await client.get("/admin/users", headers=headers)
        analytics = await client.get("/admin/analytics", headers=headers)

        assert users.status_code == 403
        # Allowed through the guard; no page is mounted there.
        assert analytics.status_code == 404

    async def test_inactive_admin(
        self, client: AsyncClient, issue_token: Callable[..., str]
    ) -> None:
        token = issue_token(Role.PLATFORM_ADMIN, status=UserStatus.PENDING_VERIFICATION)
        response = await client.get(
            "/admin", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "Account is not active"

    async def test_invalid_token_treated_as_anonymous(
        self, client: AsyncClient
    ) -> None:
        response = await client.get(
            "/api/admin/reports", headers={"Authorization": "Bearer garbage"}
        )
        assert response.status_code == 401

    async def test_security_headers_everywhere(self, client: AsyncClient) -> None:
        response = await client.get("/acme/api/tenant/context")

        for name, value in SECURITY_HEADERS.items():
            assert response.headers[name] == value
        assert "content-security-policy" not in response.headers

    @pytest.mark.parametrize(
        "url", ["/acme/manage", "http://acme.platform.example/manage/orders"]
    )
    async def test_store_management_requires_login(
        self, client: AsyncClient, url: str
    ) -> None:
        response = await client.get(url)

        assert response.status_code == 401
        assert response.json()["detail"] == "Authentication required"

    async def test_store_owner_manages_own_store_only(
        self, client: AsyncClient, issue_token: Callable[..., str]
    ) -> None:
        headers = {
            "Authorization": f"Bearer {issue_token(Role.STORE_OWNER, tenant_id='acme')}"
        }

        own = await client.get("/acme/manage", headers=headers)
        other = await client.get("/bigco/manage", headers=headers)

        # Allowed through the guard; no page is mounted there.
        assert own.status_code == 404
        assert other.status_code == 403
