"""Tests for structured logging configuration and request middleware."""

import json
import logging
import re
from io import StringIO
from unittest.mock import patch

import pytest
import structlog
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from storefront.logging_config import REDACTED, configure_logging, is_sensitive_key


@pytest.fixture(autouse=True)
def _reset_structlog() -> None:
    """Reset structlog state after each test."""
    yield
    structlog.reset_defaults()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


def _capture_log_output(environment: str, **event: object) -> str:
    """Configure logging, emit one event, return captured output."""
    configure_logging(environment=environment, log_level="DEBUG")

    stream = StringIO()
    root = logging.getLogger()
    if not root.handlers or not isinstance(root.handlers[0], logging.StreamHandler):
        raise RuntimeError("Expected configure_logging to set up a StreamHandler")

    original_stream = root.handlers[0].stream
    root.handlers[0].stream = stream

    logger = structlog.get_logger()
    logger.info("test_event", **event)

    root.handlers[0].stream = original_stream
    return stream.getvalue()


class TestConfigureLogging:
    def test_configure_production_json(self) -> None:
        """Production environment produces valid JSON output."""
        parsed = json.loads(_capture_log_output("production", key="value"))
        assert parsed["event"] == "test_event"
        assert parsed["key"] == "value"
        assert parsed["level"] == "info"
        assert "T" in parsed["timestamp"]

    def test_configure_development_console(self) -> None:
        output = _capture_log_output("development", key="value")
        plain = re.sub(r"\x1b\[[0-9;]*m", "", output)
        assert "test_event" in plain
        assert "key=value" in plain

    def test_configure_sets_log_level(self) -> None:
        configure_logging(log_level="WARNING")
        assert logging.getLogger().level == logging.WARNING

    def test_sensitive_keys_redacted(self) -> None:
        parsed = json.loads(
            _capture_log_output(
                "production",
                session_token="abc.def.ghi",
                headers={"Authorization": "Bearer x", "x-tenant-id": "acme"},
                tenant_id="acme",
            )
        )
        assert parsed["session_token"] == REDACTED
        assert parsed["headers"]["Authorization"] == REDACTED
        assert parsed["headers"]["x-tenant-id"] == "acme"
        assert parsed["tenant_id"] == "acme"

    @pytest.mark.parametrize(
        ("key", "expected"),
        [("jwt_secret", True), ("Set-Cookie", True), ("password", True), ("tenant_id", False)],
    )
    def test_is_sensitive_key(self, key: str, expected: bool) -> None:
        assert is_sensitive_key(key) is expected


class TestRequestLoggingMiddleware:
    @pytest.fixture()
    def test_app(self) -> FastAPI:
        """Minimal app with logging outside tenant routing."""
        from storefront.api.middleware import (
            RequestLoggingMiddleware,
            TenantRoutingMiddleware,
        )
        from storefront.tenancy.classifier import TenantClassifier

        app = FastAPI()
        app.add_middleware(
            TenantRoutingMiddleware,
            classifier=TenantClassifier("platform.example", reserved_routes=["health"]),
        )
        app.add_middleware(RequestLoggingMiddleware)

        @app.get("/{store}/dashboard")
        async def _dashboard(store: str) -> dict[str, str]:
            return {"store": store}

        @app.get("/health")
        async def _health() -> dict[str, str]:
            return {"status": "ok"}

        return app

    async def test_middleware_logs_request_with_tenant(self, test_app: FastAPI) -> None:
        with patch("storefront.api.middleware.logger") as mock_logger:
            async with AsyncClient(
                transport=ASGITransport(app=test_app),
                base_url="http://platform.example",
            ) as client:
                await client.get("/acme/dashboard")

        mock_logger.info.assert_called_once()
        call_args = mock_logger.info.call_args
        assert call_args[0][0] == "http_request"
        assert call_args[1]["method"] == "GET"
        assert call_args[1]["path"] == "/acme/dashboard"
        assert call_args[1]["status_code"] == 200
        assert call_args[1]["tenant_id"] == "acme"
        assert "latency_ms" in call_args[1]

    async def test_middleware_skips_health(self, test_app: FastAPI) -> None:
        with patch("storefront.api.middleware.logger") as mock_logger:
            async with AsyncClient(
                transport=ASGITransport(app=test_app),
                base_url="http://platform.example",
            ) as client:
                await client.get("/health")

        mock_logger.info.assert_not_called()
