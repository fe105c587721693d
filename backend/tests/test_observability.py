"""
Tests for request correlation, log redaction and settings parsing.
"""

from types import SimpleNamespace

import pytest
from httpx import AsyncClient
from starlette.requests import Request

from events_platform.api.middleware import route_template
from events_platform.core.config import Settings
from events_platform.core.logging import redact_secrets


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/api/v1/events/", headers={"X-Request-ID": "upstream-abc.123"})
    assert response.headers["X-Request-ID"] == "upstream-abc.123"
    assert response.headers["X-Response-Time"].endswith("ms")


@pytest.mark.asyncio
async def test_malformed_request_id_is_replaced(client: AsyncClient):
    response = await client.get("/api/v1/events/", headers={"X-Request-ID": "bad id\twith spaces"})
    request_id = response.headers["X-Request-ID"]
    assert request_id != "bad id\twith spaces"
    assert len(request_id) == 12


@pytest.mark.asyncio
async def test_request_metrics_use_route_template(client: AsyncClient, test_event):
    await client.get(f"/api/v1/events/{test_event.id}")
    metrics = await client.get("/metrics")
    assert 'route="/api/v1/events/{event_id}"' in metrics.text


def test_redact_secrets_masks_sensitive_keys():
    event = redact_secrets(None, "info", {
        "event": "webhook_received",
        "stripe_signature": "t=1,v1=abc",
        "authorization": "Bearer xyz",
        "event_id": 7,
    })
    assert event["stripe_signature"] == "***"
    assert event["authorization"] == "***"
    assert event["event_id"] == 7


def test_settings_normalize_database_url_and_currency():
    settings = Settings(
        DATABASE_URL="postgres://u:p@db:5432/events",
        STRIPE_CURRENCY="GBP",
        FRONTEND_URL="https://tickets.example.com/",
    )
    assert settings.DATABASE_URL == "postgresql+asyncpg://u:p@db:5432/events"
    assert settings.STRIPE_CURRENCY == "gbp"
    assert settings.FRONTEND_URL == "https://tickets.example.com"


def test_settings_feature_flags():
    assert Settings(STRIPE_SECRET_KEY=None, SMTP_HOST=None).payments_enabled is False
    enabled = Settings(STRIPE_SECRET_KEY="sk_test_x", SMTP_HOST="smtp.example.com")
    assert enabled.payments_enabled is True
    assert enabled.email_enabled is True


def _request(path: str, route_path=None) -> Request:
    scope = {"type": "http", "method": "GET", "path": path, "query_string": b"", "headers": []}
    if route_path is not None:
        scope["route"] = SimpleNamespace(path=route_path)
    return Request(scope)


@pytest.mark.parametrize("route_path", ["/events/{event_id}", "/api/v1/events/{event_id}"])
def test_route_template_includes_version_prefix(route_path):
    assert route_template(_request("/api/v1/events/7", route_path)) == "/api/v1/events/{event_id}"


def test_route_template_outside_api():
    assert route_template(_request("/health", "/health")) == "/health"
    assert route_template(_request("/nowhere")) == "unmatched"
