"""
Tests for registration confirmation emails. Delivery is best effort.
"""

import pytest
from httpx import AsyncClient
from structlog.testing import capture_logs

from events_platform.core.config import Settings, get_settings
from events_platform.infrastructure.mailer import SmtpMailer
from events_platform.main import app
from events_platform.services.notification_service import (
    render_registration_confirmation,
    send_registration_confirmation,
)

TICKET_INFO = {
    "ticket_code": "ABCDEF0123456789",
    "event_title": "Test Concert",
    "event_date": "2026-11-18T19:00:00+00:00",
    "event_location": None,
    "user_name": "attendee",
    "user_email": "attendee@example.com",
}


def smtp_settings() -> Settings:
    return Settings(SMTP_HOST="smtp.example.com", REDIS_ENABLED=False)


def test_render_confirmation():
    subject, text = render_registration_confirmation(TICKET_INFO)
    assert subject == "Your registration is confirmed: Test Concert"
    assert "Hi attendee," in text
    assert "Location: Online" in text
    assert "Your ticket code is: ABCDEF0123456789" in text


def test_skipped_without_smtp_host(monkeypatch):
    sent = []
    monkeypatch.setattr(SmtpMailer, "send", lambda self, to, subject, text: sent.append(to))

    with capture_logs() as logs:
        delivered = send_registration_confirmation(Settings(SMTP_HOST=None), TICKET_INFO)

    assert delivered is False
    assert sent == []
    assert [entry["event"] for entry in logs] == ["registration_email_skipped"]


def test_sent_through_mailer(monkeypatch):
    sent = []
    monkeypatch.setattr(SmtpMailer, "send", lambda self, to, subject, text: sent.append((to, subject)))

    assert send_registration_confirmation(smtp_settings(), TICKET_INFO) is True
    assert sent == [("attendee@example.com", "Your registration is confirmed: Test Concert")]


def test_smtp_failure_is_logged_not_raised(monkeypatch):
    def refuse(self, to, subject, text):
        raise OSError("connection refused")

    monkeypatch.setattr(SmtpMailer, "send", refuse)

    with capture_logs() as logs:
        delivered = send_registration_confirmation(smtp_settings(), TICKET_INFO)

    assert delivered is False
    failure = next(entry for entry in logs if entry["event"] == "registration_email_failed")
    assert failure["error"] == "connection refused"
    assert failure["ticket_code"] == "ABCDEF0123456789"


@pytest.mark.asyncio
async def test_registration_succeeds_when_email_fails(client: AsyncClient, auth_headers, test_event, monkeypatch):
    attempts = []

    def refuse(self, to, subject, text):
        attempts.append(to)
        raise OSError("connection refused")

    monkeypatch.setattr(SmtpMailer, "send", refuse)
    app.dependency_overrides[get_settings] = smtp_settings

    with capture_logs() as logs:
        response = await client.post(f"/api/v1/events/{test_event.id}/register", json={}, headers=auth_headers)

    assert response.status_code == 201
    assert response.json()["msg"] == "Registration successful"
    assert attempts == ["attendee@example.com"]
    assert "registration_email_failed" in [entry["event"] for entry in logs]
