"""
Tests for ticket codes, verification and redemption.
"""

import re
from datetime import datetime, timezone, timedelta

import pytest
from httpx import AsyncClient

from conftest import bearer, reload
from events_platform.core.exceptions import InternalError
from events_platform.models import EventRegistration, Ticket
from events_platform.services import ticket_service
from events_platform.services.ticket_service import CodePolicy, issue_ticket, mint_ticket_code


def test_ticket_code_format():
    code = mint_ticket_code()
    assert re.fullmatch(r"[0-9A-F]{32}", code)


def test_ticket_code_length_follows_policy():
    assert len(mint_ticket_code(8)) == 16


def test_ticket_codes_are_unique():
    assert len({mint_ticket_code() for _ in range(1000)}) == 1000


async def _register(client: AsyncClient, event_id: int, headers: dict) -> dict:
    response = await client.post(f"/api/v1/events/{event_id}/register", json={}, headers=headers)
    assert response.status_code == 201
    return response.json()["registration"]


@pytest.mark.asyncio
async def test_issue_ticket_retries_on_code_collision(db_session, test_event, test_user, monkeypatch):
    """A colliding code only rolls back its own savepoint; the retry succeeds."""
    registration = EventRegistration(event_id=test_event.id, user_id=test_user.id, status="registered")
    db_session.add(registration)
    await db_session.flush()
    db_session.add(Ticket(
        event_id=test_event.id,
        user_id=test_user.id,
        registration_id=registration.id,
        ticket_code="TAKEN",
    ))
    await db_session.flush()

    codes = iter(["TAKEN", "FRESH"])
    monkeypatch.setattr(ticket_service, "mint_ticket_code", lambda nbytes: next(codes))

    ticket = await issue_ticket(
        db_session,
        event_id=test_event.id,
        user_id=test_user.id,
        registration_id=registration.id,
    )
    await db_session.commit()

    assert ticket.ticket_code == "FRESH"
    assert (await reload(EventRegistration, registration.id)) is not None


@pytest.mark.asyncio
async def test_issue_ticket_gives_up_after_max_attempts(db_session, test_event, test_user, monkeypatch):
    registration = EventRegistration(event_id=test_event.id, user_id=test_user.id, status="registered")
    db_session.add(registration)
    await db_session.flush()
    db_session.add(Ticket(
        event_id=test_event.id,
        user_id=test_user.id,
        registration_id=registration.id,
        ticket_code="TAKEN",
    ))
    await db_session.flush()

    monkeypatch.setattr(ticket_service, "mint_ticket_code", lambda nbytes: "TAKEN")

    with pytest.raises(InternalError):
        await issue_ticket(
            db_session,
            event_id=test_event.id,
            user_id=test_user.id,
            registration_id=registration.id,
            policy=CodePolicy(max_attempts=2),
        )
    await db_session.rollback()


@pytest.mark.asyncio
async def test_verify_valid_ticket(client: AsyncClient, auth_headers, test_event):
    registration = await _register(client, test_event.id, auth_headers)
    code = registration["ticket_info"]["ticket_code"]

    response = await client.get(f"/api/v1/tickets/verify/{code}")

    assert response.status_code == 200
    assert response.json()["msg"] == "Ticket is valid"
    assert response.json()["ticket"]["ticket_code"] == code


@pytest.mark.asyncio
async def test_verify_unknown_ticket(client: AsyncClient):
    response = await client.get("/api/v1/tickets/verify/NOPE")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_verify_ticket_for_ended_event(client: AsyncClient, db_session, make_event, test_user):
    start = datetime.now(timezone.utc) - timedelta(days=2)
    event = await make_event(start_time=start, end_time=start + timedelta(hours=2))
    registration = EventRegistration(event_id=event.id, user_id=test_user.id, status="registered")
    db_session.add(registration)
    await db_session.flush()
    db_session.add(Ticket(
        event_id=event.id,
        user_id=test_user.id,
        registration_id=registration.id,
        ticket_code="OLDTICKET",
    ))
    await db_session.commit()

    response = await client.get("/api/v1/tickets/verify/OLDTICKET")

    assert response.status_code == 400
    assert response.json()["detail"] == "Event has already ended"


@pytest.mark.asyncio
async def test_use_ticket(client: AsyncClient, auth_headers, test_event):
    registration = await _register(client, test_event.id, auth_headers)
    code = registration["ticket_info"]["ticket_code"]

    response = await client.post(f"/api/v1/tickets/use/{code}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["msg"] == "Ticket marked as used"
    assert response.json()["ticket"]["status"] == "used"
    assert response.json()["ticket"]["used_at"] is not None

    again = await client.post(f"/api/v1/tickets/use/{code}", headers=auth_headers)
    assert again.status_code == 400
    assert again.json()["detail"] == "Ticket has already been used"

    verify = await client.get(f"/api/v1/tickets/verify/{code}")
    assert verify.status_code == 400
    assert verify.json()["detail"] == "Ticket is used"


@pytest.mark.asyncio
async def test_use_someone_elses_ticket(client: AsyncClient, auth_headers, test_event, other_user):
    registration = await _register(client, test_event.id, auth_headers)
    code = registration["ticket_info"]["ticket_code"]

    response = await client.post(f"/api/v1/tickets/use/{code}", headers=bearer(other_user.id))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_use_cancelled_ticket(client: AsyncClient, auth_headers, test_event):
    registration = await _register(client, test_event.id, auth_headers)
    code = registration["ticket_info"]["ticket_code"]
    await client.patch(f"/api/v1/events/registrations/{registration['id']}/cancel", headers=auth_headers)

    response = await client.post(f"/api/v1/tickets/use/{code}", headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot use ticket with status: cancelled"


@pytest.mark.asyncio
async def test_list_user_tickets(client: AsyncClient, auth_headers, test_event, test_user):
    await _register(client, test_event.id, auth_headers)

    response = await client.get(f"/api/v1/tickets/user/{test_user.id}", headers=auth_headers)

    assert response.status_code == 200
    tickets = response.json()["tickets"]
    assert len(tickets) == 1
    assert tickets[0]["event_title"] == "Test Concert"


@pytest.mark.asyncio
async def test_list_other_users_tickets_forbidden(client: AsyncClient, auth_headers, other_user):
    response = await client.get(f"/api/v1/tickets/user/{other_user.id}", headers=auth_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_has_user_paid(client: AsyncClient, auth_headers, fake_gateway, test_event, test_user):
    url = f"/api/v1/tickets/user/{test_user.id}/event/{test_event.id}"

    # A free registration is not a payment
    await _register(client, test_event.id, auth_headers)
    assert (await client.get(url)).json() == {"has_user_paid": False}

    fake_gateway.add_session("cs_ticket", test_event.id, test_user.id)
    await client.post("/api/v1/payments/sync-payment/cs_ticket", headers=auth_headers)
    assert (await client.get(url)).json() == {"has_user_paid": True}


@pytest.mark.asyncio
async def test_organizer_updates_ticket_status(client: AsyncClient, auth_headers, organizer_headers, test_event):
    registration = await _register(client, test_event.id, auth_headers)
    ticket_code = registration["ticket_info"]["ticket_code"]
    ticket_id = (await client.get(f"/api/v1/tickets/verify/{ticket_code}")).json()["ticket"]["id"]

    forbidden = await client.patch(f"/api/v1/tickets/{ticket_id}", json={"status": "expired"}, headers=auth_headers)
    assert forbidden.status_code == 403

    response = await client.patch(f"/api/v1/tickets/{ticket_id}", json={"status": "expired"}, headers=organizer_headers)
    assert response.status_code == 200
    assert response.json()["ticket"]["status"] == "expired"

    invalid = await client.patch(f"/api/v1/tickets/{ticket_id}", json={"status": "bogus"}, headers=organizer_headers)
    assert invalid.status_code == 422
