"""
Concurrency tests: many simultaneous requests for a handful of seats.

Each request runs in its own session and connection, so the event row
lock is genuinely contended. The database state afterwards must match
the number of 201 responses exactly.
"""

import asyncio

import pytest
from httpx import AsyncClient

from conftest import bearer, count_rows, reload
from events_platform.models import Event, EventRegistration, Ticket, User


async def _create_users(db_session, count: int) -> list[int]:
    users = [User(username=f"fan{i}", email=f"fan{i}@example.com") for i in range(count)]
    db_session.add_all(users)
    await db_session.commit()
    return [u.id for u in users]


@pytest.mark.asyncio
async def test_concurrent_registrations_never_oversell(client: AsyncClient, db_session, make_event):
    """10 users race for 3 seats: exactly 3 win, inventory ends at zero."""
    seats, contenders = 3, 10
    event = await make_event(title="Hot Ticket", max_attendees=seats)
    event_id = event.id
    user_ids = await _create_users(db_session, contenders)

    responses = await asyncio.gather(*[
        client.post(f"/api/v1/events/{event_id}/register", json={}, headers=bearer(uid))
        for uid in user_ids
    ])

    statuses = [r.status_code for r in responses]
    assert statuses.count(201) == seats
    assert statuses.count(400) == contenders - seats
    for r in responses:
        if r.status_code == 400:
            assert r.json()["detail"] in (
                "No tickets remaining for this event",
                "Event has reached maximum attendee capacity",
            )

    refreshed = await reload(Event, event_id)
    assert refreshed.tickets_remaining == 0
    assert await count_rows(EventRegistration, event_id=event_id, status="registered") == seats
    assert await count_rows(Ticket, event_id=event_id) == seats


@pytest.mark.asyncio
async def test_same_user_double_submit(client: AsyncClient, auth_headers, test_event):
    """A double-clicked register button creates one registration, not two."""
    event_id = test_event.id

    responses = await asyncio.gather(*[
        client.post(f"/api/v1/events/{event_id}/register", json={}, headers=auth_headers)
        for _ in range(5)
    ])

    statuses = sorted(r.status_code for r in responses)
    assert statuses == [201, 400, 400, 400, 400]
    assert await count_rows(EventRegistration, event_id=event_id) == 1
    refreshed = await reload(Event, event_id)
    assert refreshed.tickets_remaining == 9


@pytest.mark.asyncio
async def test_concurrent_cancel_and_register(client: AsyncClient, db_session, single_seat_event):
    """A cancel racing a register for the freed seat leaves consistent inventory."""
    event_id = single_seat_event.id
    holder, newcomer = await _create_users(db_session, 2)

    first = await client.post(f"/api/v1/events/{event_id}/register", json={}, headers=bearer(holder))
    registration_id = first.json()["registration"]["id"]

    cancel, register = await asyncio.gather(
        client.patch(f"/api/v1/events/registrations/{registration_id}/cancel", headers=bearer(holder)),
        client.post(f"/api/v1/events/{event_id}/register", json={}, headers=bearer(newcomer)),
    )
    assert cancel.status_code == 200
    assert register.status_code in (201, 400)

    registered = await count_rows(EventRegistration, event_id=event_id, status="registered")
    refreshed = await reload(Event, event_id)
    assert registered + refreshed.tickets_remaining == 1
