"""
Tests for the registration availability rules. No database needed.
"""

from datetime import datetime, timezone, timedelta

import pytest

from events_platform.models import EventRegistration, Payment, TeamMember, Ticket
from events_platform.models.event import EVENT_STATUSES, Event
from events_platform.models.payment import PAYMENT_STATUSES
from events_platform.models.registration import REGISTRATION_STATUSES
from events_platform.models.team import TEAM_ROLES
from events_platform.models.ticket import TICKET_STATUSES
from events_platform.services.capacity import evaluate_availability

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_event(**overrides) -> Event:
    values = {
        "status": "published",
        "title": "Gig",
        "start_time": NOW + timedelta(days=1),
        "end_time": NOW + timedelta(days=1, hours=2),
        "max_attendees": 10,
        "tickets_remaining": 10,
    }
    values.update(overrides)
    return Event(**values)


def test_open_event_is_available():
    result = evaluate_availability(make_event(), registered_count=3, now=NOW)
    assert result.available
    assert result.reason is None


def test_unpublished_event():
    result = evaluate_availability(make_event(status="draft"), 0, now=NOW)
    assert not result.available
    assert result.reason == "Event is draft, not published"


def test_finished_event():
    event = make_event(start_time=NOW - timedelta(hours=3), end_time=NOW - timedelta(hours=1))
    result = evaluate_availability(event, 0, now=NOW)
    assert result.reason == "Event has already finished"


def test_started_event():
    event = make_event(start_time=NOW - timedelta(minutes=5), end_time=NOW + timedelta(hours=1))
    result = evaluate_availability(event, 0, now=NOW)
    assert result.reason == "Event has already started"


def test_no_tickets_remaining():
    result = evaluate_availability(make_event(tickets_remaining=0), 2, now=NOW)
    assert result.reason == "No tickets remaining for this event"


def test_attendee_cap_reached_even_with_tickets_left():
    """tickets_remaining can be raised independently; the cap still applies."""
    result = evaluate_availability(make_event(max_attendees=2, tickets_remaining=5), 2, now=NOW)
    assert result.reason == "Event has reached maximum attendee capacity"


def test_unlimited_event():
    event = make_event(max_attendees=None, tickets_remaining=None)
    assert not event.tracks_inventory
    assert evaluate_availability(event, 5000, now=NOW).available


def test_status_checked_before_time():
    """Rules apply in order: a cancelled past event reports its status."""
    event = make_event(
        status="cancelled",
        start_time=NOW - timedelta(days=2),
        end_time=NOW - timedelta(days=1),
    )
    assert evaluate_availability(event, 0, now=NOW).reason == "Event is cancelled, not published"


@pytest.mark.parametrize("model, constraint, values", [
    (Event, "check_event_status", EVENT_STATUSES),
    (EventRegistration, "check_registration_status", REGISTRATION_STATUSES),
    (Ticket, "check_ticket_status", TICKET_STATUSES),
    (Payment, "check_payment_status", PAYMENT_STATUSES),
    (TeamMember, "check_team_member_role", TEAM_ROLES),
])
def test_status_constraints_follow_declared_values(model, constraint, values):
    check = next(c for c in model.__table__.constraints if c.name == constraint)
    sql = str(check.sqltext)
    assert all(f"'{value}'" in sql for value in values)
