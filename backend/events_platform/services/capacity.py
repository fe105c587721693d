"""
Capacity ledger: the tickets_remaining counter on each event.

CONCURRENCY STRATEGY: Pessimistic row lock + clamped counter
=============================================================

Problem:
  Two users try to take the last seat simultaneously.
  Both read tickets_remaining=1, both pass the check, both register.
  Result: Overselling.

Solution:
  The authoritative availability check runs inside run_with_row_lock on
  the event row (see registration_service.register). The lock spans
  "read remaining capacity, decide, write", so the second request only
  reads the event after the first one has committed its decrement.

  check_availability below is the advisory, lock-free version used for
  pre-flight UI checks. Its answer can be stale by the time the user acts.

  Counter updates are conditional UPDATEs, never read-modify-write in
  Python: decrement only matches rows with tickets_remaining > 0. A
  duplicate decrement at zero is silently absorbed instead of going
  negative. This is a lossy clamp at the boundary, not exact accounting.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from events_platform.core.exceptions import NotFoundError
from events_platform.models.event import Event
from events_platform.models.registration import EventRegistration


@dataclass(frozen=True)
class Availability:
    available: bool
    reason: Optional[str] = None


def evaluate_availability(
    event: Event,
    registered_count: int,
    now: Optional[datetime] = None,
) -> Availability:
    """Apply the registration rules to an event snapshot, in a fixed order."""
    now = now or datetime.now(timezone.utc)

    if event.status != "published":
        return Availability(False, f"Event is {event.status}, not published")
    if event.end_time <= now:
        return Availability(False, "Event has already finished")
    if event.start_time <= now:
        return Availability(False, "Event has already started")
    if event.tracks_inventory and event.tickets_remaining <= 0:
        return Availability(False, "No tickets remaining for this event")
    if event.max_attendees is not None and registered_count >= event.max_attendees:
        return Availability(False, "Event has reached maximum attendee capacity")
    return Availability(True)


async def load_event(db: AsyncSession, event_id: int) -> Event:
    # populate_existing: a lock holder must see the committed row, not the identity map
    result = await db.execute(
        select(Event)
        .where(Event.id == event_id)
        .execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()
    if event is None:
        raise NotFoundError("Event not found")
    return event


async def count_registered(db: AsyncSession, event_id: int) -> int:
    result = await db.execute(
        select(func.count(EventRegistration.id)).where(
            EventRegistration.event_id == event_id,
            EventRegistration.status == "registered",
        )
    )
    return int(result.scalar_one())


async def check_availability(db: AsyncSession, event_id: int) -> Availability:
    """Advisory check, no lock taken."""
    event = await load_event(db, event_id)
    registered = 0
    if event.max_attendees is not None:
        registered = await count_registered(db, event_id)
    return evaluate_availability(event, registered)


async def decrement_tickets_remaining(db: AsyncSession, event_id: int) -> bool:
    """Take one ticket out of inventory. Returns False when untracked or already at zero."""
    result = await db.execute(
        update(Event)
        .where(
            Event.id == event_id,
            Event.tickets_remaining.is_not(None),
            Event.tickets_remaining > 0,
        )
        .values(tickets_remaining=Event.tickets_remaining - 1)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


async def increment_tickets_remaining(db: AsyncSession, event_id: int) -> bool:
    """Return one ticket to inventory. No-op for events without inventory tracking."""
    result = await db.execute(
        update(Event)
        .where(Event.id == event_id, Event.tickets_remaining.is_not(None))
        .values(tickets_remaining=Event.tickets_remaining + 1)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1
