"""
Registration service: capacity-safe register / cancel.

State machine per (event, user):

    absent --register--> registered --cancel--> cancelled
                             ^                      |
                             +-----register---------+   (reactivation, same row)

CONCURRENCY STRATEGY: SELECT ... FOR UPDATE on the event row
=============================================================

register() holds the event row lock while it re-checks availability,
counts registrations, inserts or reactivates the registration, moves the
tickets_remaining counter and issues the ticket. Two requests for the
last seat of the same event serialize; the second one sees the first
one's committed decrement and is rejected. Registrations for different
events never contend.

cancel() locks the same event row before returning a ticket to inventory,
so increments and decrements never interleave on one event.

Everything inside the lock commits or rolls back as one unit: a failure
after the decrement (e.g. ticket insert) restores the counter too.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from events_platform.core.exceptions import AppError, ConflictError, ForbiddenError, NotFoundError
from events_platform.core.logging import get_logger
from events_platform.core.metrics import (
    record_registration_attempt,
    registration_cancellations,
    registration_latency,
)
from events_platform.db.transaction import run_in_transaction, run_with_row_lock
from events_platform.models.event import Event
from events_platform.models.registration import EventRegistration
from events_platform.models.ticket import Ticket
from events_platform.models.user import User
from events_platform.services.capacity import (
    count_registered,
    decrement_tickets_remaining,
    evaluate_availability,
    increment_tickets_remaining,
    load_event,
)
from events_platform.services.ticket_service import (
    DEFAULT_CODE_POLICY,
    CodePolicy,
    find_registration_ticket,
    issue_ticket,
)

logger = get_logger(__name__)


@dataclass
class RegistrationResult:
    registration: EventRegistration
    ticket: Ticket
    event: Event
    user: User
    created: bool

    @property
    def reactivated(self) -> bool:
        return not self.created

    def ticket_info(self) -> dict:
        return {
            "ticket_code": self.ticket.ticket_code,
            "event_title": self.event.title,
            "event_date": self.event.start_time.strftime("%A, %B %d, %Y at %I:%M %p"),
            "event_location": self.event.location,
            "user_name": self.user.username,
            "user_email": self.user.email,
        }


async def resolve_registrant(
    db: AsyncSession,
    caller_user_id: int,
    requested_user_id: Optional[int],
) -> int:
    """Who is being registered: the caller, or someone else if the caller is a site admin."""
    if requested_user_id is None or requested_user_id == caller_user_id:
        return caller_user_id

    caller = await db.get(User, caller_user_id)
    if caller is None or not caller.is_site_admin:
        raise ForbiddenError("You can only register yourself for events")
    return requested_user_id


async def find_registration(db: AsyncSession, event_id: int, user_id: int) -> Optional[EventRegistration]:
    result = await db.execute(
        select(EventRegistration)
        .where(EventRegistration.event_id == event_id, EventRegistration.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def register(
    db: AsyncSession,
    event_id: int,
    user_id: int,
    code_policy: CodePolicy = DEFAULT_CODE_POLICY,
) -> RegistrationResult:
    """
    Register a user for an event under the event row lock.
    Returns created=True for a new registration, False for a reactivation.
    """

    async def work(session: AsyncSession) -> RegistrationResult:
        event = await load_event(session, event_id)

        registered = 0
        if event.max_attendees is not None:
            registered = await count_registered(session, event_id)
        availability = evaluate_availability(event, registered)
        if not availability.available:
            logger.warning(
                "registration_rejected",
                event_id=event_id,
                user_id=user_id,
                reason=availability.reason,
                tickets_remaining=event.tickets_remaining,
            )
            raise ConflictError(availability.reason)

        user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")

        registration = await find_registration(session, event_id, user_id)

        if registration is None:
            registration = EventRegistration(event_id=event_id, user_id=user_id, status="registered")
            session.add(registration)
            await session.flush()
            await decrement_tickets_remaining(session, event_id)
            ticket = await issue_ticket(
                session,
                event_id=event_id,
                user_id=user_id,
                registration_id=registration.id,
                policy=code_policy,
            )
            created = True

        elif registration.status == "cancelled":
            registration.status = "registered"
            registration.registration_time = datetime.now(timezone.utc)
            await decrement_tickets_remaining(session, event_id)

            ticket = await find_registration_ticket(session, registration.id)
            if ticket is None:
                ticket = await issue_ticket(
                    session,
                    event_id=event_id,
                    user_id=user_id,
                    registration_id=registration.id,
                    policy=code_policy,
                )
            elif ticket.status != "valid":
                ticket.status = "valid"
            created = False

        else:
            raise ConflictError("User is already registered for this event")

        await session.flush()
        await session.refresh(registration)
        await session.refresh(event)

        logger.info(
            "registration_created" if created else "registration_reactivated",
            registration_id=registration.id,
            event_id=event_id,
            user_id=user_id,
            tickets_remaining=event.tickets_remaining,
        )
        return RegistrationResult(
            registration=registration,
            ticket=ticket,
            event=event,
            user=user,
            created=created,
        )

    start = time.perf_counter()
    try:
        result = await run_with_row_lock(db, Event, [Event.id == event_id], work)
    except ConflictError:
        record_registration_attempt("rejected")
        raise
    except AppError:
        record_registration_attempt("error")
        raise
    finally:
        registration_latency.observe(time.perf_counter() - start)

    record_registration_attempt("created" if result.created else "reactivated")
    return result


async def get_registration(db: AsyncSession, registration_id: int) -> EventRegistration:
    registration = await db.get(EventRegistration, registration_id, populate_existing=True)
    if registration is None:
        raise NotFoundError("Registration not found")
    return registration


async def cancel(
    db: AsyncSession,
    registration_id: int,
    caller_user_id: Optional[int] = None,
) -> EventRegistration:
    """
    Cancel a registration, return its seat to inventory and cancel its tickets.
    Cancelling twice is an error, not a no-op.
    """

    async def work(session: AsyncSession) -> EventRegistration:
        registration = await get_registration(session, registration_id)
        if caller_user_id is not None and registration.user_id != caller_user_id:
            raise ForbiddenError("You can only cancel your own registrations")

        await session.execute(
            select(Event.id).where(Event.id == registration.event_id).with_for_update()
        )
        # Status may have changed while we waited for the lock
        await session.refresh(registration)
        if registration.status == "cancelled":
            raise ConflictError("Registration is already cancelled")

        await increment_tickets_remaining(session, registration.event_id)
        registration.status = "cancelled"
        await session.execute(
            update(Ticket)
            .where(Ticket.registration_id == registration.id)
            .values(status="cancelled")
            .execution_options(synchronize_session="fetch")
        )
        await session.flush()
        await session.refresh(registration)

        logger.info(
            "registration_cancelled",
            registration_id=registration.id,
            event_id=registration.event_id,
            user_id=registration.user_id,
        )
        return registration

    registration = await run_in_transaction(db, work)
    registration_cancellations.inc()
    return registration
