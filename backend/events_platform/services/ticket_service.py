"""
Ticket issuance, verification and redemption.

Ticket codes are 16 random bytes, hex-encoded and upper-cased (32 chars).
Uniqueness is enforced by the database; issue_ticket inserts inside a
SAVEPOINT so a code collision only rolls back that one insert, then
retries with a fresh code. Everything else in the enclosing transaction
(registration row, counter decrement) is left intact.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from events_platform.core.config import Settings
from events_platform.core.exceptions import (
    ForbiddenError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from events_platform.core.logging import get_logger
from events_platform.db.transaction import run_with_row_lock
from events_platform.models.event import Event
from events_platform.models.ticket import Ticket
from events_platform.models.user import User
from events_platform.services.event_service import require_event_manager

logger = get_logger(__name__)

UPDATABLE_STATUSES = ("valid", "used", "cancelled", "expired")


@dataclass(frozen=True)
class CodePolicy:
    nbytes: int = 16
    max_attempts: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> "CodePolicy":
        return cls(nbytes=settings.TICKET_CODE_BYTES, max_attempts=settings.TICKET_CODE_MAX_ATTEMPTS)


DEFAULT_CODE_POLICY = CodePolicy()


def mint_ticket_code(nbytes: int = DEFAULT_CODE_POLICY.nbytes) -> str:
    return secrets.token_hex(nbytes).upper()


async def issue_ticket(
    db: AsyncSession,
    *,
    event_id: int,
    user_id: int,
    registration_id: int,
    paid: bool = False,
    policy: CodePolicy = DEFAULT_CODE_POLICY,
) -> Ticket:
    """Insert a valid ticket for a registration, retrying on code collisions."""
    for attempt in range(1, policy.max_attempts + 1):
        ticket = Ticket(
            event_id=event_id,
            user_id=user_id,
            registration_id=registration_id,
            ticket_code=mint_ticket_code(policy.nbytes),
            paid=paid,
            status="valid",
        )
        try:
            async with db.begin_nested():
                db.add(ticket)
                await db.flush()
        except IntegrityError as exc:
            if "ticket_code" not in str(exc.orig):
                raise
            logger.warning("ticket_code_collision", attempt=attempt, registration_id=registration_id)
            continue

        await db.refresh(ticket)
        logger.info(
            "ticket_issued",
            ticket_id=ticket.id,
            registration_id=registration_id,
            paid=paid,
        )
        return ticket

    raise InternalError("Could not generate a unique ticket code")


async def find_registration_ticket(db: AsyncSession, registration_id: int):
    result = await db.execute(
        select(Ticket)
        .where(Ticket.registration_id == registration_id)
        .order_by(Ticket.id)
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_ticket_by_code(db: AsyncSession, ticket_code: str) -> Ticket:
    result = await db.execute(
        select(Ticket)
        .options(selectinload(Ticket.event), selectinload(Ticket.user))
        .where(Ticket.ticket_code == ticket_code)
        .execution_options(populate_existing=True)
    )
    ticket = result.scalar_one_or_none()
    if ticket is None:
        raise NotFoundError("Ticket not found")
    return ticket


async def verify_ticket(db: AsyncSession, ticket_code: str) -> Ticket:
    """A ticket is good for entry while it is valid and its event has not ended."""
    if not ticket_code or not ticket_code.strip():
        raise ValidationError("Ticket code is required")

    ticket = await get_ticket_by_code(db, ticket_code.strip())
    if ticket.status != "valid":
        raise ValidationError(f"Ticket is {ticket.status}")
    if ticket.event.end_time < datetime.now(timezone.utc):
        raise ValidationError("Event has already ended")
    return ticket


async def use_ticket(db: AsyncSession, ticket_code: str, caller_user_id: int) -> Ticket:
    """Redeem a ticket. The ticket row is locked so two scans cannot both succeed."""

    async def work(session: AsyncSession) -> Ticket:
        ticket = await get_ticket_by_code(session, ticket_code)
        if ticket.user_id != caller_user_id:
            raise ForbiddenError("You can only use your own tickets")
        if ticket.status == "used":
            raise ValidationError("Ticket has already been used")
        if ticket.status != "valid":
            raise ValidationError(f"Cannot use ticket with status: {ticket.status}")

        ticket.status = "used"
        ticket.used_at = datetime.now(timezone.utc)
        await session.flush()
        await session.refresh(ticket)
        logger.info("ticket_used", ticket_id=ticket.id, user_id=caller_user_id)
        return ticket

    return await run_with_row_lock(db, Ticket, [Ticket.ticket_code == ticket_code], work)


async def update_ticket_status(db: AsyncSession, ticket_id: int, status: str, caller_user_id: int) -> Ticket:
    """Manual status change by an organizer of the ticket's event."""
    if status not in UPDATABLE_STATUSES:
        raise ValidationError(f"Invalid ticket status. Valid options: {', '.join(UPDATABLE_STATUSES)}")

    ticket = await db.get(Ticket, ticket_id, populate_existing=True)
    if ticket is None:
        raise NotFoundError("Ticket not found")

    event = await db.get(Event, ticket.event_id)
    await require_event_manager(db, caller_user_id, event.team_id)

    ticket.status = status
    if status == "used":
        ticket.used_at = datetime.now(timezone.utc)
    await db.flush()
    await db.refresh(ticket)
    logger.info("ticket_status_updated", ticket_id=ticket_id, status=status)
    return ticket


async def list_user_tickets(db: AsyncSession, user_id: int) -> list[Ticket]:
    result = await db.execute(
        select(Ticket)
        .options(selectinload(Ticket.event))
        .where(Ticket.user_id == user_id)
        .order_by(Ticket.issued_at.desc(), Ticket.id.desc())
    )
    return list(result.scalars().all())


async def has_user_paid(db: AsyncSession, user_id: int, event_id: int) -> bool:
    if await db.get(User, user_id) is None:
        raise NotFoundError("User not found")
    if await db.get(Event, event_id) is None:
        raise NotFoundError("Event not found")

    result = await db.execute(
        select(Ticket.id).where(
            Ticket.user_id == user_id,
            Ticket.event_id == event_id,
            Ticket.status == "valid",
            Ticket.paid.is_(True),
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None
