"""
Ticket endpoints: listing, verification at the door, redemption.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from events_platform.core.exceptions import ForbiddenError, NotFoundError
from events_platform.core.security import get_current_user_id
from events_platform.db.session import get_db
from events_platform.models.user import User
from events_platform.schemas.ticket import (
    HasUserPaidResponse,
    TicketActionResponse,
    TicketListResponse,
    TicketResponse,
    TicketStatusUpdate,
    TicketWithEvent,
)
from events_platform.services import ticket_service

router = APIRouter(prefix="/tickets", tags=["Tickets"])


@router.get("/user/{user_id}", response_model=TicketListResponse)
async def list_user_tickets_endpoint(
    user_id: int,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """All tickets of a user, newest first. Users can only list their own."""
    if await db.get(User, user_id) is None:
        raise NotFoundError("User not found")
    if caller_id != user_id:
        raise ForbiddenError("You can only view your own tickets")

    tickets = await ticket_service.list_user_tickets(db, user_id)
    return TicketListResponse(tickets=[TicketWithEvent.from_ticket(t) for t in tickets])


@router.get("/user/{user_id}/event/{event_id}", response_model=HasUserPaidResponse)
async def has_user_paid_endpoint(
    user_id: int,
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    paid = await ticket_service.has_user_paid(db, user_id, event_id)
    return HasUserPaidResponse(has_user_paid=paid)


@router.get("/verify/{ticket_code}", response_model=TicketActionResponse)
async def verify_ticket_endpoint(
    ticket_code: str,
    db: AsyncSession = Depends(get_db),
):
    ticket = await ticket_service.verify_ticket(db, ticket_code)
    return TicketActionResponse(msg="Ticket is valid", ticket=TicketResponse.model_validate(ticket))


@router.post("/use/{ticket_code}", response_model=TicketActionResponse)
async def use_ticket_endpoint(
    ticket_code: str,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    ticket = await ticket_service.use_ticket(db, ticket_code, caller_id)
    return TicketActionResponse(msg="Ticket marked as used", ticket=TicketResponse.model_validate(ticket))


@router.patch("/{ticket_id}", response_model=TicketActionResponse)
async def update_ticket_endpoint(
    ticket_id: int,
    update: TicketStatusUpdate,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Organizer override of a ticket's status."""
    ticket = await ticket_service.update_ticket_status(db, ticket_id, update.status, caller_id)
    return TicketActionResponse(msg="Ticket updated successfully", ticket=TicketResponse.model_validate(ticket))
