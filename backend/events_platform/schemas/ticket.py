"""
Pydantic schemas for tickets.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel


class TicketResponse(BaseModel):
    id: int
    event_id: int
    user_id: int
    registration_id: int
    ticket_code: str
    paid: bool
    status: str
    issued_at: datetime
    used_at: Optional[datetime]
    payment_id: Optional[int]

    model_config = {"from_attributes": True}


class TicketWithEvent(TicketResponse):
    event_title: str
    start_time: datetime
    end_time: datetime
    location: Optional[str]

    @classmethod
    def from_ticket(cls, ticket) -> "TicketWithEvent":
        return cls(
            **TicketResponse.model_validate(ticket).model_dump(),
            event_title=ticket.event.title,
            start_time=ticket.event.start_time,
            end_time=ticket.event.end_time,
            location=ticket.event.location,
        )


class TicketListResponse(BaseModel):
    tickets: list[TicketWithEvent]


class TicketStatusUpdate(BaseModel):
    status: Literal["valid", "used", "cancelled", "expired"]


class TicketActionResponse(BaseModel):
    status: str = "success"
    msg: str
    ticket: TicketResponse


class HasUserPaidResponse(BaseModel):
    has_user_paid: bool
