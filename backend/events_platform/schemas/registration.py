"""
Pydantic schemas for registration requests and responses.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class RegistrationCreate(BaseModel):
    # Omitted: register the authenticated caller
    user_id: Optional[int] = Field(None, gt=0)


class TicketInfo(BaseModel):
    ticket_code: str
    event_title: str
    event_date: str
    event_location: Optional[str]
    user_name: str
    user_email: str


class RegistrationResponse(BaseModel):
    id: int
    event_id: int
    user_id: int
    status: str
    registration_time: datetime
    reactivated: bool = False
    ticket_info: Optional[TicketInfo] = None

    model_config = {"from_attributes": True}


class RegisterResponse(BaseModel):
    msg: str
    registration: RegistrationResponse


class CancelResponse(BaseModel):
    msg: str
    registration: RegistrationResponse
