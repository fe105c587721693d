"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Literal, Optional
from pydantic import AfterValidator, BaseModel, Field, field_validator

EventStatus = Literal["draft", "published", "cancelled", "past"]


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted to it."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class EventCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    location: Optional[str] = Field(None, max_length=255)
    start_time: UtcDatetime
    end_time: UtcDatetime
    max_attendees: Optional[int] = Field(None, gt=0, le=100000)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    status: EventStatus = "draft"
    is_public: bool = True
    team_id: Optional[int] = Field(None, gt=0)


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    location: Optional[str] = Field(None, max_length=255)
    start_time: Optional[UtcDatetime] = None
    end_time: Optional[UtcDatetime] = None
    max_attendees: Optional[int] = Field(None, gt=0, le=100000)
    tickets_remaining: Optional[int] = Field(None, ge=0)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    status: Optional[EventStatus] = None
    is_public: Optional[bool] = None
    team_id: Optional[int] = Field(None, gt=0)

    @field_validator("title", "start_time", "end_time", "status", "is_public")
    @classmethod
    def reject_null(cls, value):
        # Omit a field to leave it unchanged; these columns cannot be cleared
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value


class EventResponse(BaseModel):
    id: int
    status: str
    title: str
    description: Optional[str]
    location: Optional[str]
    start_time: datetime
    end_time: datetime
    max_attendees: Optional[int]
    tickets_remaining: Optional[int]
    price: Optional[Decimal]
    is_public: bool
    team_id: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False


class AvailabilityResponse(BaseModel):
    available: bool
    reason: Optional[str] = None
