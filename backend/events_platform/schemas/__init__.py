from events_platform.schemas.event import (
    EventCreate, EventUpdate, EventResponse, EventListResponse, AvailabilityResponse,
)
from events_platform.schemas.registration import (
    RegistrationCreate, RegistrationResponse, RegisterResponse, CancelResponse, TicketInfo,
)
from events_platform.schemas.ticket import TicketResponse, TicketWithEvent, TicketStatusUpdate
from events_platform.schemas.payment import (
    CheckoutRequest, CheckoutSessionResponse, SyncPaymentResponse, PaymentStatusResponse, PaymentResponse,
)

__all__ = [
    "EventCreate", "EventUpdate", "EventResponse", "EventListResponse", "AvailabilityResponse",
    "RegistrationCreate", "RegistrationResponse", "RegisterResponse", "CancelResponse", "TicketInfo",
    "TicketResponse", "TicketWithEvent", "TicketStatusUpdate",
    "CheckoutRequest", "CheckoutSessionResponse", "SyncPaymentResponse", "PaymentStatusResponse",
    "PaymentResponse",
]
