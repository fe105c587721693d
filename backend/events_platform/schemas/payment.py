"""
Pydantic schemas for checkout and payment reconciliation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class CheckoutRequest(BaseModel):
    event_id: int = Field(..., gt=0)
    user_id: Optional[int] = Field(None, gt=0)


class CheckoutSessionResponse(BaseModel):
    url: Optional[str]
    session_id: str


class SyncPaymentResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    ticket_id: Optional[int] = None
    payment_id: Optional[int] = None
    already_processed: bool = False


class PaymentStatusResponse(BaseModel):
    success: bool = True
    status: Optional[str]
    session_id: str
    has_been_processed: bool
    payment_id: Optional[int] = None
    payment_intent: Optional[str] = None
    amount: Decimal


class PaymentResponse(BaseModel):
    id: int
    user_id: int
    event_id: int
    stripe_session_id: str
    stripe_payment_intent_id: str
    amount: Decimal
    currency: str
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class WebhookAck(BaseModel):
    received: bool = True
