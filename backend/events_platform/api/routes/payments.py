"""
Checkout and payment reconciliation endpoints.

The webhook is unauthenticated: the provider signature on the raw body
is the only credential. Everything else needs a bearer token.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from events_platform.core.config import Settings, get_settings
from events_platform.core.exceptions import ForbiddenError
from events_platform.core.security import get_current_user_id
from events_platform.db.session import get_db
from events_platform.infrastructure.payment_gateway import PaymentGateway, get_payment_gateway
from events_platform.models.user import User
from events_platform.schemas.payment import (
    CheckoutRequest,
    CheckoutSessionResponse,
    PaymentResponse,
    PaymentStatusResponse,
    SyncPaymentResponse,
    WebhookAck,
)
from events_platform.services import payment_service
from events_platform.services.cache_service import invalidate_event_cache
from events_platform.services.registration_service import resolve_registrant
from events_platform.services.ticket_service import CodePolicy

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/create-checkout-session", response_model=CheckoutSessionResponse)
async def create_checkout_session_endpoint(
    request: CheckoutRequest,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
):
    user_id = await resolve_registrant(db, caller_id, request.user_id)
    return await payment_service.create_checkout_session(db, gateway, settings, request.event_id, user_id)


@router.get("/payment-status/{session_id}", response_model=PaymentStatusResponse)
async def payment_status_endpoint(
    session_id: str,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    return await payment_service.get_payment_status(db, gateway, session_id)


@router.post("/sync-payment/{session_id}", response_model=SyncPaymentResponse)
async def sync_payment_endpoint(
    session_id: str,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
):
    """
    Called by the client after the checkout redirect. Safe to repeat, and
    safe to race with the webhook: a session is only ever recorded once.
    """
    body, result = await payment_service.sync_payment(
        db, gateway, session_id, code_policy=CodePolicy.from_settings(settings)
    )
    if not result.already_processed:
        await invalidate_event_cache(result.event_id)
    return body


@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook_endpoint(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
):
    payload = await request.body()
    body, result = await payment_service.handle_webhook(
        db, gateway, payload, stripe_signature, code_policy=CodePolicy.from_settings(settings)
    )
    if result is not None and not result.already_processed:
        await invalidate_event_cache(result.event_id)
    return body


@router.get("/user/{user_id}", response_model=list[PaymentResponse])
async def list_user_payments_endpoint(
    user_id: int,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    if caller_id != user_id:
        caller = await db.get(User, caller_id)
        if caller is None or not caller.is_site_admin:
            raise ForbiddenError("You can only view your own payments")
    return await payment_service.list_user_payments(db, user_id)
