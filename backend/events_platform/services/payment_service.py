"""
Payment reconciliation: turning a paid checkout session into a ticket.

A successful payment reaches us twice: the client calls sync after the
provider redirects back, and the provider delivers a webhook. The two can
arrive in either order, or at the same time.

DE-DUPLICATION: event row lock + unique session id
==================================================

materialize_successful_payment runs entirely under SELECT ... FOR UPDATE
on the event row. The first trigger inserts registration, ticket and
payment and commits; the second one waits on the lock, then finds the
payment by stripe_session_id and returns already_processed without
writing anything.

stripe_payments.stripe_session_id is also UNIQUE. If a writer ever gets
past the lookup anyway (a different event id in forged metadata, manual
inserts), the constraint rejects the second row and the IntegrityError
is reported as already processed.

Paid admission does not re-check capacity: the customer has been charged,
so the seat is granted and tickets_remaining clamps at zero.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from events_platform.core.config import Settings
from events_platform.core.exceptions import ConflictError, NotFoundError, ValidationError
from events_platform.core.logging import get_logger
from events_platform.core.metrics import (
    record_payment_materialization,
    webhook_events,
    webhook_signature_failures,
)
from events_platform.db.transaction import run_with_row_lock
from events_platform.infrastructure.payment_gateway import CheckoutSession, PaymentGateway
from events_platform.models.event import Event
from events_platform.models.payment import Payment
from events_platform.models.registration import EventRegistration
from events_platform.models.ticket import Ticket
from events_platform.models.user import User
from events_platform.services.capacity import decrement_tickets_remaining, load_event
from events_platform.services.registration_service import find_registration
from events_platform.services.ticket_service import DEFAULT_CODE_POLICY, CodePolicy, issue_ticket

logger = get_logger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_FAILED = "payment_intent.payment_failed"


@dataclass(frozen=True)
class MaterializationResult:
    payment_id: int
    ticket_id: Optional[int]
    event_id: int
    already_processed: bool = False


def minor_to_decimal(amount_minor: Optional[int]) -> Decimal:
    return Decimal(amount_minor or 0) / Decimal(100)


def decimal_to_minor(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


async def find_payment_by_session(db: AsyncSession, session_id: str) -> Optional[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.stripe_session_id == session_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _already_processed(db: AsyncSession, payment: Payment) -> MaterializationResult:
    ticket_id = (
        await db.execute(select(Ticket.id).where(Ticket.payment_id == payment.id).limit(1))
    ).scalar_one_or_none()
    return MaterializationResult(
        payment_id=payment.id,
        ticket_id=ticket_id,
        event_id=payment.event_id,
        already_processed=True,
    )


async def materialize_successful_payment(
    db: AsyncSession,
    *,
    session_id: str,
    event_id: int,
    user_id: int,
    payment_intent_id: Optional[str],
    amount_minor: Optional[int],
    currency: Optional[str] = None,
    trigger: str = "sync",
    code_policy: CodePolicy = DEFAULT_CODE_POLICY,
) -> MaterializationResult:
    """
    Record a paid checkout session exactly once: registration (created or
    reactivated), paid ticket, payment row, inventory decrement.
    """

    async def work(session: AsyncSession) -> MaterializationResult:
        existing = await find_payment_by_session(session, session_id)
        if existing is not None:
            return await _already_processed(session, existing)

        await load_event(session, event_id)
        if await session.get(User, user_id) is None:
            raise NotFoundError("User not found")

        registration = await find_registration(session, event_id, user_id)
        if registration is None:
            registration = EventRegistration(event_id=event_id, user_id=user_id, status="registered")
            session.add(registration)
            await session.flush()
        elif registration.status == "cancelled":
            registration.status = "registered"
            registration.registration_time = datetime.now(timezone.utc)

        ticket = await issue_ticket(
            session,
            event_id=event_id,
            user_id=user_id,
            registration_id=registration.id,
            paid=True,
            policy=code_policy,
        )

        payment = Payment(
            user_id=user_id,
            event_id=event_id,
            stripe_session_id=session_id,
            stripe_payment_intent_id=payment_intent_id or "",
            amount=minor_to_decimal(amount_minor),
            currency=(currency or "gbp").lower(),
            status="succeeded",
        )
        session.add(payment)
        await session.flush()

        ticket.payment_id = payment.id
        await decrement_tickets_remaining(session, event_id)
        await session.flush()

        return MaterializationResult(payment_id=payment.id, ticket_id=ticket.id, event_id=event_id)

    try:
        result = await run_with_row_lock(db, Event, [Event.id == event_id], work)
    except IntegrityError as exc:
        if "stripe_session_id" not in str(exc.orig):
            raise
        existing = await find_payment_by_session(db, session_id)
        if existing is None:
            raise
        logger.info("payment_duplicate_insert_rejected", session_id=session_id, trigger=trigger)
        result = await _already_processed(db, existing)

    record_payment_materialization(trigger, duplicate=result.already_processed)
    logger.info(
        "payment_already_processed" if result.already_processed else "payment_materialized",
        session_id=session_id,
        event_id=event_id,
        user_id=user_id,
        payment_id=result.payment_id,
        ticket_id=result.ticket_id,
        trigger=trigger,
    )
    return result


async def mark_payment_failed(db: AsyncSession, payment_intent_id: str) -> int:
    """Flag payments for a failed intent. Unknown intents are ignored."""
    result = await db.execute(
        update(Payment)
        .where(Payment.stripe_payment_intent_id == payment_intent_id)
        .values(status="failed")
        .execution_options(synchronize_session="fetch")
    )
    await db.flush()
    logger.info("payment_marked_failed", payment_intent_id=payment_intent_id, rows=result.rowcount)
    return result.rowcount


def _session_target(checkout: CheckoutSession) -> tuple[int, int]:
    metadata = checkout.metadata or {}
    try:
        return int(metadata["eventId"]), int(metadata["userId"])
    except (KeyError, TypeError, ValueError):
        raise ValidationError("Checkout session is missing event or user metadata")


async def _materialize_session(
    db: AsyncSession,
    checkout: CheckoutSession,
    trigger: str,
    code_policy: CodePolicy,
) -> MaterializationResult:
    event_id, user_id = _session_target(checkout)
    return await materialize_successful_payment(
        db,
        session_id=checkout.id,
        event_id=event_id,
        user_id=user_id,
        payment_intent_id=checkout.payment_intent,
        amount_minor=checkout.amount_total,
        currency=checkout.currency,
        trigger=trigger,
        code_policy=code_policy,
    )


async def sync_payment(
    db: AsyncSession,
    gateway: PaymentGateway,
    session_id: str,
    code_policy: CodePolicy = DEFAULT_CODE_POLICY,
) -> tuple[dict, MaterializationResult]:
    """Client-triggered reconciliation after the checkout redirect."""
    checkout = await gateway.retrieve_session(session_id)
    if checkout.payment_status != "paid":
        logger.info("payment_sync_not_paid", session_id=session_id, payment_status=checkout.payment_status)
        raise ConflictError("Payment not completed")

    result = await _materialize_session(db, checkout, "sync", code_policy)
    if result.already_processed:
        body = {
            "success": True,
            "message": "Payment already processed",
            "payment_id": result.payment_id,
            "already_processed": True,
        }
    else:
        body = {
            "success": True,
            "ticket_id": result.ticket_id,
            "payment_id": result.payment_id,
        }
    return body, result


async def handle_webhook(
    db: AsyncSession,
    gateway: PaymentGateway,
    payload: bytes,
    signature: Optional[str],
    code_policy: CodePolicy = DEFAULT_CODE_POLICY,
) -> tuple[dict, Optional[MaterializationResult]]:
    """
    Provider-triggered reconciliation.

    A bad signature is rejected before anything is touched. Payloads that
    verify but point at data we cannot act on (missing metadata, deleted
    event or user) are logged and acknowledged so the provider stops
    redelivering them; any other failure propagates and the provider retries.
    """
    try:
        event = gateway.construct_webhook_event(payload, signature or "")
    except ValidationError as e:
        webhook_signature_failures.inc()
        logger.warning("webhook_signature_invalid", error=e.message)
        raise

    webhook_events.labels(type=event.type).inc()
    logger.info("webhook_received", type=event.type, object_id=event.object_id)

    result = None
    if event.type == CHECKOUT_COMPLETED and event.session is not None:
        try:
            result = await _materialize_session(db, event.session, "webhook", code_policy)
        except (NotFoundError, ValidationError) as e:
            logger.error("webhook_session_unprocessable", session_id=event.session.id, error=e.message)
    elif event.type == PAYMENT_FAILED and event.object_id:
        await mark_payment_failed(db, event.object_id)
    else:
        logger.debug("webhook_ignored", type=event.type)

    return {"received": True}, result


async def create_checkout_session(
    db: AsyncSession,
    gateway: PaymentGateway,
    settings: Settings,
    event_id: int,
    user_id: int,
) -> dict:
    """Start a hosted checkout for one ticket. The provider customer id is created once per user."""
    event = await load_event(db, event_id)
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    unit_amount = decimal_to_minor(event.price or Decimal("0"))
    if unit_amount <= 0:
        raise ValidationError("This event does not require payment")

    if not user.stripe_customer_id:
        user.stripe_customer_id = await gateway.create_customer(
            email=user.email,
            metadata={"userId": str(user_id)},
        )
        await db.flush()
        logger.info("payment_customer_created", user_id=user_id)

    checkout = await gateway.create_checkout_session(
        customer_id=user.stripe_customer_id,
        name=f"Ticket for {event.title}",
        description=event.description or "Event ticket",
        unit_amount=unit_amount,
        currency=settings.STRIPE_CURRENCY,
        success_url=f"{settings.FRONTEND_URL}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{settings.FRONTEND_URL}/events/{event_id}",
        metadata={"eventId": str(event_id), "userId": str(user_id)},
    )
    logger.info("checkout_session_created", session_id=checkout.id, event_id=event_id, user_id=user_id)
    return {"url": checkout.url, "session_id": checkout.id}


async def get_payment_status(db: AsyncSession, gateway: PaymentGateway, session_id: str) -> dict:
    """Our own record wins; the provider is only asked about sessions we have not processed."""
    payment = await find_payment_by_session(db, session_id)
    if payment is not None:
        return {
            "success": True,
            "status": payment.status,
            "session_id": payment.stripe_session_id,
            "has_been_processed": True,
            "payment_id": payment.id,
            "payment_intent": payment.stripe_payment_intent_id,
            "amount": payment.amount,
        }

    checkout = await gateway.retrieve_session(session_id)
    return {
        "success": True,
        "status": checkout.payment_status,
        "session_id": checkout.id,
        "has_been_processed": False,
        "payment_intent": checkout.payment_intent,
        "amount": minor_to_decimal(checkout.amount_total),
    }


async def list_user_payments(db: AsyncSession, user_id: int) -> list[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.user_id == user_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
    )
    payments = list(result.scalars().all())
    if not payments:
        raise NotFoundError("No payments found")
    return payments
