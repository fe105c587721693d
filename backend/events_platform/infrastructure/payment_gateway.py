"""
Payment provider integration.

PaymentGateway is the interface the reconciliation code depends on;
StripeGateway implements it with the official stripe SDK. The SDK is
synchronous, so calls run in the threadpool. Provider objects are copied
into plain dataclasses here and never leak further in.

Calls are fire-and-fail: no retries, no custom timeouts. Any provider
error surfaces as UnavailableError (503) and the client repeats the flow.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import stripe
from fastapi import Depends
from starlette.concurrency import run_in_threadpool

from events_platform.core.config import Settings, get_settings
from events_platform.core.exceptions import UnavailableError, ValidationError
from events_platform.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    payment_status: Optional[str]
    payment_intent: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    url: Optional[str] = None


@dataclass(frozen=True)
class WebhookEvent:
    type: str
    object_id: Optional[str]
    session: Optional[CheckoutSession] = None


class PaymentGateway(ABC):
    """
    What reconciliation needs from a checkout provider.

    Implementations:
    - StripeGateway: hosted Stripe Checkout
    """

    @abstractmethod
    async def create_customer(self, email: str, metadata: dict) -> str:
        """Create a provider customer and return its id."""

    @abstractmethod
    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        name: str,
        description: str,
        unit_amount: int,
        currency: str,
        success_url: str,
        cancel_url: str,
        metadata: dict,
    ) -> CheckoutSession:
        """Create a one-item hosted checkout session."""

    @abstractmethod
    async def retrieve_session(self, session_id: str) -> CheckoutSession:
        """Fetch current session state from the provider."""

    @abstractmethod
    def construct_webhook_event(self, payload: bytes, signature: str) -> WebhookEvent:
        """Verify the signature and parse the event. Raises ValidationError if invalid."""


def _plain(obj) -> dict:
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def _id_of(value) -> Optional[str]:
    # Expandable fields arrive either as an id string or as the expanded object
    if value is None or isinstance(value, str):
        return value
    return getattr(value, "id", None)


def session_from_stripe(obj) -> CheckoutSession:
    return CheckoutSession(
        id=obj["id"],
        payment_status=getattr(obj, "payment_status", None),
        payment_intent=_id_of(getattr(obj, "payment_intent", None)),
        amount_total=getattr(obj, "amount_total", None),
        currency=getattr(obj, "currency", None),
        metadata=_plain(getattr(obj, "metadata", None)),
        url=getattr(obj, "url", None),
    )


class StripeGateway(PaymentGateway):
    def __init__(self, settings: Settings):
        self.settings = settings
        self._client = stripe.StripeClient(settings.STRIPE_SECRET_KEY) if settings.payments_enabled else None

    def _require_client(self) -> stripe.StripeClient:
        if self._client is None:
            raise UnavailableError("Stripe payment service unavailable - API key not configured")
        return self._client

    async def _call(self, operation: str, fn, *args, **kwargs):
        client = self._require_client()
        try:
            return await run_in_threadpool(fn, client, *args, **kwargs)
        except stripe.StripeError as exc:
            logger.error("stripe_call_failed", operation=operation, error=str(exc))
            raise UnavailableError(f"Payment provider error: {exc.user_message or 'request failed'}")

    async def create_customer(self, email: str, metadata: dict) -> str:
        customer = await self._call(
            "customers.create",
            lambda client: client.customers.create(params={"email": email, "metadata": metadata}),
        )
        return customer.id

    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        name: str,
        description: str,
        unit_amount: int,
        currency: str,
        success_url: str,
        cancel_url: str,
        metadata: dict,
    ) -> CheckoutSession:
        params = {
            "customer": customer_id,
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": {"name": name, "description": description},
                        "unit_amount": unit_amount,
                    },
                    "quantity": 1,
                }
            ],
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        }
        session = await self._call(
            "checkout.sessions.create",
            lambda client: client.checkout.sessions.create(params=params),
        )
        return session_from_stripe(session)

    async def retrieve_session(self, session_id: str) -> CheckoutSession:
        session = await self._call(
            "checkout.sessions.retrieve",
            lambda client: client.checkout.sessions.retrieve(session_id),
        )
        return session_from_stripe(session)

    def construct_webhook_event(self, payload: bytes, signature: str) -> WebhookEvent:
        self._require_client()
        if not self.settings.STRIPE_WEBHOOK_SECRET:
            raise UnavailableError("Stripe webhook service unavailable - webhook secret not configured")

        try:
            event = stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=self.settings.STRIPE_WEBHOOK_SECRET,
            )
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise ValidationError(f"Webhook Error: {exc}")

        data_object = event["data"]["object"]
        session = None
        if event["type"].startswith("checkout.session."):
            session = session_from_stripe(data_object)
        return WebhookEvent(type=event["type"], object_id=data_object["id"], session=session)


def get_payment_gateway(settings: Settings = Depends(get_settings)) -> PaymentGateway:
    return StripeGateway(settings)
