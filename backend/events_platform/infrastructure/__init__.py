"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .mailer import SmtpMailer
from .payment_gateway import (
    CheckoutSession,
    PaymentGateway,
    StripeGateway,
    WebhookEvent,
    get_payment_gateway,
)

__all__ = [
    'SmtpMailer',
    'CheckoutSession',
    'PaymentGateway',
    'StripeGateway',
    'WebhookEvent',
    'get_payment_gateway',
]
