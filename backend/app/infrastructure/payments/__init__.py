"""
Payments Infrastructure Module

Stripe, PayPal and Coinbase Commerce clients plus the translators that
turn their payloads into payment events.
"""

from app.infrastructure.payments.stripe_service import StripeService, get_stripe_service
from app.infrastructure.payments.paypal_service import PayPalService, get_paypal_service
from app.infrastructure.payments.coinbase_service import (
    CoinbaseCommerceService,
    get_coinbase_service,
)

__all__ = [
    "StripeService",
    "get_stripe_service",
    "PayPalService",
    "get_paypal_service",
    "CoinbaseCommerceService",
    "get_coinbase_service",
]
