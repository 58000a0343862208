"""
Payments Infrastructure Module

Stripe payment processing and subscription management services.
"""

from subscription_billing.infrastructure.payments.stripe_service import (
    StripeService,
    get_stripe_service,
)

__all__ = ["StripeService", "get_stripe_service"]
