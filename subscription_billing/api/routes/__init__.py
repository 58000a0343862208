# API Routes Module
from subscription_billing.api.routes import (
    admin,
    payments,
    subscriptions,
    webhooks,
)

__all__ = [
    "admin",
    "payments",
    "subscriptions",
    "webhooks",
]
