"""
SQLModel ORM Models for Subscription Billing

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from subscription_billing.infrastructure.db.models.base import (
    TimestampMixin,
    UUIDMixin,
)
from subscription_billing.infrastructure.db.models.subscription import SubscriptionModel
from subscription_billing.infrastructure.db.models.user_account import UserAccount
from subscription_billing.infrastructure.db.models.processed_webhook_event import (
    ProcessedWebhookEvent,
)


__all__ = [
    # Base
    "TimestampMixin",
    "UUIDMixin",
    # Tables
    "SubscriptionModel",
    "UserAccount",
    "ProcessedWebhookEvent",
]
