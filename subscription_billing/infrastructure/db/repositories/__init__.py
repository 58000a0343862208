"""
Repository Layer for Subscription Billing

Exports all repository classes for dependency injection.
"""

from subscription_billing.infrastructure.db.repositories.base_repository import (
    BaseRepository,
)
from subscription_billing.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)
from subscription_billing.infrastructure.db.repositories.user_account_repository import (
    UserAccountRepository,
)
from subscription_billing.infrastructure.db.repositories.webhook_event_repository import (
    WebhookEventRepository,
)


__all__ = [
    # Base
    "BaseRepository",
    # Repositories
    "SubscriptionRepository",
    "UserAccountRepository",
    "WebhookEventRepository",
]
