"""
Processed Webhook Event Repository

DB-backed idempotency for Stripe deliveries (survives restarts).
"""

from sqlalchemy.ext.asyncio import AsyncSession

from subscription_billing.infrastructure.db.models.processed_webhook_event import (
    ProcessedWebhookEvent,
)
from subscription_billing.infrastructure.db.repositories.base_repository import BaseRepository


class WebhookEventRepository(BaseRepository[ProcessedWebhookEvent]):
    """Tracks which webhook events have already been handled."""

    def __init__(self, session: AsyncSession):
        super().__init__(ProcessedWebhookEvent, session)

    async def is_processed(self, event_id: str) -> bool:
        """Check if a webhook event has already been processed."""
        return await self.get_by_id(event_id) is not None

    async def mark_processed(self, event_id: str, event_type: str) -> None:
        """Record a processed webhook event."""
        if await self.is_processed(event_id):
            return
        await self.add(ProcessedWebhookEvent(event_id=event_id, event_type=event_type))
