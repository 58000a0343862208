"""
Processed Webhook Event Model

Records Stripe event ids once handled so redeliveries are acknowledged
without running the handlers again.
"""

from datetime import datetime

from sqlmodel import Field, SQLModel

from subscription_billing.infrastructure.db.models.base import utc_column


class ProcessedWebhookEvent(SQLModel, table=True):
    """Maps to the 'processed_webhook_events' table."""

    __tablename__ = "processed_webhook_events"

    event_id: str = Field(primary_key=True, max_length=255)
    event_type: str = Field(max_length=100, nullable=False)
    processed_at: datetime = utc_column(index=True)
