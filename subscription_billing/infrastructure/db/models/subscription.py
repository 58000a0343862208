"""
Subscription Database Model

SQLModel table for subscription data persistence.

billing_period_text and billing_period_accurate are derived columns: a
mapper hook recomputes them from (current_period_start, current_period_end,
plan_type) in the same flush as every insert and update.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime, event
from sqlmodel import Field

from subscription_billing.domain.billing_period import format_billing_period
from subscription_billing.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class SubscriptionModel(UUIDMixin, TimestampMixin, table=True):
    """
    Subscription table for storing user subscription data.

    Maps to the 'subscriptions' table in PostgreSQL. The schema allows several
    rows per user; the most recently created one is authoritative.
    """

    __tablename__ = "subscriptions"

    user_id: UUID = Field(index=True, nullable=False)

    # Subscription details
    plan_type: str = Field(default="trial", index=True)
    status: str = Field(default="active", index=True)

    # Stripe IDs
    stripe_subscription_id: Optional[str] = Field(default=None, index=True)
    stripe_customer_id: Optional[str] = Field(default=None, index=True)

    # Billing period dates
    current_period_start: datetime = Field(
        sa_type=DateTime(timezone=True), nullable=False
    )
    current_period_end: datetime = Field(
        sa_type=DateTime(timezone=True), nullable=False, index=True
    )

    # Derived display fields
    billing_period_text: Optional[str] = Field(default=None)
    billing_period_accurate: Optional[bool] = Field(default=None, index=True)


@event.listens_for(SubscriptionModel, "before_insert")
@event.listens_for(SubscriptionModel, "before_update")
def refresh_billing_period(mapper, connection, target: SubscriptionModel) -> None:
    """Recompute the derived billing period columns before the row is written."""
    summary = format_billing_period(
        target.current_period_start,
        target.current_period_end,
        target.plan_type,
    )
    target.billing_period_text = summary.text
    target.billing_period_accurate = summary.accurate
