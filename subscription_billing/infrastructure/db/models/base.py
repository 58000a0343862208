"""
Shared Columns for Billing Tables

Timestamps are timezone-aware UTC; SQLite (tests) returns them naive, so
readers pass them through ensure_utc.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from subscription_billing.domain.billing_period import utcnow


def utc_column(**kwargs) -> datetime:
    """Non-null timestamptz field defaulting to now."""
    return Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=DateTime(timezone=True),
        **kwargs,
    )


class TimestampMixin(SQLModel):
    """created_at / updated_at; updated_at also refreshes on every UPDATE."""

    created_at: datetime = utc_column()
    updated_at: datetime = utc_column(sa_column_kwargs={"onupdate": utcnow})


class UUIDMixin(SQLModel):
    """Server-independent UUID v4 primary key."""

    id: UUID = Field(default_factory=uuid4, primary_key=True, nullable=False)
