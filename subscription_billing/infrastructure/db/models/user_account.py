"""
User Account Database Model

Denormalized copy of the identity provider's user (email and metadata),
kept fresh by the subscription reconciler.
"""

from typing import Any, Optional
from uuid import UUID

from sqlalchemy import Column, JSON
from sqlmodel import Field

from subscription_billing.infrastructure.db.models.base import TimestampMixin


class UserAccount(TimestampMixin, table=True):
    """Maps to the 'users' table; the primary key is the auth user id."""

    __tablename__ = "users"

    id: UUID = Field(primary_key=True, nullable=False)
    email: Optional[str] = Field(default=None, index=True)
    user_metadata: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False, default=dict),
    )
