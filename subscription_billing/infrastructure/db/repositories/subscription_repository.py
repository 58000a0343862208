"""
Subscription Repository

Queries over the subscriptions table. A user may own several rows; the
most recently created one is authoritative.
"""

from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from subscription_billing.domain.billing_period import ensure_utc
from subscription_billing.infrastructure.db.models.subscription import SubscriptionModel
from subscription_billing.infrastructure.db.repositories.base_repository import BaseRepository
from subscription_billing.domain.subscription import (
    Subscription,
    PlanTier,
    SubscriptionStatus,
)


class SubscriptionRepository(BaseRepository[SubscriptionModel]):
    """
    Repository for subscription data access.

    Returns ORM models so callers can mutate them inside their transaction;
    to_domain converts them for the API layer.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(SubscriptionModel, session)

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_current(
        self,
        user_id: UUID,
        for_update: bool = False,
    ) -> Optional[SubscriptionModel]:
        """
        Get the authoritative (most recently created) subscription of a user.

        Args:
            user_id: Auth user ID
            for_update: Lock the row until the transaction ends

        Returns:
            SubscriptionModel or None
        """
        statement = (
            select(SubscriptionModel)
            .where(SubscriptionModel.user_id == user_id)
            .order_by(SubscriptionModel.created_at.desc())
            .limit(1)
        )
        if for_update:
            statement = statement.with_for_update()

        return await self._first(statement)

    async def list_inaccurate(self) -> List[SubscriptionModel]:
        """Get subscriptions whose period does not match their plan length."""
        statement = select(SubscriptionModel).where(
            or_(
                SubscriptionModel.billing_period_accurate.is_(False),
                SubscriptionModel.billing_period_accurate.is_(None),
            )
        )
        return await self._all(statement)

    async def count_by_plan_and_status(self) -> List[Tuple[str, str, int]]:
        """Count subscriptions grouped by (plan_type, status)."""
        statement = (
            select(
                SubscriptionModel.plan_type,
                SubscriptionModel.status,
                func.count(),
            )
            .group_by(SubscriptionModel.plan_type, SubscriptionModel.status)
        )
        result = await self.session.execute(statement)
        return [(plan, status, count) for plan, status, count in result.all()]

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    @staticmethod
    def to_domain(model: SubscriptionModel) -> Subscription:
        """Convert database model to domain entity."""
        return Subscription(
            id=str(model.id),
            user_id=str(model.user_id),
            plan_type=PlanTier(model.plan_type),
            status=SubscriptionStatus(model.status),
            stripe_subscription_id=model.stripe_subscription_id,
            stripe_customer_id=model.stripe_customer_id,
            current_period_start=ensure_utc(model.current_period_start),
            current_period_end=ensure_utc(model.current_period_end),
            billing_period_text=model.billing_period_text,
            billing_period_accurate=model.billing_period_accurate,
            created_at=ensure_utc(model.created_at) if model.created_at else None,
            updated_at=ensure_utc(model.updated_at) if model.updated_at else None,
        )
