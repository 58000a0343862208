"""
Subscription Service

Single write path for subscription rows:
- reconcile: idempotent upsert driven by payments and webhooks
- cancel / reactivate: guarded lifecycle transitions
- repair_billing_periods and get_subscription_stats for admins

Every write locks the user's current row (SELECT ... FOR UPDATE) so
concurrent webhooks and API calls serialize per user.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from subscription_billing.config.settings import get_settings
from subscription_billing.domain.access import resolve_access_status
from subscription_billing.domain.billing_period import (
    calculate_period_end,
    ensure_utc,
    utcnow,
)
from subscription_billing.domain.subscription import (
    PURCHASABLE_TIERS,
    AccessStatus,
    PlanTier,
    Subscription,
    SubscriptionStats,
    SubscriptionStatus,
)
from subscription_billing.infrastructure.db.models.subscription import SubscriptionModel
from subscription_billing.infrastructure.db.repositories import (
    SubscriptionRepository,
    UserAccountRepository,
)
from subscription_billing.infrastructure.exceptions import (
    BillingError,
    ExpiredError,
    InvalidStateError,
    PersistenceError,
    ValidationError,
)
from subscription_billing.infrastructure.identity.supabase_identity import (
    SupabaseIdentityProvider,
)
from subscription_billing.infrastructure.payments.stripe_service import StripeService


logger = logging.getLogger(__name__)


def parse_user_id(user_id: Union[str, UUID]) -> UUID:
    """Parse a user ID, raising ValidationError for malformed values."""
    if isinstance(user_id, UUID):
        return user_id
    try:
        return UUID(str(user_id))
    except ValueError:
        raise ValidationError(
            "Invalid user ID", details={"user_id": str(user_id)}
        ) from None


def parse_plan_tier(plan_tier: Union[PlanTier, str]) -> PlanTier:
    """Parse a plan tier, raising ValidationError for unknown values."""
    try:
        return PlanTier(plan_tier)
    except ValueError:
        raise ValidationError(
            "Unsupported plan tier", details={"plan_type": str(plan_tier)}
        ) from None


def parse_status(status: Union[SubscriptionStatus, str]) -> SubscriptionStatus:
    """Parse a subscription status, raising ValidationError for unknown values."""
    try:
        return SubscriptionStatus(status)
    except ValueError:
        raise ValidationError(
            "Unsupported subscription status", details={"status": str(status)}
        ) from None


class SubscriptionService:
    """
    Service for subscription persistence and lifecycle rules.

    The identity provider and payment service are optional so the
    persistence rules can run without external calls.
    """

    def __init__(
        self,
        session: AsyncSession,
        identity: Optional[SupabaseIdentityProvider] = None,
        payments: Optional[StripeService] = None,
    ):
        self._session = session
        self._subscriptions = SubscriptionRepository(session)
        self._users = UserAccountRepository(session)
        self._identity = identity
        self._payments = payments

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[None]:
        """Commit on success; roll back (releasing the row lock) on failure."""
        try:
            yield
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.error(f"Subscription {operation} failed: {e}")
            raise PersistenceError(
                f"Failed to {operation} subscription",
                operation=operation,
                table="subscriptions",
                original_error=e,
            ) from e
        except BillingError:
            await self._session.rollback()
            raise

    # =========================================================================
    # Reconciler
    # =========================================================================

    async def reconcile(
        self,
        user_id: Union[str, UUID],
        plan_tier: Union[PlanTier, str],
        status: Union[SubscriptionStatus, str],
        stripe_subscription_id: Optional[str] = None,
        stripe_customer_id: Optional[str] = None,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
    ) -> Subscription:
        """
        Create or update the user's current subscription.

        Safe to call repeatedly with the same arguments; the last write wins.
        Provider IDs are only replaced by non-null values.

        Args:
            user_id: Auth user ID
            plan_tier: Plan the user now holds
            status: Status the subscription is in now
            stripe_subscription_id: Recurring subscription ID, if any
            stripe_customer_id: Stripe customer ID, if known
            period_start: Start of the paid period (defaults to now)
            period_end: End of the paid period (defaults to the tier length)

        Returns:
            The reconciled Subscription
        """
        user_uuid = parse_user_id(user_id)
        tier = parse_plan_tier(plan_tier)
        new_status = parse_status(status)

        start = ensure_utc(period_start) if period_start else utcnow()
        end = ensure_utc(period_end) if period_end else calculate_period_end(tier, start)
        if end <= start:
            logger.warning(
                f"Provider period for user {user_uuid} ends before it starts; "
                f"using the {tier.value} plan length"
            )
            end = calculate_period_end(tier, start)

        # Looked up before taking the row lock
        identity = None
        if self._identity is not None:
            identity = await self._identity.get_user(str(user_uuid))

        async with self._transaction("reconcile"):
            model = await self._subscriptions.get_current(user_uuid, for_update=True)

            if model is None:
                model = await self._subscriptions.add(
                    SubscriptionModel(
                        user_id=user_uuid,
                        plan_type=tier.value,
                        status=new_status.value,
                        stripe_subscription_id=stripe_subscription_id,
                        stripe_customer_id=stripe_customer_id,
                        current_period_start=start,
                        current_period_end=end,
                    )
                )
                logger.info(
                    f"Created {tier.value} subscription for user {user_uuid} "
                    f"({new_status.value})"
                )
            else:
                model.plan_type = tier.value
                model.status = new_status.value
                model.current_period_start = start
                model.current_period_end = end
                if stripe_subscription_id:
                    model.stripe_subscription_id = stripe_subscription_id
                if stripe_customer_id:
                    model.stripe_customer_id = stripe_customer_id
                model.updated_at = utcnow()
                await self._session.flush()
                logger.info(
                    f"Updated subscription {model.id} for user {user_uuid}: "
                    f"{tier.value} ({new_status.value})"
                )

            if identity is not None:
                await self._users.upsert(user_uuid, identity.email, identity.metadata)

        return self._subscriptions.to_domain(model)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_current(self, user_id: Union[str, UUID]) -> Optional[Subscription]:
        """Get the user's authoritative subscription, if any."""
        model = await self._subscriptions.get_current(parse_user_id(user_id))
        return self._subscriptions.to_domain(model) if model else None

    async def get_access_status(
        self,
        user_id: Union[str, UUID],
        now: Optional[datetime] = None,
    ) -> AccessStatus:
        """Resolve what the user may do right now."""
        return resolve_access_status(await self.get_current(user_id), now)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def _get_locked(self, user_uuid: UUID) -> SubscriptionModel:
        model = await self._subscriptions.get_current(user_uuid, for_update=True)
        if model is None:
            raise InvalidStateError("No subscription found for user")
        return model

    async def cancel(
        self,
        user_id: Union[str, UUID],
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AccessStatus:
        """
        Cancel an active subscription.

        Access continues until the current period ends. A recurring Stripe
        subscription is set to cancel at period end so later webhooks agree.

        Raises:
            InvalidStateError: if there is no subscription or it is not active
        """
        user_uuid = parse_user_id(user_id)

        async with self._transaction("cancel"):
            model = await self._get_locked(user_uuid)

            if model.status != SubscriptionStatus.ACTIVE.value:
                raise InvalidStateError(
                    "Subscription is not active", current_status=model.status
                )

            if model.stripe_subscription_id and self._payments is not None:
                await self._payments.cancel_subscription(
                    model.stripe_subscription_id, cancel_at_period_end=True
                )

            model.status = SubscriptionStatus.CANCELLED.value
            model.updated_at = utcnow()
            await self._session.flush()

        logger.info(f"Cancelled subscription {model.id} for user {user_uuid}, reason={reason!r}")
        return resolve_access_status(self._subscriptions.to_domain(model), now)

    async def reactivate(
        self,
        user_id: Union[str, UUID],
        payment_method_id: str,
        now: Optional[datetime] = None,
    ) -> AccessStatus:
        """
        Reactivate a cancelled subscription whose period has not ended.

        The billing period is left unchanged.

        Raises:
            InvalidStateError: if there is no subscription or it is not cancelled
            ExpiredError: if the period has already ended
        """
        user_uuid = parse_user_id(user_id)
        current = ensure_utc(now) if now else utcnow()

        async with self._transaction("reactivate"):
            model = await self._get_locked(user_uuid)

            if model.status != SubscriptionStatus.CANCELLED.value:
                raise InvalidStateError(
                    "Subscription is not cancelled", current_status=model.status
                )

            period_end = ensure_utc(model.current_period_end)
            if period_end <= current:
                raise ExpiredError(
                    "Subscription period has ended; purchase a new plan",
                    details={"current_period_end": period_end.isoformat()},
                )

            if self._payments is not None:
                if model.stripe_subscription_id:
                    await self._payments.resume_subscription(
                        model.stripe_subscription_id, payment_method_id
                    )
                elif model.stripe_customer_id:
                    await self._payments.set_default_payment_method(
                        model.stripe_customer_id, payment_method_id
                    )

            model.status = SubscriptionStatus.ACTIVE.value
            model.updated_at = utcnow()
            await self._session.flush()

        logger.info(f"Reactivated subscription {model.id} for user {user_uuid}")
        return resolve_access_status(self._subscriptions.to_domain(model), current)

    # =========================================================================
    # Admin
    # =========================================================================

    async def repair_billing_periods(self) -> int:
        """
        Recompute period ends that do not match the plan length.

        Returns:
            Number of rows repaired
        """
        async with self._transaction("repair"):
            models = await self._subscriptions.list_inaccurate()
            for model in models:
                model.current_period_end = calculate_period_end(
                    model.plan_type, model.current_period_start
                )
                model.updated_at = utcnow()
            await self._session.flush()

        logger.info(f"Repaired billing periods of {len(models)} subscriptions")
        return len(models)

    async def get_subscription_stats(self) -> SubscriptionStats:
        """
        Aggregate totals, revenue and churn over all subscription rows.

        paid counts active paid-tier rows only; revenue also includes
        cancelled and expired rows that were paid for.
        """
        prices = get_settings().plan_amounts_cents
        paid_tiers = {tier.value for tier in PURCHASABLE_TIERS}
        revenue_statuses = {
            SubscriptionStatus.ACTIVE.value,
            SubscriptionStatus.EXPIRED.value,
            SubscriptionStatus.CANCELLED.value,
        }

        total = active = trial = paid = cancelled = 0
        revenue_cents = 0

        for plan_type, status, count in await self._subscriptions.count_by_plan_and_status():
            total += count
            if status == SubscriptionStatus.ACTIVE.value:
                active += count
            if status == SubscriptionStatus.CANCELLED.value:
                cancelled += count
            if plan_type == PlanTier.TRIAL.value:
                trial += count
            elif plan_type in paid_tiers:
                if status == SubscriptionStatus.ACTIVE.value:
                    paid += count
                if status in revenue_statuses:
                    revenue_cents += prices[plan_type] * count

        churn_rate = round(cancelled / total * 100, 2) if total else 0.0

        return SubscriptionStats(
            total=total,
            active=active,
            trial=trial,
            paid=paid,
            revenue=revenue_cents / 100,
            churn_rate=churn_rate,
        )
