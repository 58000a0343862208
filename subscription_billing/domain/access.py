"""
Access Status Resolution

Derives what a user may do right now from their latest subscription.
Cancelled users keep access until the paid period ends; an active status
always grants access.
"""

from datetime import datetime
from typing import Optional

from subscription_billing.domain.billing_period import (
    IMPLICIT_TRIAL_DAYS,
    ensure_utc,
    format_billing_period,
    trial_period_text,
    trial_window,
    utcnow,
)
from subscription_billing.domain.subscription import (
    AccessStatus,
    PlanTier,
    Subscription,
    SubscriptionStatus,
    get_plan_features,
)


def trial_access_status(now: Optional[datetime] = None) -> AccessStatus:
    """Synthetic status for a user who has never had a subscription."""
    start, end = trial_window(now)

    return AccessStatus(
        has_access=True,
        plan_type=PlanTier.TRIAL,
        status=SubscriptionStatus.ACTIVE,
        current_period_start=start,
        current_period_end=end,
        days_remaining=IMPLICIT_TRIAL_DAYS,
        is_expired=False,
        is_cancelled=False,
        billing_period_text=trial_period_text(start, end),
        features=get_plan_features(PlanTier.TRIAL),
        created_at=start,
        updated_at=start,
    )


def resolve_access_status(
    subscription: Optional[Subscription],
    now: Optional[datetime] = None,
) -> AccessStatus:
    """
    Compute the access status for a subscription.

    Args:
        subscription: Latest subscription of the user, or None
        now: Reference time (defaults to the current UTC time)

    Returns:
        AccessStatus; the trial fallback when subscription is None
    """
    current = ensure_utc(now) if now else utcnow()

    if subscription is None:
        return trial_access_status(current)

    period_start = ensure_utc(subscription.current_period_start)
    period_end = ensure_utc(subscription.current_period_end)

    is_expired = period_end <= current
    is_cancelled = subscription.status == SubscriptionStatus.CANCELLED
    days_remaining = max(0, (period_end - current).days)
    has_access = (
        subscription.status == SubscriptionStatus.ACTIVE
        or (is_cancelled and not is_expired)
    )

    summary = format_billing_period(
        period_start, period_end, subscription.plan_type, now=current
    )

    return AccessStatus(
        has_access=has_access,
        subscription_id=subscription.id,
        plan_type=subscription.plan_type,
        status=subscription.status,
        stripe_subscription_id=subscription.stripe_subscription_id,
        stripe_customer_id=subscription.stripe_customer_id,
        current_period_start=period_start,
        current_period_end=period_end,
        days_remaining=days_remaining,
        is_expired=is_expired,
        is_cancelled=is_cancelled,
        billing_period_text=summary.text,
        features=get_plan_features(subscription.plan_type),
        created_at=subscription.created_at,
        updated_at=subscription.updated_at,
    )
