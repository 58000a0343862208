"""
Subscription Domain Models

Domain models for subscription management following Clean Architecture.
Enums, DTOs, and domain entities for the subscription bounded context.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class PlanTier(str, Enum):
    """Subscription plan tiers."""
    TRIAL = "trial"
    MONTHLY = "monthly"
    SEMIANNUAL = "semiannual"
    ANNUAL = "annual"


PURCHASABLE_TIERS = (PlanTier.MONTHLY, PlanTier.SEMIANNUAL, PlanTier.ANNUAL)


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""
    ACTIVE = "active"
    CANCELLED = "cancelled"
    PAST_DUE = "past_due"
    # Never written by the reconciler; expiry is derived from the period end
    EXPIRED = "expired"


# =============================================================================
# Domain Entities
# =============================================================================

class Subscription(BaseModel):
    """Core subscription domain entity."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    user_id: str
    plan_type: PlanTier = PlanTier.TRIAL
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    stripe_subscription_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    current_period_start: datetime
    current_period_end: datetime
    billing_period_text: Optional[str] = None
    billing_period_accurate: Optional[bool] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PlanFeatures(BaseModel):
    """Feature entitlements of a plan. -1 means unlimited."""
    max_customers: int
    max_branches: int
    advanced_analytics: bool
    priority_support: bool
    custom_branding: bool
    api_access: bool


class AccessStatus(BaseModel):
    """Derived answer to whether a user can use the product right now."""
    has_access: bool
    subscription_id: Optional[str] = None
    plan_type: PlanTier
    status: SubscriptionStatus
    stripe_subscription_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    current_period_start: datetime
    current_period_end: datetime
    days_remaining: int
    is_expired: bool
    is_cancelled: bool
    billing_period_text: str
    features: PlanFeatures
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =============================================================================
# Request/Response DTOs
# =============================================================================

class CreatePaymentRequest(BaseModel):
    """Request DTO for starting a payment."""
    plan_type: str = Field(..., description="Plan tier to purchase")
    auto_renew: bool = Field(
        default=False,
        description="Create a recurring subscription instead of a one-time payment"
    )
    payment_method_id: Optional[str] = Field(
        default=None,
        description="Saved payment method to charge immediately"
    )


class PaymentResponse(BaseModel):
    """Response DTO with a client-confirmable payment handle."""
    client_secret: Optional[str] = None
    status: str
    subscription_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    reconciled: bool = Field(
        default=False,
        description="Whether the subscription record was already updated"
    )


class ConfirmPaymentRequest(BaseModel):
    """Request DTO for server-verified payment confirmation."""
    payment_intent_id: Optional[str] = None
    subscription_id: Optional[str] = None


class ConfirmPaymentResponse(BaseModel):
    """Response DTO for payment confirmation."""
    reconciled: bool
    access: AccessStatus


class CancelRequest(BaseModel):
    """Request DTO for cancelling a subscription."""
    reason: Optional[str] = Field(default=None, max_length=500)


class ReactivateRequest(BaseModel):
    """Request DTO for reactivating a cancelled subscription."""
    payment_method_id: str = Field(..., min_length=1)


class PaymentMethodSummary(BaseModel):
    """Card details safe to show in the billing page."""
    id: str
    brand: Optional[str] = None
    last4: Optional[str] = None
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None


class PricingTier(BaseModel):
    """Pricing information for a single plan."""
    plan_type: PlanTier
    name: str
    price: int  # In cents
    currency: str
    features: PlanFeatures
    recurring_available: bool = False


class PricingResponse(BaseModel):
    """Response DTO for pricing information."""
    tiers: list[PricingTier]


class SubscriptionStats(BaseModel):
    """Aggregate subscription numbers for the admin dashboard."""
    total: int
    active: int
    trial: int
    paid: int
    revenue: float
    churn_rate: float


class RepairResult(BaseModel):
    """Response from the billing period repair endpoint."""
    repaired: int


# =============================================================================
# Plan Configuration (Business Logic)
# =============================================================================

PLAN_NAMES = {
    PlanTier.TRIAL: "Free Trial",
    PlanTier.MONTHLY: "Monthly",
    PlanTier.SEMIANNUAL: "6 Months",
    PlanTier.ANNUAL: "Annual",
}

PLAN_FEATURES = {
    PlanTier.TRIAL: PlanFeatures(
        max_customers=100,
        max_branches=1,
        advanced_analytics=False,
        priority_support=False,
        custom_branding=False,
        api_access=False,
    ),
    PlanTier.MONTHLY: PlanFeatures(
        max_customers=-1,
        max_branches=-1,
        advanced_analytics=True,
        priority_support=True,
        custom_branding=False,
        api_access=False,
    ),
    PlanTier.SEMIANNUAL: PlanFeatures(
        max_customers=-1,
        max_branches=-1,
        advanced_analytics=True,
        priority_support=True,
        custom_branding=True,
        api_access=True,
    ),
    PlanTier.ANNUAL: PlanFeatures(
        max_customers=-1,
        max_branches=-1,
        advanced_analytics=True,
        priority_support=True,
        custom_branding=True,
        api_access=True,
    ),
}


def get_plan_features(plan_type: PlanTier) -> PlanFeatures:
    """Get the feature set for a plan, falling back to trial features."""
    return PLAN_FEATURES.get(plan_type, PLAN_FEATURES[PlanTier.TRIAL])


def parse_plan_tier(value: Optional[str], purchasable_only: bool = False) -> PlanTier:
    """
    Parse a boundary string into a PlanTier.

    Raises:
        ValueError: if the value is not a known (or purchasable) tier
    """
    try:
        tier = PlanTier(value)
    except ValueError:
        raise ValueError(f"Unsupported plan tier: {value!r}") from None

    if purchasable_only and tier not in PURCHASABLE_TIERS:
        raise ValueError(f"Plan tier {tier.value!r} cannot be purchased")

    return tier


def status_from_provider(
    provider_status: Optional[str],
    cancel_at_period_end: bool = False,
) -> SubscriptionStatus:
    """
    Map a Stripe subscription status onto the local status.

    past_due wins over a scheduled cancellation; any other provider status
    counts as active.
    """
    if provider_status == "past_due":
        return SubscriptionStatus.PAST_DUE
    if cancel_at_period_end or provider_status == "canceled":
        return SubscriptionStatus.CANCELLED
    return SubscriptionStatus.ACTIVE
