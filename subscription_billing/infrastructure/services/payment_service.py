"""
Payment Service

Starts payments with Stripe and reconciles the subscription as soon as the
provider reports the money as collected. Webhooks deliver the same outcome
later; reconciling twice is harmless.
"""

import logging
from typing import Any, Dict, List, Optional

from subscription_billing.config.settings import get_settings
from subscription_billing.domain.subscription import (
    PURCHASABLE_TIERS,
    PLAN_NAMES,
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    CreatePaymentRequest,
    PaymentMethodSummary,
    PaymentResponse,
    PlanTier,
    PricingResponse,
    PricingTier,
    SubscriptionStatus,
    get_plan_features,
    parse_plan_tier,
)
from subscription_billing.infrastructure.exceptions import ValidationError
from subscription_billing.infrastructure.payments.stripe_service import (
    StripeService,
    subscription_period,
)
from subscription_billing.infrastructure.services.subscription_service import (
    SubscriptionService,
)


logger = logging.getLogger(__name__)


def _purchasable_tier(value: Optional[str]) -> PlanTier:
    try:
        return parse_plan_tier(value, purchasable_only=True)
    except ValueError as e:
        raise ValidationError(str(e), details={"plan_type": value}) from e


def get_pricing() -> PricingResponse:
    """Plan catalogue with one-time prices and features."""
    settings = get_settings()
    amounts = settings.plan_amounts_cents
    recurring = settings.recurring_price_ids

    return PricingResponse(
        tiers=[
            PricingTier(
                plan_type=tier,
                name=PLAN_NAMES[tier],
                price=amounts[tier.value],
                currency=settings.payment_currency,
                features=get_plan_features(tier),
                recurring_available=bool(recurring[tier.value]),
            )
            for tier in PURCHASABLE_TIERS
        ]
    )


class PaymentService:
    """Coordinates Stripe payment flows with the subscription reconciler."""

    def __init__(self, subscriptions: SubscriptionService, payments: StripeService):
        self._subscriptions = subscriptions
        self._payments = payments

    async def _get_customer_id(self, user_id: str, email: Optional[str]) -> str:
        current = await self._subscriptions.get_current(user_id)
        if current and current.stripe_customer_id:
            return current.stripe_customer_id

        customer = await self._payments.create_customer(user_id, email)
        return customer["id"]

    @staticmethod
    def _check_owner(obj: Dict[str, Any], user_id: str) -> None:
        owner = (obj.get("metadata") or {}).get("user_id")
        if owner != user_id:
            logger.warning(f"User {user_id} tried to confirm a payment owned by {owner}")
            raise ValidationError("Payment does not belong to the current user")

    async def create_payment(
        self,
        user_id: str,
        email: Optional[str],
        request: CreatePaymentRequest,
    ) -> PaymentResponse:
        """
        Start a payment for a plan.

        auto_renew creates a Stripe subscription; otherwise a one-time
        PaymentIntent for a single period is created. When a saved payment
        method settles the charge immediately the subscription row is
        reconciled before returning.
        """
        tier = _purchasable_tier(request.plan_type)
        customer_id = await self._get_customer_id(user_id, email)

        if request.auto_renew:
            subscription = await self._payments.create_subscription(
                customer_id, tier, user_id, request.payment_method_id
            )
            invoice = subscription.get("latest_invoice") or {}
            intent = invoice.get("payment_intent") or {}

            reconciled = False
            if subscription.get("status") == "active":
                period_start, period_end = subscription_period(subscription)
                await self._subscriptions.reconcile(
                    user_id,
                    tier,
                    SubscriptionStatus.ACTIVE,
                    stripe_subscription_id=subscription["id"],
                    stripe_customer_id=customer_id,
                    period_start=period_start,
                    period_end=period_end,
                )
                reconciled = True

            return PaymentResponse(
                client_secret=intent.get("client_secret"),
                status=subscription.get("status"),
                subscription_id=subscription["id"],
                payment_intent_id=intent.get("id"),
                reconciled=reconciled,
            )

        intent = await self._payments.create_payment_intent(
            customer_id, tier, user_id, request.payment_method_id
        )

        reconciled = False
        if intent.get("status") == "succeeded":
            await self._subscriptions.reconcile(
                user_id,
                tier,
                SubscriptionStatus.ACTIVE,
                stripe_customer_id=customer_id,
            )
            reconciled = True

        return PaymentResponse(
            client_secret=intent.get("client_secret"),
            status=intent.get("status"),
            payment_intent_id=intent["id"],
            reconciled=reconciled,
        )

    async def confirm_payment(
        self,
        user_id: str,
        request: ConfirmPaymentRequest,
    ) -> ConfirmPaymentResponse:
        """
        Reconcile after the client finished a payment.

        The outcome is read back from Stripe rather than trusted from the
        client; the object must carry the caller's user_id in its metadata.
        """
        if not request.subscription_id and not request.payment_intent_id:
            raise ValidationError("payment_intent_id or subscription_id is required")

        reconciled = False

        if request.subscription_id:
            subscription = await self._payments.get_subscription(request.subscription_id)
            self._check_owner(subscription, user_id)

            if subscription.get("status") == "active":
                period_start, period_end = subscription_period(subscription)
                await self._subscriptions.reconcile(
                    user_id,
                    _purchasable_tier(subscription["metadata"].get("plan_type")),
                    SubscriptionStatus.ACTIVE,
                    stripe_subscription_id=subscription["id"],
                    stripe_customer_id=subscription.get("customer"),
                    period_start=period_start,
                    period_end=period_end,
                )
                reconciled = True
        else:
            intent = await self._payments.get_payment_intent(request.payment_intent_id)
            self._check_owner(intent, user_id)

            if intent.get("status") == "succeeded":
                await self._subscriptions.reconcile(
                    user_id,
                    _purchasable_tier(intent["metadata"].get("plan_type")),
                    SubscriptionStatus.ACTIVE,
                    stripe_customer_id=intent.get("customer"),
                )
                reconciled = True

        access = await self._subscriptions.get_access_status(user_id)
        return ConfirmPaymentResponse(reconciled=reconciled, access=access)

    async def list_payment_methods(self, user_id: str) -> List[PaymentMethodSummary]:
        """Saved cards of the user's Stripe customer; empty without one."""
        current = await self._subscriptions.get_current(user_id)
        if not current or not current.stripe_customer_id:
            return []
        return await self._payments.list_payment_methods(current.stripe_customer_id)
