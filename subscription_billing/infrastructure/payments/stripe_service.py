"""
Stripe Payment Service

Infrastructure service for Stripe payment processing.
Handles customers, one-time payment intents, recurring subscriptions,
saved payment methods and webhook verification.

Every Stripe failure (including timeouts) surfaces as ExternalProviderError
so the API layer can map it to a 400.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import stripe
from stripe import SignatureVerificationError, StripeError

from subscription_billing.config.settings import get_settings
from subscription_billing.domain.subscription import PlanTier, PaymentMethodSummary
from subscription_billing.infrastructure.exceptions import (
    ConfigurationError,
    ExternalProviderError,
    ValidationError,
    WebhookVerificationError,
)


logger = logging.getLogger(__name__)


def timestamp_to_datetime(value: Optional[int]) -> Optional[datetime]:
    """Convert a Stripe unix timestamp into an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def subscription_period(
    subscription: Dict[str, Any],
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Read the current period of a Stripe subscription object.

    Newer API versions only carry the period on the subscription items.
    """
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")

    if start is None or end is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            start = start or items[0].get("current_period_start")
            end = end or items[0].get("current_period_end")

    return timestamp_to_datetime(start), timestamp_to_datetime(end)


def _provider_error(operation: str, error: StripeError) -> ExternalProviderError:
    message = error.user_message or str(error)
    logger.error(f"Stripe {operation} failed: {error}")
    return ExternalProviderError(
        f"Payment provider error: {message}",
        provider="stripe",
        operation=operation,
        original_error=error,
    )


class StripeService:
    """
    Stripe payment processing service.

    Configures the SDK once (key, API version, HTTP timeout, retries) and
    wraps the calls the billing flows need.
    """

    def __init__(self):
        """Initialize Stripe with API key and transport options from settings."""
        settings = get_settings()
        self._api_key = settings.stripe_secret_key
        self._webhook_secret = settings.stripe_webhook_secret
        self._currency = settings.payment_currency

        if self._api_key:
            stripe.api_key = self._api_key
        stripe.api_version = settings.stripe_api_version
        stripe.default_http_client = stripe.RequestsClient(
            timeout=settings.stripe_timeout_seconds
        )
        stripe.max_network_retries = settings.stripe_max_network_retries

        # Keyed by tier value; PlanTier members look up the same entries
        self._price_map = settings.recurring_price_ids
        self._amount_map = settings.plan_amounts_cents

    @property
    def currency(self) -> str:
        return self._currency

    @property
    def has_webhook_secret(self) -> bool:
        return bool(self._webhook_secret)

    def get_price_id(self, tier: PlanTier) -> str:
        """Get the recurring Stripe Price ID for a tier."""
        price_id = self._price_map.get(tier)

        if not price_id:
            raise ValidationError(
                f"No recurring price configured for {tier.value}",
                details={"plan_type": tier.value},
            )

        return price_id

    def get_one_time_amount(self, tier: PlanTier) -> int:
        """Get the one-time charge for a tier, in cents."""
        amount = self._amount_map.get(tier)

        if amount is None:
            raise ValidationError(
                f"Plan tier {tier.value} cannot be purchased",
                details={"plan_type": tier.value},
            )

        return amount

    # =========================================================================
    # Customer Management
    # =========================================================================

    async def create_customer(
        self,
        user_id: str,
        email: Optional[str] = None,
    ) -> stripe.Customer:
        """
        Create a new Stripe customer.

        Args:
            user_id: Auth user ID (stored in metadata)
            email: Customer email for receipts

        Returns:
            stripe.Customer object
        """
        try:
            customer = stripe.Customer.create(
                email=email,
                metadata={"supabase_user_id": user_id},
            )
            logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
            return customer

        except StripeError as e:
            raise _provider_error("create_customer", e) from e

    async def set_default_payment_method(
        self,
        customer_id: str,
        payment_method_id: str,
    ) -> stripe.Customer:
        """Make a payment method the customer's default for invoices."""
        try:
            return stripe.Customer.modify(
                customer_id,
                invoice_settings={"default_payment_method": payment_method_id},
            )
        except StripeError as e:
            raise _provider_error("set_default_payment_method", e) from e

    async def list_payment_methods(self, customer_id: str) -> List[PaymentMethodSummary]:
        """List the customer's saved cards."""
        try:
            methods = stripe.PaymentMethod.list(customer=customer_id, type="card")
        except StripeError as e:
            raise _provider_error("list_payment_methods", e) from e

        summaries = []
        for method in methods["data"]:
            card = method.get("card") or {}
            summaries.append(
                PaymentMethodSummary(
                    id=method["id"],
                    brand=card.get("brand"),
                    last4=card.get("last4"),
                    exp_month=card.get("exp_month"),
                    exp_year=card.get("exp_year"),
                )
            )
        return summaries

    # =========================================================================
    # Payment Creation
    # =========================================================================

    async def create_subscription(
        self,
        customer_id: str,
        tier: PlanTier,
        user_id: str,
        payment_method_id: Optional[str] = None,
    ) -> stripe.Subscription:
        """
        Create an auto-renewing subscription.

        With a saved payment method the first invoice is charged right away
        and creation fails if the charge fails. Without one the subscription
        stays incomplete until the client confirms the invoice's
        PaymentIntent.

        Returns:
            stripe.Subscription with latest_invoice.payment_intent expanded
        """
        price_id = self.get_price_id(tier)

        params: Dict[str, Any] = {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "expand": ["latest_invoice.payment_intent"],
            "metadata": {"user_id": user_id, "plan_type": tier.value},
        }

        try:
            if payment_method_id:
                stripe.PaymentMethod.attach(payment_method_id, customer=customer_id)
                params["default_payment_method"] = payment_method_id
                params["payment_behavior"] = "error_if_incomplete"
            else:
                params["payment_behavior"] = "default_incomplete"
                params["payment_settings"] = {
                    "save_default_payment_method": "on_subscription"
                }

            subscription = stripe.Subscription.create(**params)
            logger.info(
                f"Created subscription {subscription.id} for user {user_id}, "
                f"tier={tier.value}, status={subscription.status}"
            )
            return subscription

        except StripeError as e:
            raise _provider_error("create_subscription", e) from e

    async def create_payment_intent(
        self,
        customer_id: str,
        tier: PlanTier,
        user_id: str,
        payment_method_id: Optional[str] = None,
    ) -> stripe.PaymentIntent:
        """
        Create a one-time payment for a single billing period.

        A saved payment method is confirmed immediately without redirects.
        """
        params: Dict[str, Any] = {
            "amount": self.get_one_time_amount(tier),
            "currency": self._currency,
            "customer": customer_id,
            "metadata": {"user_id": user_id, "plan_type": tier.value},
            "automatic_payment_methods": {"enabled": True},
        }

        if payment_method_id:
            params["payment_method"] = payment_method_id
            params["confirm"] = True
            params["automatic_payment_methods"]["allow_redirects"] = "never"

        try:
            intent = stripe.PaymentIntent.create(**params)
            logger.info(
                f"Created payment intent {intent.id} for user {user_id}, "
                f"tier={tier.value}, status={intent.status}"
            )
            return intent

        except StripeError as e:
            raise _provider_error("create_payment_intent", e) from e

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_subscription(self, subscription_id: str) -> stripe.Subscription:
        """Retrieve a subscription by ID."""
        try:
            return stripe.Subscription.retrieve(subscription_id)
        except StripeError as e:
            raise _provider_error("get_subscription", e) from e

    async def get_payment_intent(self, payment_intent_id: str) -> stripe.PaymentIntent:
        """Retrieve a payment intent by ID."""
        try:
            return stripe.PaymentIntent.retrieve(payment_intent_id)
        except StripeError as e:
            raise _provider_error("get_payment_intent", e) from e

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def cancel_subscription(
        self,
        subscription_id: str,
        cancel_at_period_end: bool = True,
    ) -> stripe.Subscription:
        """
        Cancel a subscription.

        Args:
            subscription_id: Stripe subscription ID
            cancel_at_period_end: If True, cancel at end of billing period

        Returns:
            Updated stripe.Subscription
        """
        try:
            if cancel_at_period_end:
                subscription = stripe.Subscription.modify(
                    subscription_id,
                    cancel_at_period_end=True,
                )
            else:
                subscription = stripe.Subscription.cancel(subscription_id)

            logger.info(
                f"Cancelled subscription {subscription_id}, "
                f"at_period_end={cancel_at_period_end}"
            )
            return subscription

        except StripeError as e:
            raise _provider_error("cancel_subscription", e) from e

    async def resume_subscription(
        self,
        subscription_id: str,
        payment_method_id: str,
    ) -> stripe.Subscription:
        """Undo a scheduled cancellation and switch the default card."""
        try:
            subscription = stripe.Subscription.modify(
                subscription_id,
                cancel_at_period_end=False,
                default_payment_method=payment_method_id,
            )
            logger.info(f"Resumed subscription {subscription_id}")
            return subscription

        except StripeError as e:
            raise _provider_error("resume_subscription", e) from e

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
    ) -> stripe.Event:
        """
        Verify webhook signature and construct event.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header

        Returns:
            stripe.Event if valid

        Raises:
            ConfigurationError: if no webhook secret is configured
            WebhookVerificationError: if payload or signature is invalid
        """
        if not self._webhook_secret:
            raise ConfigurationError(
                "Stripe webhook secret not configured",
                missing_keys=["STRIPE_WEBHOOK_SECRET"],
            )

        try:
            return stripe.Webhook.construct_event(
                payload,
                signature,
                self._webhook_secret,
            )

        except ValueError as e:
            raise WebhookVerificationError(f"Invalid payload: {e}") from e
        except SignatureVerificationError as e:
            raise WebhookVerificationError(f"Invalid signature: {e}") from e


# =============================================================================
# Singleton Instance (Dependency Injection Ready)
# =============================================================================

_stripe_service_instance: Optional[StripeService] = None


def get_stripe_service() -> StripeService:
    """Get or create Stripe service singleton."""
    global _stripe_service_instance

    if _stripe_service_instance is None:
        _stripe_service_instance = StripeService()

    return _stripe_service_instance
