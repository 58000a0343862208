"""
Stripe Webhook Handler

Maps Stripe webhook events onto the subscription reconciler.
Implements idempotent event processing backed by the database (survives restarts).

Handled events:
- checkout.session.completed: Activate after a paid checkout
- payment_intent.succeeded: Activate after a one-time payment
- invoice.payment_succeeded: Renew with the provider's period
- invoice.payment_failed: Mark past_due
- customer.subscription.updated: Sync status and period
- customer.subscription.deleted: Mark cancelled

Processing failures return 400 so Stripe redelivers the event.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from subscription_billing.api.dependencies import (
    SessionDep,
    WebhookEventRepoDep,
    get_payments,
    get_subscription_service,
)
from subscription_billing.domain.subscription import (
    PlanTier,
    SubscriptionStatus,
    parse_plan_tier,
    status_from_provider,
)
from subscription_billing.infrastructure.exceptions import (
    ConfigurationError,
    ValidationError,
    WebhookVerificationError,
)
from subscription_billing.infrastructure.payments.stripe_service import (
    StripeService,
    subscription_period,
)
from subscription_billing.infrastructure.services.subscription_service import (
    SubscriptionService,
)


logger = logging.getLogger(__name__)

router = APIRouter()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_response(error: str, event_type: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": error, "event_type": event_type, "timestamp": _timestamp()},
    )


def _plan_tier(value: Optional[str]) -> PlanTier:
    try:
        return parse_plan_tier(value)
    except ValueError as e:
        raise ValidationError(str(e), details={"plan_type": value}) from e


def _metadata(obj: Dict[str, Any]) -> Dict[str, Any]:
    return obj.get("metadata") or {}


# =============================================================================
# Webhook Endpoint
# =============================================================================

@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    session: SessionDep,
    events: WebhookEventRepoDep,
    subscriptions: SubscriptionService = Depends(get_subscription_service),
    payments: StripeService = Depends(get_payments),
):
    """
    Handle Stripe webhook events.

    Verifies the signature, skips events that were already processed, and
    dispatches the rest to the matching handler.
    """
    if not payments.has_webhook_secret:
        raise ConfigurationError(
            "Stripe webhook secret not configured",
            missing_keys=["STRIPE_WEBHOOK_SECRET"],
        )

    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature:
        logger.warning("Webhook received without Stripe signature")
        return _error_response("Missing Stripe signature")

    try:
        event = payments.verify_webhook_signature(payload, signature)
    except WebhookVerificationError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        return _error_response(e.message)

    event_id = event.get("id")
    event_type = event.get("type")

    # Idempotency check
    if await events.is_processed(event_id):
        logger.info(f"Event {event_id} already processed, skipping")
        return {
            "received": True,
            "processed": False,
            "event_type": event_type,
            "timestamp": _timestamp(),
        }

    logger.info(f"Processing webhook event: {event_type} ({event_id})")

    try:
        data = event["data"]["object"]

        if event_type == "checkout.session.completed":
            await handle_checkout_completed(data, subscriptions)

        elif event_type == "payment_intent.succeeded":
            await handle_payment_intent_succeeded(data, subscriptions)

        elif event_type == "invoice.payment_succeeded":
            await handle_invoice_payment_succeeded(data, subscriptions, payments)

        elif event_type == "invoice.payment_failed":
            await handle_invoice_payment_failed(data, subscriptions, payments)

        elif event_type == "customer.subscription.updated":
            await handle_subscription_updated(data, subscriptions)

        elif event_type == "customer.subscription.deleted":
            await handle_subscription_deleted(data, subscriptions)

        else:
            logger.info(f"Unhandled event type: {event_type}")

        await events.mark_processed(event_id, event_type)

    except Exception as e:
        logger.exception(f"Error processing webhook {event_type} ({event_id}): {e}")
        await session.rollback()
        return _error_response(str(e), event_type)

    return {
        "received": True,
        "processed": True,
        "event_type": event_type,
        "timestamp": _timestamp(),
    }


# =============================================================================
# Event Handlers
# =============================================================================

async def handle_checkout_completed(
    checkout_session: Dict[str, Any],
    subscriptions: SubscriptionService,
) -> None:
    """Activate the plan bought through a paid checkout session."""
    if checkout_session.get("payment_status") != "paid":
        logger.info(
            f"Checkout {checkout_session.get('id')} not paid "
            f"({checkout_session.get('payment_status')}), ignoring"
        )
        return

    metadata = _metadata(checkout_session)
    user_id = metadata.get("user_id")
    plan_type = metadata.get("plan_type")

    if not user_id or not plan_type:
        logger.info(f"Checkout {checkout_session.get('id')} without user_id/plan_type metadata")
        return

    await subscriptions.reconcile(
        user_id,
        _plan_tier(plan_type),
        SubscriptionStatus.ACTIVE,
        stripe_subscription_id=checkout_session.get("subscription"),
        stripe_customer_id=checkout_session.get("customer"),
    )
    logger.info(f"Activated {plan_type} plan for user {user_id} from checkout")


async def handle_payment_intent_succeeded(
    intent: Dict[str, Any],
    subscriptions: SubscriptionService,
) -> None:
    """Activate the plan paid by a one-time payment."""
    metadata = _metadata(intent)
    user_id = metadata.get("user_id")
    plan_type = metadata.get("plan_type")

    if not user_id or not plan_type:
        logger.info(f"Payment intent {intent.get('id')} without user_id/plan_type metadata")
        return

    await subscriptions.reconcile(
        user_id,
        _plan_tier(plan_type),
        SubscriptionStatus.ACTIVE,
        stripe_customer_id=intent.get("customer"),
    )
    logger.info(f"Activated {plan_type} plan for user {user_id} from payment intent")


async def _reconcile_from_invoice(
    invoice: Dict[str, Any],
    subscriptions: SubscriptionService,
    payments: StripeService,
    payment_failed: bool,
) -> None:
    subscription_id = invoice.get("subscription")
    if not subscription_id:
        logger.info(f"Invoice {invoice.get('id')} is not tied to a subscription")
        return

    provider_subscription = await payments.get_subscription(subscription_id)
    metadata = _metadata(provider_subscription)
    user_id = metadata.get("user_id")

    if not user_id:
        logger.info(f"Subscription {subscription_id} has no user_id metadata")
        return

    if payment_failed or provider_subscription.get("status") != "active":
        new_status = SubscriptionStatus.PAST_DUE
    else:
        new_status = SubscriptionStatus.ACTIVE

    period_start, period_end = subscription_period(provider_subscription)
    await subscriptions.reconcile(
        user_id,
        _plan_tier(metadata.get("plan_type") or PlanTier.MONTHLY.value),
        new_status,
        stripe_subscription_id=subscription_id,
        stripe_customer_id=invoice.get("customer"),
        period_start=period_start,
        period_end=period_end,
    )

    if new_status == SubscriptionStatus.PAST_DUE:
        logger.warning(f"Payment failed for user {user_id}, set to past_due")
    else:
        logger.info(f"Renewed subscription {subscription_id} for user {user_id}")


async def handle_invoice_payment_succeeded(
    invoice: Dict[str, Any],
    subscriptions: SubscriptionService,
    payments: StripeService,
) -> None:
    """Renew with the period Stripe reports for the subscription."""
    await _reconcile_from_invoice(invoice, subscriptions, payments, payment_failed=False)


async def handle_invoice_payment_failed(
    invoice: Dict[str, Any],
    subscriptions: SubscriptionService,
    payments: StripeService,
) -> None:
    """Set the subscription to past_due."""
    await _reconcile_from_invoice(invoice, subscriptions, payments, payment_failed=True)


async def _reconcile_from_subscription(
    subscription_data: Dict[str, Any],
    subscriptions: SubscriptionService,
    new_status: SubscriptionStatus,
) -> None:
    metadata = _metadata(subscription_data)
    user_id = metadata.get("user_id")

    if not user_id:
        logger.info(f"Subscription {subscription_data.get('id')} has no user_id metadata")
        return

    period_start, period_end = subscription_period(subscription_data)
    await subscriptions.reconcile(
        user_id,
        _plan_tier(metadata.get("plan_type") or PlanTier.MONTHLY.value),
        new_status,
        stripe_subscription_id=subscription_data.get("id"),
        stripe_customer_id=subscription_data.get("customer"),
        period_start=period_start,
        period_end=period_end,
    )
    logger.info(
        f"Synced subscription {subscription_data.get('id')} for user {user_id}: "
        f"{new_status.value}"
    )


async def handle_subscription_updated(
    subscription_data: Dict[str, Any],
    subscriptions: SubscriptionService,
) -> None:
    """Sync status (including scheduled cancellation) and period."""
    new_status = status_from_provider(
        subscription_data.get("status"),
        bool(subscription_data.get("cancel_at_period_end")),
    )
    await _reconcile_from_subscription(subscription_data, subscriptions, new_status)


async def handle_subscription_deleted(
    subscription_data: Dict[str, Any],
    subscriptions: SubscriptionService,
) -> None:
    """Mark the subscription cancelled; access runs to the period end."""
    await _reconcile_from_subscription(
        subscription_data, subscriptions, SubscriptionStatus.CANCELLED
    )
