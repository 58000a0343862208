"""
Integration Tests for Webhooks (Stripe)

Verifies:
- Signature verification failure (400) and unconfigured secret (500)
- Event mapping onto the subscription table
- Idempotency (prevent double processing)
- Processing failures return 400 so Stripe retries
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from subscription_billing.domain.subscription import PlanTier, SubscriptionStatus
from subscription_billing.infrastructure.db.repositories import WebhookEventRepository
from subscription_billing.infrastructure.exceptions import (
    ExternalProviderError,
    WebhookVerificationError,
)
from subscription_billing.infrastructure.services.subscription_service import (
    SubscriptionService,
)


PERIOD_START = 1704067200  # 2024-01-01
PERIOD_END = 1706745600  # 2024-02-01
HEADERS = {"stripe-signature": "t=1,v1=valid"}


def make_event(event_type: str, obj: dict, event_id: str = None) -> dict:
    return {
        "id": event_id or f"evt_{uuid4().hex}",
        "type": event_type,
        "data": {"object": obj},
    }


async def post_event(async_client, mock_stripe_service, event: dict):
    mock_stripe_service.verify_webhook_signature.return_value = event
    return await async_client.post("/api/webhooks/stripe", content=b"{}", headers=HEADERS)


async def current_subscription(session_factory, user_id: str):
    async with session_factory() as session:
        return await SubscriptionService(session).get_current(user_id)


@pytest.fixture
def user_id() -> str:
    return str(uuid4())


class TestWebhookVerification:

    @pytest.mark.asyncio
    async def test_missing_signature(self, async_client):
        response = await async_client.post("/api/webhooks/stripe", content=b"{}")

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Missing Stripe signature"
        assert "timestamp" in body

    @pytest.mark.asyncio
    async def test_invalid_signature(self, async_client, mock_stripe_service):
        mock_stripe_service.verify_webhook_signature.side_effect = WebhookVerificationError(
            "Invalid signature: no match"
        )

        response = await async_client.post("/api/webhooks/stripe", content=b"{}", headers=HEADERS)

        assert response.status_code == 400
        assert "Invalid signature" in response.json()["error"]

    @pytest.mark.asyncio
    async def test_unconfigured_secret(self, async_client, mock_stripe_service):
        mock_stripe_service.has_webhook_secret = False

        response = await async_client.post("/api/webhooks/stripe", content=b"{}", headers=HEADERS)

        assert response.status_code == 500
        assert response.json()["error"] == "ConfigurationError"


class TestCheckoutAndPaymentEvents:

    @pytest.mark.asyncio
    async def test_paid_checkout_activates_plan(self, async_client, mock_stripe_service, session_factory, user_id):
        event = make_event(
            "checkout.session.completed",
            {
                "id": "cs_1",
                "payment_status": "paid",
                "customer": "cus_1",
                "subscription": "sub_1",
                "metadata": {"user_id": user_id, "plan_type": "annual"},
            },
        )

        response = await post_event(async_client, mock_stripe_service, event)

        assert response.status_code == 200
        body = response.json()
        assert body["received"] is True
        assert body["processed"] is True
        assert body["event_type"] == "checkout.session.completed"

        subscription = await current_subscription(session_factory, user_id)
        assert subscription.plan_type == PlanTier.ANNUAL
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.stripe_customer_id == "cus_1"
        assert subscription.stripe_subscription_id == "sub_1"

    @pytest.mark.asyncio
    async def test_unpaid_checkout_is_ignored(self, async_client, mock_stripe_service, session_factory, user_id):
        event = make_event(
            "checkout.session.completed",
            {
                "id": "cs_1",
                "payment_status": "unpaid",
                "metadata": {"user_id": user_id, "plan_type": "annual"},
            },
        )

        response = await post_event(async_client, mock_stripe_service, event)

        assert response.status_code == 200
        assert await current_subscription(session_factory, user_id) is None

    @pytest.mark.asyncio
    async def test_payment_intent_succeeded(self, async_client, mock_stripe_service, session_factory, user_id):
        event = make_event(
            "payment_intent.succeeded",
            {
                "id": "pi_1",
                "customer": "cus_1",
                "metadata": {"user_id": user_id, "plan_type": "semiannual"},
            },
        )

        response = await post_event(async_client, mock_stripe_service, event)

        assert response.status_code == 200
        subscription = await current_subscription(session_factory, user_id)
        assert subscription.plan_type == PlanTier.SEMIANNUAL
        assert subscription.stripe_subscription_id is None
        assert subscription.billing_period_accurate is True

    @pytest.mark.asyncio
    async def test_missing_user_metadata_is_ignored(self, async_client, mock_stripe_service):
        event = make_event("payment_intent.succeeded", {"id": "pi_1", "metadata": {}})

        response = await post_event(async_client, mock_stripe_service, event)

        assert response.status_code == 200
        assert response.json()["processed"] is True

    @pytest.mark.asyncio
    async def test_invalid_plan_type_fails(self, async_client, mock_stripe_service, session_factory, user_id):
        event = make_event(
            "payment_intent.succeeded",
            {"id": "pi_1", "metadata": {"user_id": user_id, "plan_type": "lifetime"}},
        )

        response = await post_event(async_client, mock_stripe_service, event)

        assert response.status_code == 400
        assert response.json()["event_type"] == "payment_intent.succeeded"
        assert await current_subscription(session_factory, user_id) is None

    @pytest.mark.asyncio
    async def test_unknown_event_type(self, async_client, mock_stripe_service):
        event = make_event("customer.created", {"id": "cus_1"})

        response = await post_event(async_client, mock_stripe_service, event)

        assert response.status_code == 200
        assert response.json()["event_type"] == "customer.created"


class TestInvoiceEvents:

    @pytest.mark.asyncio
    async def test_invoice_paid_uses_provider_period(self, async_client, mock_stripe_service, session_factory, user_id):
        mock_stripe_service.get_subscription.return_value = {
            "id": "sub_1",
            "status": "active",
            "current_period_start": PERIOD_START,
            "current_period_end": PERIOD_END,
            "metadata": {"user_id": user_id},
        }
        event = make_event(
            "invoice.payment_succeeded",
            {"id": "in_1", "subscription": "sub_1", "customer": "cus_1"},
        )

        response = await post_event(async_client, mock_stripe_service, event)

        assert response.status_code == 200
        mock_stripe_service.get_subscription.assert_awaited_once_with("sub_1")
        subscription = await current_subscription(session_factory, user_id)
        assert subscription.plan_type == PlanTier.MONTHLY
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.current_period_start == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert subscription.current_period_end == datetime(2024, 2, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_invoice_paid_for_inactive_subscription_is_past_due(
        self, async_client, mock_stripe_service, session_factory, user_id
    ):
        mock_stripe_service.get_subscription.return_value = {
            "id": "sub_1",
            "status": "incomplete",
            "current_period_start": PERIOD_START,
            "current_period_end": PERIOD_END,
            "metadata": {"user_id": user_id, "plan_type": "annual"},
        }
        event = make_event("invoice.payment_succeeded", {"id": "in_1", "subscription": "sub_1"})

        await post_event(async_client, mock_stripe_service, event)

        subscription = await current_subscription(session_factory, user_id)
        assert subscription.status == SubscriptionStatus.PAST_DUE

    @pytest.mark.asyncio
    async def test_invoice_failed_sets_past_due(self, async_client, mock_stripe_service, session_factory, user_id):
        mock_stripe_service.get_subscription.return_value = {
            "id": "sub_1",
            "status": "active",
            "current_period_start": PERIOD_START,
            "current_period_end": PERIOD_END,
            "metadata": {"user_id": user_id, "plan_type": "monthly"},
        }
        event = make_event("invoice.payment_failed", {"id": "in_1", "subscription": "sub_1"})

        response = await post_event(async_client, mock_stripe_service, event)

        assert response.status_code == 200
        subscription = await current_subscription(session_factory, user_id)
        assert subscription.status == SubscriptionStatus.PAST_DUE

    @pytest.mark.asyncio
    async def test_invoice_without_subscription_is_ignored(self, async_client, mock_stripe_service):
        event = make_event("invoice.payment_succeeded", {"id": "in_1"})

        response = await post_event(async_client, mock_stripe_service, event)

        assert response.status_code == 200
        mock_stripe_service.get_subscription.assert_not_called()

    @pytest.mark.asyncio
    async def test_provider_failure_returns_400_and_is_retried(
        self, async_client, mock_stripe_service, session_factory
    ):
        mock_stripe_service.get_subscription.side_effect = ExternalProviderError("timeout")
        event = make_event("invoice.payment_succeeded", {"id": "in_1", "subscription": "sub_1"})

        response = await post_event(async_client, mock_stripe_service, event)

        assert response.status_code == 400
        assert response.json()["event_type"] == "invoice.payment_succeeded"
        async with session_factory() as session:
            assert await WebhookEventRepository(session).is_processed(event["id"]) is False


class TestSubscriptionEvents:

    @pytest.mark.asyncio
    async def test_deleted_marks_cancelled(self, async_client, mock_stripe_service, session_factory, user_id):
        async with session_factory() as session:
            await SubscriptionService(session).reconcile(
                user_id, PlanTier.MONTHLY, SubscriptionStatus.ACTIVE, stripe_subscription_id="sub_1"
            )

        event = make_event(
            "customer.subscription.deleted",
            {
                "id": "sub_1",
                "status": "canceled",
                "customer": "cus_1",
                "current_period_start": PERIOD_START,
                "current_period_end": PERIOD_END,
                "metadata": {"user_id": user_id},
            },
        )

        response = await post_event(async_client, mock_stripe_service, event)

        assert response.status_code == 200
        async with session_factory() as session:
            access = await SubscriptionService(session).get_access_status(user_id)
        assert access.is_cancelled is True
        assert access.status == SubscriptionStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_updated_with_scheduled_cancellation(
        self, async_client, mock_stripe_service, session_factory, user_id
    ):
        event = make_event(
            "customer.subscription.updated",
            {
                "id": "sub_1",
                "status": "active",
                "cancel_at_period_end": True,
                "current_period_start": PERIOD_START,
                "current_period_end": PERIOD_END,
                "metadata": {"user_id": user_id, "plan_type": "monthly"},
            },
        )

        await post_event(async_client, mock_stripe_service, event)

        subscription = await current_subscription(session_factory, user_id)
        assert subscription.status == SubscriptionStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_updated_past_due(self, async_client, mock_stripe_service, session_factory, user_id):
        event = make_event(
            "customer.subscription.updated",
            {
                "id": "sub_1",
                "status": "past_due",
                "current_period_start": PERIOD_START,
                "current_period_end": PERIOD_END,
                "metadata": {"user_id": user_id},
            },
        )

        await post_event(async_client, mock_stripe_service, event)

        subscription = await current_subscription(session_factory, user_id)
        assert subscription.status == SubscriptionStatus.PAST_DUE


class TestIdempotency:

    @pytest.mark.asyncio
    async def test_duplicate_event_is_not_processed_twice(
        self, async_client, mock_stripe_service, session_factory, user_id
    ):
        mock_stripe_service.get_subscription.return_value = {
            "id": "sub_1",
            "status": "active",
            "current_period_start": PERIOD_START,
            "current_period_end": PERIOD_END,
            "metadata": {"user_id": user_id},
        }
        event = make_event(
            "invoice.payment_succeeded", {"id": "in_1", "subscription": "sub_1"}, "evt_duplicate"
        )

        first = await post_event(async_client, mock_stripe_service, event)
        second = await post_event(async_client, mock_stripe_service, event)

        assert first.json()["processed"] is True
        assert second.status_code == 200
        assert second.json()["processed"] is False
        assert second.json()["received"] is True
        mock_stripe_service.get_subscription.assert_awaited_once()
