"""
Integration Tests for Payment API

Create and confirm payments end to end; Stripe is mocked, the database is real.
"""

from datetime import datetime, timezone

import pytest

from subscription_billing.domain.subscription import PlanTier, SubscriptionStatus
from subscription_billing.infrastructure.services.subscription_service import (
    SubscriptionService,
)


async def current_subscription(session_factory, user_id: str):
    async with session_factory() as session:
        return await SubscriptionService(session).get_current(user_id)


class TestCreatePayment:

    @pytest.mark.asyncio
    async def test_requires_authentication(self, async_client):
        response = await async_client.post("/api/payments", json={"plan_type": "monthly"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_rejects_trial_plan(self, async_client, auth_headers, mock_stripe_service):
        response = await async_client.post(
            "/api/payments", json={"plan_type": "trial"}, headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"
        mock_stripe_service.create_payment_intent.assert_not_called()

    @pytest.mark.asyncio
    async def test_one_time_payment_pending(
        self, async_client, auth_headers, session_factory, mock_user_id, mock_stripe_service
    ):
        mock_stripe_service.create_payment_intent.return_value = {
            "id": "pi_1",
            "status": "requires_payment_method",
            "client_secret": "pi_1_secret",
        }

        response = await async_client.post(
            "/api/payments", json={"plan_type": "semiannual"}, headers=auth_headers
        )

        assert response.status_code == 200
        body = response.json()
        assert body["client_secret"] == "pi_1_secret"
        assert body["reconciled"] is False
        mock_stripe_service.create_customer.assert_awaited_once_with(mock_user_id, "user@example.com")
        assert await current_subscription(session_factory, mock_user_id) is None

    @pytest.mark.asyncio
    async def test_saved_card_settles_immediately(
        self, async_client, auth_headers, session_factory, mock_user_id, mock_stripe_service
    ):
        mock_stripe_service.create_payment_intent.return_value = {
            "id": "pi_1",
            "status": "succeeded",
            "client_secret": "pi_1_secret",
        }

        response = await async_client.post(
            "/api/payments",
            json={"plan_type": "annual", "payment_method_id": "pm_1"},
            headers=auth_headers,
        )

        assert response.json()["reconciled"] is True
        subscription = await current_subscription(session_factory, mock_user_id)
        assert subscription.plan_type == PlanTier.ANNUAL
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.stripe_customer_id == "cus_test"

    @pytest.mark.asyncio
    async def test_recurring_payment(
        self, async_client, auth_headers, session_factory, mock_user_id, mock_stripe_service
    ):
        mock_stripe_service.create_subscription.return_value = {
            "id": "sub_1",
            "status": "active",
            "current_period_start": 1704067200,
            "current_period_end": 1706745600,
            "latest_invoice": {"payment_intent": {"id": "pi_1", "client_secret": "pi_1_secret"}},
        }

        response = await async_client.post(
            "/api/payments",
            json={"plan_type": "monthly", "auto_renew": True, "payment_method_id": "pm_1"},
            headers=auth_headers,
        )

        body = response.json()
        assert body["subscription_id"] == "sub_1"
        assert body["payment_intent_id"] == "pi_1"
        assert body["reconciled"] is True

        subscription = await current_subscription(session_factory, mock_user_id)
        assert subscription.stripe_subscription_id == "sub_1"
        assert subscription.current_period_end == datetime(2024, 2, 1, tzinfo=timezone.utc)


class TestConfirmPayment:

    @pytest.mark.asyncio
    async def test_requires_an_id(self, async_client, auth_headers):
        response = await async_client.post("/api/payments/confirm", json={}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    @pytest.mark.asyncio
    async def test_confirm_succeeded_intent(
        self, async_client, auth_headers, session_factory, mock_user_id, mock_stripe_service
    ):
        mock_stripe_service.get_payment_intent.return_value = {
            "id": "pi_1",
            "status": "succeeded",
            "customer": "cus_1",
            "metadata": {"user_id": mock_user_id, "plan_type": "monthly"},
        }

        response = await async_client.post(
            "/api/payments/confirm", json={"payment_intent_id": "pi_1"}, headers=auth_headers
        )

        assert response.status_code == 200
        body = response.json()
        assert body["reconciled"] is True
        assert body["access"]["plan_type"] == "monthly"
        assert body["access"]["has_access"] is True

        subscription = await current_subscription(session_factory, mock_user_id)
        assert subscription.stripe_customer_id == "cus_1"

    @pytest.mark.asyncio
    async def test_confirm_foreign_payment(self, async_client, auth_headers, mock_stripe_service):
        mock_stripe_service.get_payment_intent.return_value = {
            "id": "pi_1",
            "status": "succeeded",
            "metadata": {"user_id": "someone-else", "plan_type": "monthly"},
        }

        response = await async_client.post(
            "/api/payments/confirm", json={"payment_intent_id": "pi_1"}, headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Payment does not belong to the current user"

    @pytest.mark.asyncio
    async def test_confirm_incomplete_subscription(
        self, async_client, auth_headers, session_factory, mock_user_id, mock_stripe_service
    ):
        mock_stripe_service.get_subscription.return_value = {
            "id": "sub_1",
            "status": "incomplete",
            "metadata": {"user_id": mock_user_id, "plan_type": "annual"},
        }

        response = await async_client.post(
            "/api/payments/confirm", json={"subscription_id": "sub_1"}, headers=auth_headers
        )

        body = response.json()
        assert body["reconciled"] is False
        assert body["access"]["plan_type"] == "trial"
        assert await current_subscription(session_factory, mock_user_id) is None
