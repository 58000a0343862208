"""
Payment API Routes

Starts payments with Stripe and confirms them server side.
"""

import logging

from fastapi import APIRouter, Depends

from subscription_billing.api.dependencies import (
    AuthenticatedUser,
    get_current_user,
    get_payment_service,
)
from subscription_billing.domain.subscription import (
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    CreatePaymentRequest,
    PaymentResponse,
)
from subscription_billing.infrastructure.services.payment_service import PaymentService


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/payments", response_model=PaymentResponse)
async def create_payment(
    request: CreatePaymentRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """
    Create a payment for a plan.

    Returns the client secret to confirm on the client. When a saved
    payment method already settled the charge, `reconciled` is true and the
    subscription is active immediately.
    """
    logger.info(
        f"Creating {'recurring' if request.auto_renew else 'one-time'} "
        f"{request.plan_type} payment for user {user.id}"
    )
    return await service.create_payment(user.id, user.email, request)


@router.post("/payments/confirm", response_model=ConfirmPaymentResponse)
async def confirm_payment(
    request: ConfirmPaymentRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Verify a client-confirmed payment with Stripe and reconcile it."""
    return await service.confirm_payment(user.id, request)
