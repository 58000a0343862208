"""
Subscription API Routes

Read model and lifecycle endpoints for the current user's subscription.
Mutating endpoints return the fresh access status.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends

from subscription_billing.api.dependencies import (
    get_current_user_id,
    get_payment_service,
    get_subscription_service,
)
from subscription_billing.domain.subscription import (
    AccessStatus,
    CancelRequest,
    PaymentMethodSummary,
    PricingResponse,
    ReactivateRequest,
)
from subscription_billing.infrastructure.services.payment_service import (
    PaymentService,
    get_pricing,
)
from subscription_billing.infrastructure.services.subscription_service import (
    SubscriptionService,
)


router = APIRouter()


@router.get("/subscriptions/status", response_model=AccessStatus)
async def get_subscription_status(
    user_id: str = Depends(get_current_user_id),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Get the current user's access status.

    Users without a subscription get a synthetic 30 day trial.
    """
    return await service.get_access_status(user_id)


@router.post("/subscriptions/cancel", response_model=AccessStatus)
async def cancel_subscription(
    request: Optional[CancelRequest] = None,
    user_id: str = Depends(get_current_user_id),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Cancel the active subscription; access lasts until the period ends."""
    reason = request.reason if request else None
    return await service.cancel(user_id, reason=reason)


@router.post("/subscriptions/reactivate", response_model=AccessStatus)
async def reactivate_subscription(
    request: ReactivateRequest,
    user_id: str = Depends(get_current_user_id),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Reactivate a cancelled subscription before its period ends."""
    return await service.reactivate(user_id, request.payment_method_id)


@router.get("/subscriptions/payment-methods", response_model=List[PaymentMethodSummary])
async def list_payment_methods(
    user_id: str = Depends(get_current_user_id),
    service: PaymentService = Depends(get_payment_service),
):
    """Saved cards usable for reactivation."""
    return await service.list_payment_methods(user_id)


@router.get("/subscriptions/pricing", response_model=PricingResponse)
async def get_subscription_pricing():
    """Get pricing for all purchasable plans."""
    return get_pricing()
