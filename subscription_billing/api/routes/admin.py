"""
Admin Routes for Subscription Maintenance

Protected by API key authentication (X-Admin-Key header).
"""

import logging

from fastapi import APIRouter, Depends

from subscription_billing.api.dependencies import (
    get_subscription_service,
    verify_admin_api_key,
)
from subscription_billing.domain.subscription import RepairResult, SubscriptionStats
from subscription_billing.infrastructure.services.subscription_service import (
    SubscriptionService,
)


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    dependencies=[Depends(verify_admin_api_key)],  # Protect ALL admin routes
)


@router.get("/subscriptions/stats", response_model=SubscriptionStats)
async def get_subscription_stats(
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Totals per plan and status, revenue and churn rate."""
    return await service.get_subscription_stats()


@router.post("/subscriptions/repair-periods", response_model=RepairResult)
async def repair_billing_periods(
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Recompute period ends that do not match their plan length."""
    repaired = await service.repair_billing_periods()
    logger.info(f"Admin repair fixed {repaired} billing periods")
    return RepairResult(repaired=repaired)
