"""
Dependency Injection Providers for Subscription Billing

FastAPI dependencies for database sessions and repositories.
"""

from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from subscription_billing.infrastructure.db.database import get_session
from subscription_billing.infrastructure.db.repositories import WebhookEventRepository


# Type alias for session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def get_webhook_event_repository(
    session: SessionDep,
) -> AsyncGenerator[WebhookEventRepository, None]:
    """
    Dependency provider for WebhookEventRepository.

    Shares the request session, so the processed marker commits together
    with the reconciled subscription.
    """
    yield WebhookEventRepository(session)


WebhookEventRepoDep = Annotated[
    WebhookEventRepository,
    Depends(get_webhook_event_repository)
]
