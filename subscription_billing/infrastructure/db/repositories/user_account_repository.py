"""
User Account Repository

Keeps the local users table in step with the identity provider.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from subscription_billing.infrastructure.db.models.user_account import UserAccount
from subscription_billing.infrastructure.db.repositories.base_repository import BaseRepository


class UserAccountRepository(BaseRepository[UserAccount]):
    """Repository for the denormalized user profile."""

    def __init__(self, session: AsyncSession):
        super().__init__(UserAccount, session)

    async def upsert(
        self,
        user_id: UUID,
        email: Optional[str],
        user_metadata: Optional[Dict[str, Any]] = None,
    ) -> UserAccount:
        """
        Create the user row or refresh its email and metadata.

        Args:
            user_id: Auth user ID (primary key)
            email: Current email from the identity provider
            user_metadata: Provider metadata; empty dict when absent

        Returns:
            The created or updated UserAccount
        """
        account = await self.get_by_id(user_id)

        if account is None:
            return await self.add(
                UserAccount(id=user_id, email=email, user_metadata=user_metadata or {})
            )

        account.email = email
        account.user_metadata = user_metadata or {}
        account.updated_at = datetime.now(timezone.utc)
        await self.session.flush()
        return account
