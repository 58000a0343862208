"""
Supabase Identity Provider

Looks up users in Supabase Auth with the service role key so their email
and metadata can be mirrored into the local users table.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Optional

from supabase import AuthApiError, Client, create_client
from supabase.lib.client_options import ClientOptions

from subscription_billing.config.settings import get_settings
from subscription_billing.infrastructure.exceptions import ExternalProviderError


logger = logging.getLogger(__name__)


@dataclass
class IdentityRecord:
    """User data returned by the identity provider."""
    email: Optional[str]
    metadata: Dict[str, Any] = field(default_factory=dict)


class SupabaseIdentityProvider:
    """Admin lookups against Supabase Auth."""

    def __init__(self, client: Optional[Client] = None):
        if client is None:
            settings = get_settings()
            options = ClientOptions(
                postgrest_client_timeout=30,
                auto_refresh_token=False,
                persist_session=False,
            )
            client = create_client(
                settings.supabase_url,
                settings.supabase_service_role_key,
                options,
            )
        self._client = client

    def _fetch_user(self, user_id: str) -> Optional[IdentityRecord]:
        try:
            response = self._client.auth.admin.get_user_by_id(user_id)
        except AuthApiError as e:
            if e.status == 404:
                logger.info(f"Identity provider has no user {user_id}")
                return None
            raise ExternalProviderError(
                f"Failed to look up user: {e.message}",
                provider="supabase",
                operation="get_user_by_id",
                original_error=e,
            ) from e

        user = response.user if response else None
        if user is None:
            return None

        return IdentityRecord(
            email=user.email,
            metadata=dict(user.user_metadata or {}),
        )

    async def get_user(self, user_id: str) -> Optional[IdentityRecord]:
        """
        Fetch a user's email and metadata.

        The supabase client is synchronous, so the call runs in a worker
        thread to keep the event loop free.

        Returns:
            IdentityRecord, or None when the user does not exist

        Raises:
            ExternalProviderError: on any other provider failure
        """
        return await asyncio.to_thread(self._fetch_user, user_id)


@lru_cache
def get_identity_provider() -> SupabaseIdentityProvider:
    """Get cached identity provider instance."""
    return SupabaseIdentityProvider()
