"""
Unit tests for the Supabase identity provider.
"""

from unittest.mock import MagicMock, patch

import pytest
from supabase import AuthApiError

from subscription_billing.infrastructure.exceptions import ExternalProviderError
from subscription_billing.infrastructure.identity.supabase_identity import (
    IdentityRecord,
    SupabaseIdentityProvider,
    get_identity_provider,
)


USER_ID = "00000000-0000-0000-0000-000000000001"


@pytest.fixture
def client():
    return MagicMock()


class TestSupabaseIdentityProvider:

    @pytest.mark.asyncio
    async def test_returns_email_and_metadata(self, client):
        user = MagicMock(email="a@example.com", user_metadata={"full_name": "A"})
        client.auth.admin.get_user_by_id.return_value = MagicMock(user=user)

        record = await SupabaseIdentityProvider(client).get_user(USER_ID)

        assert record == IdentityRecord(email="a@example.com", metadata={"full_name": "A"})
        client.auth.admin.get_user_by_id.assert_called_once_with(USER_ID)

    @pytest.mark.asyncio
    async def test_missing_metadata_becomes_empty_dict(self, client):
        user = MagicMock(email=None, user_metadata=None)
        client.auth.admin.get_user_by_id.return_value = MagicMock(user=user)

        record = await SupabaseIdentityProvider(client).get_user(USER_ID)

        assert record.metadata == {}

    @pytest.mark.asyncio
    async def test_unknown_user(self, client):
        client.auth.admin.get_user_by_id.side_effect = AuthApiError(
            "User not found", 404, "user_not_found"
        )

        assert await SupabaseIdentityProvider(client).get_user(USER_ID) is None

    @pytest.mark.asyncio
    async def test_provider_failure(self, client):
        client.auth.admin.get_user_by_id.side_effect = AuthApiError(
            "Internal error", 500, "unexpected_failure"
        )

        with pytest.raises(ExternalProviderError) as exc_info:
            await SupabaseIdentityProvider(client).get_user(USER_ID)

        assert exc_info.value.details["provider"] == "supabase"


class TestIdentityProviderFactory:

    def test_cached_instance(self):
        get_identity_provider.cache_clear()

        with patch(
            "subscription_billing.infrastructure.identity.supabase_identity.create_client"
        ) as create:
            create.return_value = MagicMock()
            first = get_identity_provider()
            second = get_identity_provider()

        assert first is second
        create.assert_called_once()
        get_identity_provider.cache_clear()
