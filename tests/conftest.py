"""
Test configuration and fixtures for Subscription Billing.

Provides shared fixtures for unit and integration tests: an in-memory
SQLite database, dependency overrides for the FastAPI app, mocked Stripe
and JWT helpers.
"""

import os

# Settings are read at import time; give every required key a test value.
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-that-is-long-enough-for-hs256")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_123")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("ENVIRONMENT", "development")

import time
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import jwt
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from subscription_billing.config.settings import get_settings
from subscription_billing.infrastructure.db import models  # noqa: F401
from subscription_billing.infrastructure.payments.stripe_service import StripeService


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory configured like the application's."""
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A database session for direct service/repository tests."""
    async with session_factory() as session:
        yield session


# =============================================================================
# Auth Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def offline_jwks():
    """Skip the JWKS network fetch so tokens verify with the HS256 secret."""
    with patch(
        "subscription_billing.api.dependencies._decode_with_jwks",
        side_effect=jwt.exceptions.PyJWKClientError("JWKS unavailable in tests"),
    ):
        yield


@pytest.fixture
def mock_user_id() -> str:
    return str(uuid4())


def make_token(user_id: str, email: str = "user@example.com", expires_in: int = 3600) -> str:
    """Sign a Supabase-style access token with the test secret."""
    settings = get_settings()
    payload = {
        "sub": user_id,
        "email": email,
        "aud": "authenticated",
        "iss": f"{settings.supabase_url}/auth/v1",
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(payload, settings.supabase_jwt_secret, algorithm="HS256")


@pytest.fixture
def auth_headers(mock_user_id) -> dict:
    return {"Authorization": f"Bearer {make_token(mock_user_id)}"}


@pytest.fixture
def admin_headers() -> dict:
    return {"X-Admin-Key": get_settings().admin_api_key}


# =============================================================================
# Mock Fixtures
# =============================================================================

@pytest.fixture
def mock_stripe_service():
    """Mock for StripeService with async methods."""
    mock = MagicMock(spec=StripeService)
    mock.has_webhook_secret = True
    mock.currency = "usd"
    mock.create_customer = AsyncMock(return_value={"id": "cus_test"})
    mock.create_subscription = AsyncMock()
    mock.create_payment_intent = AsyncMock()
    mock.get_subscription = AsyncMock()
    mock.get_payment_intent = AsyncMock()
    mock.cancel_subscription = AsyncMock()
    mock.resume_subscription = AsyncMock()
    mock.set_default_payment_method = AsyncMock()
    mock.list_payment_methods = AsyncMock(return_value=[])
    return mock


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app(session_factory, mock_stripe_service):
    """FastAPI application wired to the test database and mocked providers."""
    from subscription_billing.api.dependencies import get_identity, get_payments
    from subscription_billing.infrastructure.db.database import get_session
    from subscription_billing.main import app

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_identity] = lambda: None
    app.dependency_overrides[get_payments] = lambda: mock_stripe_service

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Get synchronous test client."""
    return TestClient(app, raise_server_exceptions=False)


@pytest_asyncio.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Get async test client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
