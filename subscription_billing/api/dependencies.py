"""
API Dependencies

Request-scoped providers for routes. Callers are identified by their
Supabase access token; billing services share the request session.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Optional

import jwt
from jwt import PyJWKClient
from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from subscription_billing.config.settings import get_settings
from subscription_billing.infrastructure.db.dependencies import SessionDep
from subscription_billing.infrastructure.exceptions import (
    AuthenticationError,
    ConfigurationError,
)
from subscription_billing.infrastructure.identity.supabase_identity import (
    SupabaseIdentityProvider,
    get_identity_provider,
)
from subscription_billing.infrastructure.payments.stripe_service import (
    StripeService,
    get_stripe_service,
)
from subscription_billing.infrastructure.services.payment_service import PaymentService
from subscription_billing.infrastructure.services.subscription_service import (
    SubscriptionService,
)


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

SUPABASE_AUDIENCE = "authenticated"
REQUIRED_CLAIMS = ["exp", "sub", "iss"]

# PyJWKClient caches signing keys itself; one client per process.
_jwks_client: Optional[PyJWKClient] = None


@dataclass
class AuthenticatedUser:
    """Identity extracted from a verified access token."""
    id: str
    email: Optional[str] = None


def _get_jwks_client() -> PyJWKClient:
    global _jwks_client
    if _jwks_client is None:
        jwks_url = f"{get_settings().supabase_url}/auth/v1/.well-known/jwks.json"
        _jwks_client = PyJWKClient(jwks_url, cache_keys=True)
    return _jwks_client


def _decode(token: str, key, algorithm: str, issuer: str) -> dict:
    return jwt.decode(
        token,
        key,
        algorithms=[algorithm],
        issuer=issuer,
        audience=SUPABASE_AUDIENCE,
        options={"require": REQUIRED_CLAIMS},
    )


def _decode_with_jwks(token: str, issuer: str) -> dict:
    """Verify against the project's published ES256 keys."""
    signing_key = _get_jwks_client().get_signing_key_from_jwt(token)
    return _decode(token, signing_key.key, "ES256", issuer)


def _decode_with_secret(token: str, secret: str, issuer: str) -> dict:
    """Verify with the legacy HS256 project secret."""
    return _decode(token, secret, "HS256", issuer)


def _verify_token(token: str) -> Optional[dict]:
    """
    Verify a Supabase access token; None when no strategy accepts it.

    JWKS is tried first so rotated asymmetric keys work without config;
    projects still on the shared secret fall through to HS256.

    Raises:
        AuthenticationError: the token verified but has expired
    """
    settings = get_settings()
    issuer = f"{settings.supabase_url}/auth/v1"

    try:
        return _decode_with_jwks(token, issuer)
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token has expired", original_error=e) from e
    except (jwt.exceptions.PyJWKClientError, jwt.InvalidTokenError) as e:
        logger.debug("JWKS verification failed, trying HS256: %s", e)

    if not settings.supabase_jwt_secret:
        return None

    try:
        return _decode_with_secret(token, settings.supabase_jwt_secret, issuer)
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token has expired", original_error=e) from e
    except jwt.InvalidTokenError as e:
        logger.warning("Rejected access token: %s", e)
        return None


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthenticatedUser:
    """
    The caller behind the bearer token.

    Raises:
        AuthenticationError: token missing, expired, invalid or without ``sub``
    """
    if not credentials:
        raise AuthenticationError("Missing authorization token")

    payload = _verify_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Invalid or unverifiable token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token: missing user ID")

    return AuthenticatedUser(id=user_id, email=payload.get("email"))


async def get_current_user_id(
    user: AuthenticatedUser = Depends(get_current_user),
) -> str:
    """Authenticated user ID (``sub`` claim)."""
    return user.id


async def verify_admin_api_key(
    x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key"),
) -> None:
    """
    Guard admin routes with the ADMIN_API_KEY header.

    Raises:
        ConfigurationError: ADMIN_API_KEY is not set
        AuthenticationError: header missing or wrong
    """
    expected = get_settings().admin_api_key
    if not expected:
        raise ConfigurationError(
            "Admin API key not configured", missing_keys=["ADMIN_API_KEY"]
        )

    if not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        raise AuthenticationError("Invalid admin key")


# =============================================================================
# Service Providers
# =============================================================================

def get_payments() -> StripeService:
    return get_stripe_service()


def get_identity() -> SupabaseIdentityProvider:
    return get_identity_provider()


async def get_subscription_service(
    session: SessionDep,
    identity: SupabaseIdentityProvider = Depends(get_identity),
    payments: StripeService = Depends(get_payments),
) -> SubscriptionService:
    """Subscription service bound to the request session."""
    return SubscriptionService(session, identity=identity, payments=payments)


async def get_payment_service(
    subscriptions: SubscriptionService = Depends(get_subscription_service),
    payments: StripeService = Depends(get_payments),
) -> PaymentService:
    """Payment service sharing the request's subscription service."""
    return PaymentService(subscriptions, payments)


# =============================================================================
# Re-export DB dependencies for a single import source
# Routers should import from api.dependencies, not db.dependencies directly.
# =============================================================================
from subscription_billing.infrastructure.db.dependencies import (  # noqa: E402, F401
    WebhookEventRepoDep,
)
