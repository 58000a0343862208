"""
Application Settings for Subscription Billing

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from functools import lru_cache
from typing import Optional
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Stripe price IDs are only required for auto-renewing plans;
    one-time payments are charged from the *_AMOUNT_CENTS values.
    """

    # Supabase Configuration
    supabase_url: str
    supabase_service_role_key: str
    supabase_jwt_secret: Optional[str] = None

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # CORS Configuration
    allowed_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    # Stripe Configuration
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_api_version: str = "2023-10-16"
    stripe_timeout_seconds: int = 20
    stripe_max_network_retries: int = 0

    # Recurring price IDs (auto-renew plans)
    stripe_monthly_price_id: Optional[str] = None
    stripe_semiannual_price_id: Optional[str] = None
    stripe_annual_price_id: Optional[str] = None

    # One-time plan amounts in cents
    monthly_amount_cents: int = 299
    semiannual_amount_cents: int = 999
    annual_amount_cents: int = 1999
    payment_currency: str = "usd"

    # Admin
    admin_api_key: Optional[str] = None

    # Database Configuration (SQLModel/SQLAlchemy)
    supabase_password: Optional[str] = None
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_lock_timeout_ms: int = 5000
    database_echo: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("payment_currency")
    @classmethod
    def normalize_currency(cls, value: str) -> str:
        """Stripe expects lowercase ISO 4217 codes."""
        value = value.strip().lower()
        if len(value) != 3 or not value.isalpha():
            raise ValueError(f"PAYMENT_CURRENCY must be a 3-letter ISO code, got {value!r}")
        return value

    @field_validator("monthly_amount_cents", "semiannual_amount_cents", "annual_amount_cents")
    @classmethod
    def validate_amount(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Plan amounts must be positive (in cents)")
        return value

    @model_validator(mode="after")
    def validate_stripe_keys(self) -> "Settings":
        """Require the Stripe secret key in production; timeouts must be positive."""
        if self.is_production and not self.stripe_secret_key:
            raise ValueError("STRIPE_SECRET_KEY required when ENVIRONMENT=production")

        if self.stripe_timeout_seconds <= 0:
            raise ValueError("STRIPE_TIMEOUT_SECONDS must be positive")

        if self.stripe_max_network_retries < 0:
            raise ValueError("STRIPE_MAX_NETWORK_RETRIES cannot be negative")

        return self

    @property
    def recurring_price_ids(self) -> dict[str, Optional[str]]:
        """Stripe price ID per purchasable plan tier value."""
        return {
            "monthly": self.stripe_monthly_price_id,
            "semiannual": self.stripe_semiannual_price_id,
            "annual": self.stripe_annual_price_id,
        }

    @property
    def plan_amounts_cents(self) -> dict[str, int]:
        """One-time price per purchasable plan tier value."""
        return {
            "monthly": self.monthly_amount_cents,
            "semiannual": self.semiannual_amount_cents,
            "annual": self.annual_amount_cents,
        }

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
