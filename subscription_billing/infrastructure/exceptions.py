"""
Custom Exceptions for Subscription Billing

Every error the service raises derives from BillingError and serializes
with to_dict(). main.py maps caller-actionable errors (authentication,
validation, lifecycle state, provider and persistence failures) to HTTP 400
and everything else, configuration included, to HTTP 500.
"""

from typing import Optional, Dict, Any


class BillingError(Exception):
    """Base exception for all subscription billing errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class AuthenticationError(BillingError):
    """Raised when a protected call has no verifiable identity."""
    pass


class ValidationError(BillingError):
    """Raised when input validation fails."""
    pass


class WebhookVerificationError(ValidationError):
    """Raised when a webhook payload or signature cannot be trusted."""
    pass


class InvalidStateError(BillingError):
    """Raised when a lifecycle precondition is violated."""

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if current_status:
            details["current_status"] = current_status
        super().__init__(message, details, original_error)


class ExpiredError(BillingError):
    """Raised when reactivation is attempted after the period ended."""
    pass


class ExternalProviderError(BillingError):
    """Raised when a payment or identity provider call fails."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if provider:
            details["provider"] = provider
        if operation:
            details["operation"] = operation
        super().__init__(message, details, original_error)


class PersistenceError(BillingError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class ConfigurationError(BillingError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)
