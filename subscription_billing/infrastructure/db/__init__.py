"""
Database Infrastructure Package for Subscription Billing

Exports database utilities and session dependencies.
"""

from subscription_billing.infrastructure.db.database import (
    DatabaseManager,
    get_db_manager,
    get_session,
    get_session_context,
    init_db,
    close_db,
)

from subscription_billing.infrastructure.db.dependencies import (
    SessionDep,
    get_webhook_event_repository,
    WebhookEventRepoDep,
)


__all__ = [
    # Database management
    "DatabaseManager",
    "get_db_manager",
    "get_session",
    "get_session_context",
    "init_db",
    "close_db",
    # Dependencies
    "SessionDep",
    "get_webhook_event_repository",
    "WebhookEventRepoDep",
]
