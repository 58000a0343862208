"""
Subscription Billing - FastAPI Application

Main entry point for the billing API: Stripe webhooks, payments,
subscription status and lifecycle, admin maintenance.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from subscription_billing.config.settings import settings
from subscription_billing.infrastructure.exceptions import (
    AuthenticationError,
    BillingError,
    ExpiredError,
    ExternalProviderError,
    InvalidStateError,
    PersistenceError,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    from subscription_billing.infrastructure.db.database import close_db, init_db

    logger.info(f"Subscription Billing starting in {settings.environment} mode...")

    await init_db()
    logger.info("Database connection pool initialized")

    yield

    await close_db()
    logger.info("Database connection pool closed")
    logger.info("Subscription Billing shutting down...")


app = FastAPI(
    title="Subscription Billing",
    description="Stripe-backed subscription billing and access control",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

CLIENT_ERRORS = (
    AuthenticationError,
    ValidationError,
    InvalidStateError,
    ExpiredError,
    ExternalProviderError,
    PersistenceError,
)


async def client_error_handler(request: Request, exc: BillingError):
    """Handle errors the caller can act on."""
    logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(
        status_code=400,
        content=exc.to_dict(),
    )


for error_class in CLIENT_ERRORS:
    app.add_exception_handler(error_class, client_error_handler)


@app.exception_handler(BillingError)
async def general_error_handler(request: Request, exc: BillingError):
    """Handle configuration and all other application errors."""
    logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=500,
        content=exc.to_dict(),
    )


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "subscription-billing"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Subscription Billing API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from subscription_billing.api.routes import admin, payments, subscriptions, webhooks  # noqa: E402

app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
app.include_router(payments.router, prefix="/api", tags=["Payments"])
app.include_router(subscriptions.router, prefix="/api", tags=["Subscriptions"])
app.include_router(admin.router, prefix="/api", tags=["Admin"])
