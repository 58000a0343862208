"""
Repair Billing Periods Script

Recomputes current_period_end for every subscription whose period does not
match its plan length (billing_period_accurate false or unset).

Usage:
    python scripts/repair_billing_periods.py
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from subscription_billing.config.settings import settings
from subscription_billing.infrastructure.db.database import close_db, get_session_context
from subscription_billing.infrastructure.services.subscription_service import (
    SubscriptionService,
)

logging.basicConfig(level=getattr(logging, settings.log_level.upper()))
logger = logging.getLogger(__name__)


async def main() -> int:
    """Run the repair and report how many rows changed."""
    try:
        async with get_session_context() as session:
            repaired = await SubscriptionService(session).repair_billing_periods()
    finally:
        await close_db()

    logger.info(f"Repaired {repaired} subscriptions")
    return repaired


if __name__ == "__main__":
    asyncio.run(main())
