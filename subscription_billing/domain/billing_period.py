"""
Billing Period Calculations

Pure functions for the billing window of a plan tier:
- calculate_period_end: fixed calendar offset per tier
- format_billing_period: display text plus an accuracy flag

Calendar months follow dateutil's relativedelta, which clamps to the last
day of the target month (Jan 31 + 1 month = Feb 28/29).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from subscription_billing.domain.subscription import PlanTier


PERIOD_OFFSETS = {
    PlanTier.TRIAL: relativedelta(days=30),
    PlanTier.MONTHLY: relativedelta(months=1),
    PlanTier.SEMIANNUAL: relativedelta(months=6),
    PlanTier.ANNUAL: relativedelta(years=1),
}

# Applied to any tier outside PERIOD_OFFSETS
DEFAULT_PERIOD_OFFSET = relativedelta(days=30)

DURATION_PHRASES = {
    PlanTier.MONTHLY: "1 month",
    PlanTier.SEMIANNUAL: "6 months",
    PlanTier.ANNUAL: "1 year",
}

ACCURACY_TOLERANCE_DAYS = 2

DATE_FORMAT = "%b %d, %Y"


@dataclass(frozen=True)
class BillingPeriodText:
    """Formatted billing window and whether it matches the tier's length."""
    text: str
    accurate: bool


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _coerce_tier(plan_tier: Union[PlanTier, str, None]) -> Optional[PlanTier]:
    if isinstance(plan_tier, PlanTier):
        return plan_tier
    try:
        return PlanTier(plan_tier)
    except ValueError:
        return None


def calculate_period_end(
    plan_tier: Union[PlanTier, str, None],
    period_start: datetime,
) -> datetime:
    """
    Compute the end of a billing period.

    Args:
        plan_tier: Plan tier (unrecognized values get the 30 day default)
        period_start: Start of the period

    Returns:
        End of the period, in UTC
    """
    start = ensure_utc(period_start)
    tier = _coerce_tier(plan_tier)

    if tier is None:
        return start + DEFAULT_PERIOD_OFFSET

    return start + PERIOD_OFFSETS[tier]


def _whole_days(start: datetime, end: datetime) -> int:
    return (end - start).days


def format_billing_period(
    period_start: datetime,
    period_end: datetime,
    plan_tier: Union[PlanTier, str, None],
    now: Optional[datetime] = None,
) -> BillingPeriodText:
    """
    Build the human-readable billing period and its accuracy flag.

    The text reads "Jan 15, 2024 – Feb 15, 2024 (1 month)", prefixed with
    "Expired: " once the period has ended. The period is accurate when its
    length is within ACCURACY_TOLERANCE_DAYS of the tier's expected length.
    """
    start = ensure_utc(period_start)
    end = ensure_utc(period_end)
    current = ensure_utc(now) if now else utcnow()
    tier = _coerce_tier(plan_tier)

    actual_days = _whole_days(start, end)

    if tier == PlanTier.TRIAL:
        duration = f"{actual_days} day trial"
    elif tier in DURATION_PHRASES:
        duration = DURATION_PHRASES[tier]
    else:
        duration = f"{actual_days} days"

    prefix = "Expired: " if end <= current else ""
    text = (
        f"{prefix}{start.strftime(DATE_FORMAT)} – "
        f"{end.strftime(DATE_FORMAT)} ({duration})"
    )

    expected_days = _whole_days(start, calculate_period_end(tier, start))
    accurate = abs(actual_days - expected_days) <= ACCURACY_TOLERANCE_DAYS

    return BillingPeriodText(text=text, accurate=accurate)


IMPLICIT_TRIAL_DAYS = 30


def trial_window(now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """Start and end of the implicit trial for users without a subscription."""
    start = ensure_utc(now) if now else utcnow()
    return start, start + timedelta(days=IMPLICIT_TRIAL_DAYS)


def trial_period_text(start: datetime, end: datetime) -> str:
    """Display text of the implicit trial, e.g. "Jun 01, 2024 – Jul 01, 2024 (30 days)"."""
    return (
        f"{ensure_utc(start).strftime(DATE_FORMAT)} – "
        f"{ensure_utc(end).strftime(DATE_FORMAT)} ({IMPLICIT_TRIAL_DAYS} days)"
    )
