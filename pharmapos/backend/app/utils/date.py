"""
Date utility functions

All timestamps are naive UTC, matching the DateTime columns.
"""
from datetime import datetime, timezone
from typing import Tuple

from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    """Current UTC time as a naive datetime"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def add_months(moment: datetime, months: int) -> datetime:
    """
    Shift a datetime by whole calendar months

    Day-of-month is clamped to the target month's length (Jan 31 + 1 month = Feb 28/29).
    """
    return moment + relativedelta(months=months)


def month_window(now: datetime) -> Tuple[datetime, datetime]:
    """
    Calendar month containing `now`

    Returns:
        (month_start, next_month_start), a half-open interval
    """
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return month_start, add_months(month_start, 1)
