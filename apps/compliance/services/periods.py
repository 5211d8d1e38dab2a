"""Reporting period helpers (monthly, quarterly, annual)."""

import calendar
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

from django.utils import timezone

from apps.compliance.models import PeriodType

from .exceptions import InvalidPeriodError


def period_range(period_type: str, year: int, number: Optional[int] = None) -> Tuple[date, date]:
    """
    First and last day of a reporting period.

    Args:
        period_type: monthly, quarterly or annual
        year: Calendar year
        number: Month (1-12) or quarter (1-4); ignored for annual

    Raises:
        InvalidPeriodError: If the type or number is out of range
    """
    try:
        period_type = PeriodType(period_type)
    except ValueError:
        raise InvalidPeriodError(f"Unknown period type: {period_type}")

    if period_type == PeriodType.ANNUAL:
        return date(year, 1, 1), date(year, 12, 31)

    if period_type == PeriodType.MONTHLY:
        month = number or 1
        if not 1 <= month <= 12:
            raise InvalidPeriodError(f"Month must be 1-12, got {month}")
        return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])

    quarter = number or 1
    if not 1 <= quarter <= 4:
        raise InvalidPeriodError(f"Quarter must be 1-4, got {quarter}")
    first_month = (quarter - 1) * 3 + 1
    last_month = first_month + 2
    return date(year, first_month, 1), date(year, last_month, calendar.monthrange(year, last_month)[1])


def period_label(period_type: str, year: int, number: Optional[int] = None) -> str:
    """'March 2026', 'Q1 2026' or '2026'."""
    period_range(period_type, year, number)
    if period_type == PeriodType.MONTHLY:
        return f"{calendar.month_name[number or 1]} {year}"
    if period_type == PeriodType.QUARTERLY:
        return f"Q{number or 1} {year}"
    return str(year)


def period_bounds(period_start: date, period_end: date) -> Tuple[datetime, datetime]:
    """
    Aware datetimes ``[start, end)`` covering both dates in full.

    Raises:
        InvalidPeriodError: If the period ends before it starts
    """
    if period_end < period_start:
        raise InvalidPeriodError(f"Period ends ({period_end}) before it starts ({period_start})")
    start = timezone.make_aware(datetime.combine(period_start, time.min))
    end = timezone.make_aware(datetime.combine(period_end + timedelta(days=1), time.min))
    return start, end
