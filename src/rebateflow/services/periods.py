"""Calendar period helpers for monthly / quarterly / annual accrual runs."""

from __future__ import annotations

import calendar
import math
from datetime import datetime, timezone

from rebateflow.core.clock import ensure_utc
from rebateflow.models.accrual import PeriodType, period_type_for

__all__ = ["PeriodType", "day_span", "period_bounds", "period_type_for"]


def _month_end(year: int, month: int) -> datetime:
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, last_day, 23, 59, 59, tzinfo=timezone.utc)


def period_bounds(period_type: str, as_of: datetime) -> tuple[datetime, datetime]:
    """Return (start, end) of the calendar period containing ``as_of``.

    Start is midnight on the first day; end is 23:59:59 on the last day (UTC).
    """
    as_of = ensure_utc(as_of)
    year, month = as_of.year, as_of.month

    if period_type == PeriodType.QUARTERLY:
        first = (month - 1) // 3 * 3 + 1
        return datetime(year, first, 1, tzinfo=timezone.utc), _month_end(year, first + 2)
    if period_type == PeriodType.ANNUAL:
        return datetime(year, 1, 1, tzinfo=timezone.utc), _month_end(year, 12)
    if period_type == PeriodType.MONTHLY:
        return datetime(year, month, 1, tzinfo=timezone.utc), _month_end(year, month)
    raise ValueError(f"Unknown period type: {period_type!r}")


def day_span(start: datetime, end: datetime) -> int:
    """Whole days between two instants, rounded up."""
    return math.ceil((ensure_utc(end) - ensure_utc(start)).total_seconds() / 86400)
