"""
Period Calendar Module

Maps calendar dates to billing-period ordinals and finds period boundaries
for biweekly (15th and month-end), monthly and annual loans. Interest is
counted in boundaries crossed, never in elapsed days.
"""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Union
import calendar

from .errors import UnsupportedPeriodType


DateLike = Union[date, datetime]

MID_MONTH_DAY = 15


class PeriodType(Enum):
    """Billing period of a loan"""
    BIWEEKLY = "biweekly"        # Quincenal: closes on the 15th and month-end
    MONTHLY = "monthly"
    ANNUAL = "annual"
    OPEN_ENDED = "open_ended"    # No fixed term, billed on the biweekly calendar

    @property
    def is_fixed_term(self) -> bool:
        return self is not PeriodType.OPEN_ENDED


def coerce_period_type(value: Union[PeriodType, str]) -> PeriodType:
    """Accept a PeriodType or its string value"""
    if isinstance(value, PeriodType):
        return value
    try:
        return PeriodType(value)
    except ValueError:
        raise UnsupportedPeriodType(f"Unsupported period type: {value!r}")


def calendar_period(period_type: Union[PeriodType, str]) -> PeriodType:
    """Calendar used to count periods; open-ended loans bill biweekly"""
    period_type = coerce_period_type(period_type)
    if period_type is PeriodType.OPEN_ENDED:
        return PeriodType.BIWEEKLY
    return period_type


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def period_ordinal(value: DateLike, period_type: Union[PeriodType, str]) -> int:
    """
    Ordinal of the billing period containing a date

    Biweekly periods are numbered two per month: days 1-14 are the first
    half, days 15 onwards the second.
    """
    day = _as_date(value)
    period_type = calendar_period(period_type)

    if period_type is PeriodType.BIWEEKLY:
        ordinal = day.year * 24 + (day.month - 1) * 2
        if day.day >= MID_MONTH_DAY:
            ordinal += 1
        return ordinal
    if period_type is PeriodType.MONTHLY:
        return day.year * 12 + (day.month - 1)
    return day.year


def periods_elapsed(from_date: DateLike, to_date: DateLike,
                    period_type: Union[PeriodType, str]) -> int:
    """Number of period boundaries crossed between two dates (0 within one period)"""
    return period_ordinal(to_date, period_type) - period_ordinal(from_date, period_type)


def next_period_boundary(value: DateLike, period_type: Union[PeriodType, str]) -> date:
    """
    Next date on which a billing period closes, strictly after the given date

    Examples (biweekly):
        2024-01-10 -> 2024-01-15
        2024-03-16 -> 2024-03-31
        2024-01-31 -> 2024-02-15
        2023-12-31 -> 2024-01-15
    """
    day = _as_date(value)
    period_type = calendar_period(period_type)
    month_end = last_day_of_month(day.year, day.month)

    if period_type is PeriodType.BIWEEKLY:
        if day.day < MID_MONTH_DAY:
            return date(day.year, day.month, MID_MONTH_DAY)
        if day.day < month_end:
            return date(day.year, day.month, month_end)
        next_month = add_months(date(day.year, day.month, 1), 1)
        return next_month.replace(day=MID_MONTH_DAY)

    if period_type is PeriodType.MONTHLY:
        if day.day < month_end:
            return date(day.year, day.month, month_end)
        next_month = add_months(date(day.year, day.month, 1), 1)
        return next_month.replace(day=last_day_of_month(next_month.year, next_month.month))

    if (day.month, day.day) < (12, 31):
        return date(day.year, 12, 31)
    return date(day.year + 1, 12, 31)


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping to the last day of a shorter month"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, last_day_of_month(year, month))
    return date(year, month, day)


def add_periods(start_date: DateLike, periods: int, period_type: Union[PeriodType, str]) -> date:
    """
    Advance a date by a number of schedule periods

    Biweekly steps are a flat 15 days; monthly and annual steps keep the
    day of month where possible.
    """
    start = _as_date(start_date)
    period_type = calendar_period(period_type)

    if period_type is PeriodType.BIWEEKLY:
        return start + timedelta(days=15 * periods)
    if period_type is PeriodType.MONTHLY:
        return add_months(start, periods)
    return add_months(start, 12 * periods)
