"""
Reporting periods and their date ranges.

Weekly periods run Monday to Sunday. A range covers its last day up to
23:59:59.999 (millisecond precision).
"""

import calendar
import datetime
from enum import Enum
from typing import Optional, Union

from worktrack.domain.errors import ValidationError
from worktrack.domain.models import DateRange

END_OF_DAY = datetime.time(23, 59, 59, 999000)


class Period(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


def parse_period(value: Union[str, Period]) -> Period:
    """Return the Period for `value` or raise ValidationError."""
    try:
        return Period(value)
    except ValueError:
        valid = " | ".join(p.value for p in Period)
        raise ValidationError(f"Invalid period {value!r}. Must be: {valid}") from None


def parse_reference_date(value: Optional[Union[str, datetime.date, datetime.datetime]]) -> datetime.datetime:
    """Accept None (now), a date, a datetime or an ISO string."""
    if value is None:
        return datetime.datetime.now()
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time.min)
    try:
        return datetime.datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid reference date {value!r}") from None


def _full_days(start: datetime.date, end: datetime.date) -> DateRange:
    return DateRange(
        start=datetime.datetime.combine(start, datetime.time.min),
        end=datetime.datetime.combine(end, END_OF_DAY),
    )


def _month_bounds(year: int, month: int) -> DateRange:
    _, last_day = calendar.monthrange(year, month)
    return _full_days(datetime.date(year, month, 1), datetime.date(year, month, last_day))


def date_range(period: Union[str, Period], reference: datetime.datetime) -> DateRange:
    """Resolve the range of `period` that contains `reference`."""
    period = parse_period(period)
    day = reference.date() if isinstance(reference, datetime.datetime) else reference

    if period is Period.DAILY:
        return _full_days(day, day)
    if period is Period.WEEKLY:
        monday = day - datetime.timedelta(days=day.weekday())
        return _full_days(monday, monday + datetime.timedelta(days=6))
    if period is Period.MONTHLY:
        return _month_bounds(day.year, day.month)
    return _full_days(datetime.date(day.year, 1, 1), datetime.date(day.year, 12, 31))


def previous_range(period: Union[str, Period], current: DateRange) -> DateRange:
    """The range of the same granularity immediately preceding `current`."""
    period = parse_period(period)
    start = current.start.date()

    if period is Period.DAILY:
        prev = start - datetime.timedelta(days=1)
        return _full_days(prev, prev)
    if period is Period.WEEKLY:
        prev = start - datetime.timedelta(days=7)
        return _full_days(prev, prev + datetime.timedelta(days=6))
    if period is Period.MONTHLY:
        # Last day of the previous month, whatever its length
        last_of_prev = start.replace(day=1) - datetime.timedelta(days=1)
        return _month_bounds(last_of_prev.year, last_of_prev.month)
    return _full_days(datetime.date(start.year - 1, 1, 1), datetime.date(start.year - 1, 12, 31))


def start_of_day(moment: datetime.datetime) -> datetime.datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week_sunday(moment: datetime.datetime) -> datetime.datetime:
    """Most recent Sunday 00:00 at or before `moment`."""
    # weekday(): Monday=0 .. Sunday=6
    days_since_sunday = (moment.weekday() + 1) % 7
    return start_of_day(moment) - datetime.timedelta(days=days_since_sunday)
