"""
Time utility functions for the habit progression engine.

Day-granular arithmetic shared by every scorer. Nothing in this module
reads the system clock: "today" is always the caller's reference date.
"""
import re
from datetime import date, datetime, timedelta
from typing import Optional, Tuple, Union

import pytz
from dateutil.relativedelta import relativedelta

from habitcoach.exceptions import InvalidDateRangeError, ValidationError
from habitcoach.utils.constants import DEFAULT_PHASE_DURATION_DAYS

DateLike = Union[date, datetime]

_LEADING_INT = re.compile(r"^\s*(\d+)")


def to_date(value: DateLike) -> date:
    """Reduce a date or datetime to its calendar date."""
    if isinstance(value, datetime):
        return value.date()
    return value


def days_between(later: DateLike, earlier: DateLike) -> int:
    """
    Whole calendar days from ``earlier`` to ``later``.

    Negative when ``earlier`` is actually after ``later``.

    Examples:
        >>> days_between(date(2025, 3, 10), date(2025, 3, 7))
        3
    """
    return (to_date(later) - to_date(earlier)).days


def days_back(reference_date: DateLike, value: DateLike) -> int:
    """How many days before the reference date ``value`` falls (0 = same day)."""
    return days_between(reference_date, value)


def in_window(reference_date: DateLike, value: DateLike, days: int) -> bool:
    """
    True when ``value`` is inside the last ``days`` calendar days.

    The window includes the reference date itself, so a 7-day window
    covers offsets 0..6. Future-dated values are outside every window.
    """
    offset = days_back(reference_date, value)
    return 0 <= offset < days


def in_offset_range(reference_date: DateLike, value: DateLike, start: int, end: int) -> bool:
    """True when the day offset of ``value`` lies in [start, end)."""
    offset = days_back(reference_date, value)
    return start <= offset < end


def parse_duration_hint(hint: Optional[str], default: int = DEFAULT_PHASE_DURATION_DAYS) -> int:
    """
    Parse a phase duration hint into a day count.

    Only the leading integer counts: "7天" -> 7, "14 days" -> 14.
    Open-ended hints such as "ongoing" or "持续" fall back to ``default``.
    """
    if not hint:
        return default
    match = _LEADING_INT.match(str(hint))
    if not match:
        return default
    days = int(match.group(1))
    return days if days > 0 else default


def localize(dt: Optional[datetime], timezone_name: Optional[str]) -> Optional[datetime]:
    """
    Convert an aware datetime to the user's timezone.

    Naive datetimes are taken to be in the user's local time already and
    are returned unchanged, as is everything when no timezone is given.
    """
    if dt is None or not timezone_name:
        return dt
    if dt.tzinfo is None:
        return dt
    try:
        tz = pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        raise ValidationError('timezone', f"unknown timezone '{timezone_name}'")
    return dt.astimezone(tz)


def get_week_boundaries(target_date: date, week_start: int = 0) -> Tuple[date, date]:
    """
    Get week boundaries for a given date.

    Args:
        target_date: Date to get boundaries for
        week_start: 0=Monday, 6=Sunday
    """
    days_since_start = (target_date.weekday() - week_start) % 7
    period_start = target_date - timedelta(days=days_since_start)
    period_end = period_start + timedelta(days=6)
    return period_start, period_end


def get_month_boundaries(target_date: date) -> Tuple[date, date]:
    """First and last day of the month containing ``target_date``."""
    period_start = target_date.replace(day=1)
    period_end = period_start + relativedelta(months=1, days=-1)
    return period_start, period_end


def calculate_days_in_range(start_date: date, end_date: date) -> int:
    """
    Number of days between two dates, inclusive of both ends.

    Raises:
        InvalidDateRangeError: if start_date is after end_date
    """
    if start_date > end_date:
        raise InvalidDateRangeError(start_date, end_date)
    return (end_date - start_date).days + 1


def get_relative_date_description(target_date: date, reference_date: date) -> str:
    """
    Human-friendly description of a date relative to the reference date.

    Returns strings like "Today", "Yesterday", "3 days ago".
    """
    diff = (target_date - reference_date).days

    if diff == 0:
        return "Today"
    elif diff == 1:
        return "Tomorrow"
    elif diff == -1:
        return "Yesterday"
    elif 0 < diff <= 7:
        return f"In {diff} days"
    elif -7 <= diff < 0:
        return f"{abs(diff)} days ago"
    else:
        return target_date.strftime('%b %d, %Y')
