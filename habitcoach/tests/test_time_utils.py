"""
Unit tests for habitcoach/utils/time_utils.py

Tests day-granular arithmetic:
- Day offsets and windows against a reference date
- Phase duration hints
- Timezone conversion
- Week/month boundaries and relative descriptions
"""
from datetime import date, datetime

import pytest
import pytz

from habitcoach.exceptions import InvalidDateRangeError, ValidationError
from habitcoach.utils.time_utils import (
    calculate_days_in_range,
    days_back,
    days_between,
    get_month_boundaries,
    get_relative_date_description,
    get_week_boundaries,
    in_offset_range,
    in_window,
    localize,
    parse_duration_hint,
    to_date,
)

REF = date(2025, 3, 12)


class TestDayArithmetic:
    """Tests for to_date, days_between and the window checks."""

    def test_to_date_strips_time(self):
        assert to_date(datetime(2025, 3, 12, 23, 59)) == date(2025, 3, 12)
        assert to_date(REF) is REF

    def test_days_between_mixed_types(self):
        assert days_between(date(2025, 3, 10), date(2025, 3, 7)) == 3
        assert days_between(datetime(2025, 3, 10, 1), date(2025, 3, 10)) == 0
        assert days_between(date(2025, 3, 7), date(2025, 3, 10)) == -3

    def test_days_back_same_day_is_zero(self):
        assert days_back(REF, REF) == 0

    def test_in_window_includes_reference_date(self):
        assert in_window(REF, REF, 7)
        assert in_window(REF, date(2025, 3, 6), 7)

    def test_in_window_excludes_old_and_future(self):
        assert not in_window(REF, date(2025, 3, 5), 7)
        assert not in_window(REF, date(2025, 3, 13), 7)

    def test_in_offset_range_half_open(self):
        assert in_offset_range(REF, date(2025, 3, 9), 3, 6)
        assert not in_offset_range(REF, date(2025, 3, 6), 3, 6)


class TestParseDurationHint:
    """Tests for parse_duration_hint."""

    @pytest.mark.parametrize("hint,expected", [
        ("7天", 7),
        ("14 days", 14),
        ("21", 21),
        ("  10天左右", 10),
    ])
    def test_leading_integer(self, hint, expected):
        assert parse_duration_hint(hint) == expected

    @pytest.mark.parametrize("hint", ["持续", "ongoing", "", None, "0 days"])
    def test_open_ended_falls_back_to_default(self, hint):
        assert parse_duration_hint(hint) == 7

    def test_custom_default(self):
        assert parse_duration_hint("ongoing", default=30) == 30


class TestLocalize:
    """Tests for timezone conversion."""

    def test_naive_datetime_unchanged(self):
        dt = datetime(2025, 3, 12, 22, 0)
        assert localize(dt, "Asia/Shanghai") == dt

    def test_aware_datetime_converted(self):
        dt = pytz.utc.localize(datetime(2025, 3, 12, 14, 0))
        local = localize(dt, "Asia/Shanghai")
        assert local.hour == 22

    def test_no_timezone_returns_input(self):
        dt = pytz.utc.localize(datetime(2025, 3, 12, 14, 0))
        assert localize(dt, None) is dt
        assert localize(None, "UTC") is None

    def test_unknown_timezone_raises(self):
        dt = pytz.utc.localize(datetime(2025, 3, 12, 14, 0))
        with pytest.raises(ValidationError) as exc:
            localize(dt, "Mars/Olympus")
        assert exc.value.field == 'timezone'


class TestBoundaries:
    """Tests for week and month boundaries."""

    def test_week_boundaries_monday_start(self):
        start, end = get_week_boundaries(REF)
        assert start == date(2025, 3, 10)
        assert end == date(2025, 3, 16)

    def test_week_boundaries_sunday_start(self):
        start, end = get_week_boundaries(REF, week_start=6)
        assert start == date(2025, 3, 9)
        assert end == date(2025, 3, 15)

    def test_month_boundaries_leap_february(self):
        assert get_month_boundaries(date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_month_boundaries_december(self):
        assert get_month_boundaries(date(2025, 12, 31)) == (date(2025, 12, 1), date(2025, 12, 31))

    def test_days_in_range_inclusive(self):
        assert calculate_days_in_range(date(2025, 3, 1), date(2025, 3, 7)) == 7
        assert calculate_days_in_range(REF, REF) == 1

    def test_days_in_range_rejects_reversed(self):
        with pytest.raises(InvalidDateRangeError):
            calculate_days_in_range(date(2025, 3, 7), date(2025, 3, 1))


class TestRelativeDescriptions:
    """Tests for get_relative_date_description."""

    @pytest.mark.parametrize("target,expected", [
        (date(2025, 3, 12), "Today"),
        (date(2025, 3, 11), "Yesterday"),
        (date(2025, 3, 13), "Tomorrow"),
        (date(2025, 3, 9), "3 days ago"),
        (date(2025, 3, 15), "In 3 days"),
        (date(2025, 2, 10), "Feb 10, 2025"),
    ])
    def test_descriptions(self, target, expected):
        assert get_relative_date_description(target, REF) == expected
