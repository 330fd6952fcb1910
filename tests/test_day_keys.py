"""Tests for business-timezone day keys."""

from datetime import date, datetime, timezone

import pytest

from app.utils.day_keys import (
    add_days,
    compare,
    day_of_week,
    days_between,
    next_weekday_on_or_after,
    parse_day_key,
    ranges_overlap,
    start_of_day,
    to_day_key,
    today_day_key,
)
from core.exceptions import InvalidDateFormat


class TestParsing:
    """Tests for parsing and formatting day keys."""

    def test_parse_valid_day_key(self):
        assert parse_day_key("2026-01-05") == date(2026, 1, 5)

    @pytest.mark.parametrize("value", ["2026-1-5", "05/01/2026", "2026-02-30", "", "tomorrow"])
    def test_parse_rejects_malformed_values(self, value):
        """Malformed or impossible dates raise InvalidDateFormat."""
        with pytest.raises(InvalidDateFormat) as exc_info:
            parse_day_key(value)
        assert exc_info.value.code == 422
        assert exc_info.value.error_code == "INVALID_DATE_FORMAT"

    def test_utc_timestamp_maps_to_brisbane_day(self):
        """15:00 UTC is already the next morning in Brisbane."""
        assert to_day_key(datetime(2026, 1, 4, 15, 0, tzinfo=timezone.utc)) == "2026-01-05"
        assert to_day_key(datetime(2026, 1, 4, 13, 59, tzinfo=timezone.utc)) == "2026-01-04"

    def test_naive_datetime_is_treated_as_utc(self):
        assert to_day_key(datetime(2026, 1, 4, 15, 0)) == "2026-01-05"

    def test_plain_date_and_iso_string(self):
        assert to_day_key(date(2026, 3, 2)) == "2026-03-02"
        assert to_day_key("2026-03-02") == "2026-03-02"
        assert to_day_key("2026-03-01T20:00:00+00:00") == "2026-03-02"

    def test_today_uses_injected_clock(self):
        assert today_day_key(datetime(2026, 6, 30, 23, 0, tzinfo=timezone.utc)) == "2026-07-01"

    def test_start_of_day_is_local_midnight(self):
        midnight = start_of_day("2026-01-05")
        assert midnight.hour == 0
        assert midnight.utcoffset().total_seconds() == 10 * 3600


class TestArithmetic:
    """Tests for day key arithmetic."""

    def test_add_days_crosses_month_and_year(self):
        assert add_days("2026-01-31", 1) == "2026-02-01"
        assert add_days("2026-01-01", -1) == "2025-12-31"

    def test_compare_and_days_between(self):
        assert compare("2026-01-05", "2026-01-12") == -1
        assert compare("2026-01-12", "2026-01-12") == 0
        assert compare("2026-01-19", "2026-01-12") == 1
        assert days_between("2026-01-12", "2026-01-19") == 7
        assert days_between("2026-01-19", "2026-01-12") == -7

    def test_day_keys_sort_in_date_order(self):
        keys = ["2026-02-01", "2025-12-31", "2026-01-15"]
        assert sorted(keys) == ["2025-12-31", "2026-01-15", "2026-02-01"]

    def test_weekday_helpers(self):
        assert day_of_week("2026-01-05") == 0  # Monday
        assert next_weekday_on_or_after("2026-01-05", 0) == "2026-01-05"
        assert next_weekday_on_or_after("2026-01-06", 0) == "2026-01-12"
        assert next_weekday_on_or_after("2026-01-05", 2) == "2026-01-07"

    def test_ranges_overlap_is_inclusive(self):
        assert ranges_overlap("2026-01-05", "2026-01-11", "2026-01-11", "2026-01-20")
        assert not ranges_overlap("2026-01-05", "2026-01-10", "2026-01-11", "2026-01-20")
