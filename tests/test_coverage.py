"""Tests for the coverage engine."""

import pytest

from app.services.coverage_service import (
    compute_block_pay_ahead_coverage,
    compute_coverage_end_day,
    compute_paid_through_after_template_change,
    compute_weekly_coverage,
    count_scheduled_sessions_excluding_holidays,
    limit_weekly_templates,
    next_scheduled_day_key,
)
from app.services.occurrence_service import Cancellation, HolidayWindow, ScheduleTemplate
from core.exceptions import InvalidEntitlement

MONDAY = ScheduleTemplate(template_id="mon", day_of_week=0, start_date="2026-01-01")
TUESDAY = ScheduleTemplate(template_id="tue", day_of_week=1, start_date="2026-01-01")
WEDNESDAY = ScheduleTemplate(template_id="wed", day_of_week=2, start_date="2026-01-01")


class TestCoverageEndDay:
    """Tests for walking an entitlement over the schedule."""

    def test_four_weekly_sessions(self):
        assert compute_coverage_end_day("2026-01-05", [MONDAY], 4) == "2026-01-26"

    def test_holiday_pushes_coverage_out(self):
        holidays = [HolidayWindow("2026-01-05", "2026-01-05")]
        assert compute_coverage_end_day("2026-01-05", [MONDAY], 4, holidays) == "2026-02-02"

    def test_cancellation_pushes_coverage_out(self):
        cancellations = [Cancellation("mon", "2026-01-12")]
        assert compute_coverage_end_day(
            "2026-01-05", [MONDAY], 4, cancellations=cancellations
        ) == "2026-02-02"

    def test_long_holiday_is_walked_past(self):
        holidays = [HolidayWindow("2026-01-05", "2026-03-31")]
        assert compute_coverage_end_day("2026-01-05", [MONDAY], 2, holidays) == "2026-04-13"

    @pytest.mark.parametrize("sessions", [0, -3])
    def test_non_positive_entitlement_is_rejected(self, sessions):
        with pytest.raises(InvalidEntitlement):
            compute_coverage_end_day("2026-01-05", [MONDAY], sessions)

    def test_enrolment_end_truncates_coverage(self):
        assert compute_coverage_end_day(
            "2026-01-05", [MONDAY], 10, end_day_key="2026-01-19"
        ) == "2026-01-19"

    def test_nothing_fits_before_end(self):
        assert compute_coverage_end_day(
            "2026-01-06", [MONDAY], 2, end_day_key="2026-01-10"
        ) is None


class TestWeeklyCoverage:
    """Tests for PER_WEEK purchase coverage."""

    def test_first_purchase_starts_at_enrolment(self):
        window = compute_weekly_coverage("2026-01-05", None, None, 4, 1, [MONDAY])
        assert window.coverage_start == "2026-01-05"
        assert window.coverage_end == "2026-01-26"
        assert window.entitlement_sessions == 4

    def test_repeat_purchase_resumes_after_paid_through(self):
        window = compute_weekly_coverage("2026-01-05", None, "2026-01-26", 4, 1, [MONDAY])
        assert window.coverage_start == "2026-02-02"
        assert window.coverage_end == "2026-02-23"

    def test_twice_weekly_cadence(self):
        window = compute_weekly_coverage("2026-01-05", None, None, 2, 2, [MONDAY, WEDNESDAY])
        assert window.entitlement_sessions == 4
        assert window.coverage_end == "2026-01-14"

    def test_extra_templates_are_capped_by_cadence(self):
        assert limit_weekly_templates([WEDNESDAY, MONDAY, TUESDAY], 2) == [MONDAY, TUESDAY]
        window = compute_weekly_coverage("2026-01-05", None, None, 4, 1, [WEDNESDAY, MONDAY])
        assert window.coverage_end == "2026-01-26"

    def test_zero_duration_is_rejected(self):
        with pytest.raises(InvalidEntitlement):
            compute_weekly_coverage("2026-01-05", None, None, 0, 1, [MONDAY])

    def test_no_occurrence_before_end(self):
        window = compute_weekly_coverage("2026-01-06", "2026-01-10", None, 4, 1, [MONDAY])
        assert window.coverage_start is None
        assert window.coverage_end is None


class TestSessionCounting:
    """Tests for counting and finding occurrences."""

    def test_count_excludes_holidays(self):
        holidays = [HolidayWindow("2026-01-12", "2026-01-12")]
        assert count_scheduled_sessions_excluding_holidays(
            "2026-01-05", "2026-01-26", [MONDAY], holidays
        ) == 3

    def test_count_of_inverted_window_is_zero(self):
        assert count_scheduled_sessions_excluding_holidays("2026-01-26", "2026-01-05", [MONDAY]) == 0

    def test_next_scheduled_day_skips_holiday(self):
        holidays = [HolidayWindow("2026-01-05", "2026-01-05")]
        assert next_scheduled_day_key("2026-01-03", [MONDAY], holidays) == "2026-01-12"


class TestBlockCoverage:
    """Tests for block pay-ahead coverage."""

    def test_one_block_of_ten(self):
        window = compute_block_pay_ahead_coverage(None, "2026-01-05", None, [MONDAY], 1, 10)
        assert window.credits_purchased == 10
        assert window.coverage_start == "2026-01-05"
        assert window.coverage_end == "2026-03-09"

    def test_custom_credit_count_overrides_blocks(self):
        window = compute_block_pay_ahead_coverage(
            None, "2026-01-05", None, [MONDAY], 1, 10, credits_purchased=2
        )
        assert window.coverage_end == "2026-01-12"

    def test_no_credits_no_window(self):
        window = compute_block_pay_ahead_coverage(None, "2026-01-05", None, [MONDAY], 0, 10)
        assert window.coverage_start is None
        assert window.credits_purchased == 0


class TestTemplateChange:
    """Tests for remapping paid-through across template sets."""

    def test_monday_to_wednesday(self):
        assert compute_paid_through_after_template_change(
            "2026-03-02", None, "2026-05-11", [MONDAY], [WEDNESDAY]
        ) == "2026-05-13"

    def test_monday_to_tuesday(self):
        assert compute_paid_through_after_template_change(
            "2026-03-02", None, "2026-05-11", [MONDAY], [TUESDAY]
        ) == "2026-05-12"

    def test_same_templates_new_holiday(self):
        assert compute_paid_through_after_template_change(
            "2026-01-05",
            None,
            "2026-01-26",
            [MONDAY],
            [MONDAY],
            new_holidays=[HolidayWindow("2026-01-12", "2026-01-12")],
        ) == "2026-02-02"

    def test_nothing_to_remap(self):
        assert compute_paid_through_after_template_change(
            "2026-03-02", None, None, [MONDAY], [TUESDAY]
        ) is None
        assert compute_paid_through_after_template_change(
            "2026-03-02", None, "2026-02-01", [MONDAY], [TUESDAY]
        ) is None
