"""Tests for occurrence scheduling."""

from app.services.occurrence_service import (
    Cancellation,
    HolidayWindow,
    Occurrence,
    ScheduleTemplate,
    build_skip_predicate,
    consume_occurrences_for_credits,
    resolve_occurrence_horizon,
    schedule_occurrences,
    sessions_per_week,
)

MONDAY = ScheduleTemplate(template_id="mon", day_of_week=0, start_date="2026-01-01")
WEDNESDAY = ScheduleTemplate(template_id="wed", day_of_week=2, start_date="2026-01-01")
NO_DAY = ScheduleTemplate(template_id="tbc", day_of_week=None)


class TestScheduleOccurrences:
    """Tests for generating occurrences."""

    def test_merges_templates_in_date_order(self):
        schedule = schedule_occurrences([WEDNESDAY, MONDAY], "2026-01-05", "2026-01-14")
        assert list(schedule) == [
            Occurrence("2026-01-05", "mon"),
            Occurrence("2026-01-07", "wed"),
            Occurrence("2026-01-12", "mon"),
            Occurrence("2026-01-14", "wed"),
        ]

    def test_end_day_caps_horizon(self):
        schedule = schedule_occurrences([MONDAY], "2026-01-05", "2026-03-01", end_day_key="2026-01-19")
        assert schedule.day_keys() == ["2026-01-05", "2026-01-12", "2026-01-19"]

    def test_template_bounds_are_respected(self):
        late_start = ScheduleTemplate("late", 0, start_date="2026-01-12", end_date="2026-01-19")
        schedule = schedule_occurrences([late_start], "2026-01-01", "2026-02-28")
        assert schedule.day_keys() == ["2026-01-12", "2026-01-19"]

    def test_template_without_weekday_generates_nothing(self):
        assert schedule_occurrences([NO_DAY], "2026-01-01", "2026-12-31").day_keys() == []
        assert sessions_per_week([MONDAY, WEDNESDAY, NO_DAY]) == 2

    def test_schedule_is_restartable(self):
        schedule = schedule_occurrences([MONDAY], "2026-01-05", "2026-01-26")
        assert schedule.take(2) == schedule.take(2)
        assert len(schedule.day_keys()) == 4

    def test_skip_predicate_filters_holidays_and_cancellations(self):
        skip = build_skip_predicate(
            [MONDAY, WEDNESDAY],
            holidays=[HolidayWindow("2026-01-05", "2026-01-05")],
            cancellations=[Cancellation("wed", "2026-01-14")],
        )
        schedule = schedule_occurrences([MONDAY, WEDNESDAY], "2026-01-05", "2026-01-14", skip=skip)
        assert schedule.day_keys() == ["2026-01-07", "2026-01-12"]

    def test_scoped_holiday_only_skips_its_template(self):
        skip = build_skip_predicate(
            [MONDAY, WEDNESDAY],
            holidays=[HolidayWindow("2026-01-05", "2026-01-11", template_id="wed")],
        )
        schedule = schedule_occurrences([MONDAY, WEDNESDAY], "2026-01-05", "2026-01-11", skip=skip)
        assert schedule.day_keys() == ["2026-01-05"]


class TestHorizonAndCredits:
    """Tests for horizon sizing and credit walks."""

    def test_horizon_covers_weeks_plus_buffer(self):
        # 4 sessions at once a week, plus the 4 week buffer
        assert resolve_occurrence_horizon("2026-01-05", 4, 1) == "2026-03-02"

    def test_horizon_is_capped_at_end(self):
        assert resolve_occurrence_horizon("2026-01-05", 4, 1, end_day_key="2026-01-31") == "2026-01-31"

    def test_consume_credits_reports_paid_through_and_next_due(self):
        occurrences = schedule_occurrences([MONDAY], "2026-01-05", "2026-03-01")
        walk = consume_occurrences_for_credits(occurrences, 3)
        assert walk.paid_through == "2026-01-19"
        assert walk.next_due == "2026-01-26"
        assert walk.covered == 3
        assert walk.remaining == 0

    def test_consume_with_no_credits(self):
        occurrences = schedule_occurrences([MONDAY], "2026-01-05", "2026-03-01")
        walk = consume_occurrences_for_credits(occurrences, 0)
        assert walk.paid_through is None
        assert walk.next_due == "2026-01-05"
        assert walk.covered == 0
