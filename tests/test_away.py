"""Tests for away periods."""

import logging
from datetime import date
from unittest.mock import patch

import pytest

from app.models import Enrolment
from app.models.away import AwayPeriod, AwayScope
from app.models.enrolment import CoverageAuditReason, EnrolmentCoverageAudit
from app.services.away_service import (
    AwayService,
    apply_away_delta_days,
    calculate_away_delta_days,
    list_away_occurrences,
    resolve_sessions_per_week,
)
from app.services.occurrence_service import HolidayWindow, ScheduleTemplate
from core.config import config
from core.exceptions import AwayPeriodOverlap, BadRequestException, ValidationException

MONDAY = ScheduleTemplate(template_id="mon", day_of_week=0, start_date="2026-01-01")
WEDNESDAY = ScheduleTemplate(template_id="wed", day_of_week=2, start_date="2026-01-01")


class TestAwayCalculations:
    """Tests for the missed-class math."""

    def test_sessions_per_week_never_below_one(self):
        assert resolve_sessions_per_week([]) == 1
        assert resolve_sessions_per_week([MONDAY, WEDNESDAY]) == 2

    def test_single_weekly_class_moves_a_week_per_miss(self):
        delta = calculate_away_delta_days("2026-01-12", 1, 1, [MONDAY])
        assert delta == 7
        assert apply_away_delta_days("2026-01-12", delta) == "2026-01-19"

    def test_twice_weekly_follows_real_schedule(self):
        """Missing Mon and Wed moves the date to the second class after it."""
        delta = calculate_away_delta_days("2026-01-07", 2, 2, [MONDAY, WEDNESDAY])
        assert delta == 7
        assert apply_away_delta_days("2026-01-07", delta) == "2026-01-14"

    def test_no_missed_classes_no_shift(self):
        assert calculate_away_delta_days("2026-01-12", 0, 2, [MONDAY, WEDNESDAY]) == 0

    def test_shift_stops_at_enrolment_end(self):
        delta = calculate_away_delta_days(
            "2026-01-07", 3, 2, [MONDAY, WEDNESDAY], enrolment_end="2026-01-12"
        )
        assert apply_away_delta_days("2026-01-07", delta) == "2026-01-12"

    def test_sparse_schedule_widens_the_search(self):
        """Mondays stop in January and Wednesdays only resume in June, so the
        first passes find nothing and the search keeps widening."""
        templates = [
            ScheduleTemplate(template_id="mon", day_of_week=0, start_date="2026-01-01", end_date="2026-01-31"),
            ScheduleTemplate(template_id="wed", day_of_week=2, start_date="2026-06-01"),
        ]

        delta = calculate_away_delta_days("2026-01-28", 2, 2, templates)

        assert delta == 133
        assert apply_away_delta_days("2026-01-28", delta) == "2026-06-10"

    def test_sparse_schedule_truncates_with_warning(self, caplog):
        """Only one Wednesday exists, so the shift stops there and says so."""
        templates = [
            ScheduleTemplate(template_id="mon", day_of_week=0, start_date="2026-01-01", end_date="2026-01-31"),
            ScheduleTemplate(template_id="wed", day_of_week=2, start_date="2026-06-01", end_date="2026-06-05"),
        ]

        with caplog.at_level(logging.WARNING, logger="app.services.away_service"):
            delta = calculate_away_delta_days("2026-01-28", 2, 2, templates)

        assert apply_away_delta_days("2026-01-28", delta) == "2026-06-03"
        assert delta == 126
        assert "found 1 of 2" in caplog.text

    def test_attempt_cap_bounds_the_search(self, caplog):
        templates = [
            ScheduleTemplate(template_id="mon", day_of_week=0, start_date="2026-01-01", end_date="2026-01-31"),
            ScheduleTemplate(template_id="wed", day_of_week=2, start_date="2026-06-01"),
        ]

        with patch.object(config, "AWAY_HORIZON_MAX_ATTEMPTS", 4):
            with caplog.at_level(logging.WARNING, logger="app.services.away_service"):
                delta = calculate_away_delta_days("2026-01-28", 2, 2, templates)

        assert delta == 0
        assert "found 0 of 2" in caplog.text

    def test_holiday_is_not_a_missed_class(self):
        holidays = [HolidayWindow("2026-01-12", "2026-01-12")]
        assert list_away_occurrences(
            [MONDAY], "2026-01-12", "2026-01-18", "2026-01-18", holidays
        ) == []

    def test_edit_reverts_cleanly(self):
        """Applying, reverting and reapplying lands where applying once does."""
        base = "2026-01-26"
        first = calculate_away_delta_days(base, 1, 1, [MONDAY])
        reverted = apply_away_delta_days(apply_away_delta_days(base, first), -first)
        assert reverted == base
        second = calculate_away_delta_days(reverted, 2, 1, [MONDAY])
        assert apply_away_delta_days(reverted, second) == apply_away_delta_days(
            base, calculate_away_delta_days(base, 2, 1, [MONDAY])
        )


class TestAwayService:
    """Tests for AwayService against the database."""

    @pytest.fixture
    async def enrolment(self, create_enrolment, weekly_plan, monday_template):
        return await create_enrolment(
            weekly_plan, [monday_template], paid_through_date=date(2026, 1, 26)
        )

    async def test_create_shifts_paid_through(self, db_session, family, enrolment):
        service = AwayService(db_session)
        away_period = await service.create_away_period(family.id, "2026-01-12", "2026-01-18")

        refreshed = await Enrolment.get_by_id(db_session, enrolment.id)
        assert refreshed.paid_through_date == date(2026, 2, 2)
        assert away_period.scope == AwayScope.FAMILY
        assert len(away_period.impacts) == 1
        assert away_period.impacts[0].missed_occurrences == 1
        assert away_period.impacts[0].paid_through_delta_days == 7

        audits = await EnrolmentCoverageAudit.list_for_enrolment(db_session, enrolment.id)
        assert [audit.reason for audit in audits] == [CoverageAuditReason.AWAY_APPLIED]

    async def test_delete_reverts_shift(self, db_session, family, enrolment):
        service = AwayService(db_session)
        away_period = await service.create_away_period(family.id, "2026-01-12", "2026-01-18")
        away_period_id = away_period.id

        await service.delete_away_period(away_period_id)

        refreshed = await Enrolment.get_by_id(db_session, enrolment.id)
        assert refreshed.paid_through_date == date(2026, 1, 26)
        assert await AwayPeriod.get_by_id(db_session, away_period_id) is None
        assert await service.list_away_periods(family.id) == []

    async def test_update_reverts_then_reapplies(self, db_session, family, enrolment):
        service = AwayService(db_session)
        away_period = await service.create_away_period(family.id, "2026-01-12", "2026-01-18")

        updated = await service.update_away_period(
            away_period.id, family.id, "2026-01-05", "2026-01-18"
        )

        refreshed = await Enrolment.get_by_id(db_session, enrolment.id)
        assert refreshed.paid_through_date == date(2026, 2, 9)
        assert len(updated.impacts) == 1
        assert updated.impacts[0].missed_occurrences == 2

    async def test_enrolment_without_paid_through_is_untouched(
        self, db_session, family, create_enrolment, weekly_plan, monday_template
    ):
        enrolment = await create_enrolment(weekly_plan, [monday_template])
        away_period = await AwayService(db_session).create_away_period(
            family.id, "2026-01-12", "2026-01-18"
        )

        refreshed = await Enrolment.get_by_id(db_session, enrolment.id)
        assert refreshed.paid_through_date is None
        assert away_period.impacts == []

    async def test_overlapping_period_is_rejected(self, db_session, family, enrolment):
        service = AwayService(db_session)
        await service.create_away_period(family.id, "2026-01-12", "2026-01-18")

        with pytest.raises(AwayPeriodOverlap):
            await service.create_away_period(family.id, "2026-01-15", "2026-01-25")

    async def test_end_before_start_is_rejected(self, db_session, family):
        with pytest.raises(ValidationException):
            await AwayService(db_session).create_away_period(family.id, "2026-01-18", "2026-01-12")

    async def test_student_scope_requires_student(self, db_session, family):
        with pytest.raises(BadRequestException):
            await AwayService(db_session).create_away_period(
                family.id, "2026-01-12", "2026-01-18", scope=AwayScope.STUDENT
            )

    async def test_student_from_other_family_is_rejected(self, db_session, other_family, student):
        with pytest.raises(BadRequestException):
            await AwayService(db_session).create_away_period(
                other_family.id,
                "2026-01-12",
                "2026-01-18",
                scope=AwayScope.STUDENT,
                student_id=student.id,
            )
