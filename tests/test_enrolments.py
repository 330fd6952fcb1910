"""Tests for template changes and paid-through overrides."""

from datetime import date, datetime, timezone

import pytest

from app.models import Enrolment
from app.models.credit import EnrolmentCreditEvent, EnrolmentCreditEventType
from app.models.enrolment import CoverageAuditReason, EnrolmentCoverageAudit
from app.services.credit_service import CreditService
from app.services.enrolment_service import EnrolmentService
from core.exceptions import BadRequestException, ConflictException, NotFoundException


class TestChangeTemplates:
    """Tests for moving an enrolment between classes."""

    @pytest.fixture
    async def enrolment(self, create_enrolment, weekly_plan, monday_template):
        return await create_enrolment(
            weekly_plan,
            [monday_template],
            start_date=date(2026, 3, 2),
            paid_through_date=date(2026, 5, 11),
        )

    async def test_monday_to_wednesday_keeps_sessions(
        self, db_session, enrolment, wednesday_template
    ):
        change = await EnrolmentService(db_session).change_enrolment_templates(
            enrolment.id, [wednesday_template.id], actor_id="admin-1"
        )

        assert change.previous_paid_through == "2026-05-11"
        assert change.paid_through == "2026-05-13"
        refreshed = await Enrolment.get_by_id(db_session, enrolment.id)
        assert refreshed.paid_through_date == date(2026, 5, 13)
        assert refreshed.template_id == wednesday_template.id

        audits = await EnrolmentCoverageAudit.list_for_enrolment(db_session, enrolment.id)
        assert [audit.reason for audit in audits] == [CoverageAuditReason.CLASS_CHANGED]
        assert audits[0].actor_id == "admin-1"

    async def test_monday_to_tuesday(self, db_session, enrolment, tuesday_template):
        change = await EnrolmentService(db_session).change_enrolment_templates(
            enrolment.id, [tuesday_template.id]
        )
        assert change.paid_through == "2026-05-12"

    async def test_too_many_templates(
        self, db_session, enrolment, tuesday_template, wednesday_template
    ):
        enrolment_id = enrolment.id
        with pytest.raises(ConflictException):
            await EnrolmentService(db_session).change_enrolment_templates(
                enrolment_id, [tuesday_template.id, wednesday_template.id]
            )

        refreshed = await Enrolment.get_by_id(db_session, enrolment_id)
        assert refreshed.paid_through_date == date(2026, 5, 11)

    async def test_empty_selection(self, db_session, enrolment):
        with pytest.raises(BadRequestException):
            await EnrolmentService(db_session).change_enrolment_templates(enrolment.id, [])

    async def test_unknown_template(self, db_session, enrolment):
        enrolment_id = enrolment.id
        with pytest.raises(NotFoundException):
            await EnrolmentService(db_session).change_enrolment_templates(enrolment_id, ["missing"])

    async def test_twice_weekly_assignments(
        self, db_session, create_enrolment, twice_weekly_plan, monday_template,
        tuesday_template, wednesday_template,
    ):
        enrolment = await create_enrolment(
            twice_weekly_plan,
            [monday_template, wednesday_template],
            paid_through_date=date(2026, 1, 14),
        )

        change = await EnrolmentService(db_session).change_enrolment_templates(
            enrolment.id, [monday_template.id, tuesday_template.id]
        )

        # Mon 5, Wed 7, Mon 12, Wed 14 become Mon 5, Tue 6, Mon 12, Tue 13
        assert change.paid_through == "2026-01-13"
        refreshed = await Enrolment.get_by_id(db_session, enrolment.id)
        assert {t.id for t in refreshed.assigned_templates} == {
            monday_template.id,
            tuesday_template.id,
        }


class TestPaidThroughOverride:
    """Tests for the admin paid-through override."""

    async def test_weekly_override_is_audited(
        self, db_session, create_enrolment, weekly_plan, monday_template
    ):
        enrolment = await create_enrolment(
            weekly_plan, [monday_template], paid_through_date=date(2026, 1, 26)
        )

        change = await EnrolmentService(db_session).update_paid_through_date(
            enrolment.id, "2026-02-16", actor_id="admin-1"
        )

        assert change.previous_paid_through == "2026-01-26"
        assert change.paid_through == "2026-02-16"
        refreshed = await Enrolment.get_by_id(db_session, enrolment.id)
        assert refreshed.paid_through_date == date(2026, 2, 16)

        audits = await EnrolmentCoverageAudit.list_for_enrolment(db_session, enrolment.id)
        assert len(audits) == 1
        assert audits[0].reason == CoverageAuditReason.PAIDTHROUGH_MANUAL_EDIT
        assert audits[0].previous_paid_through_date == date(2026, 1, 26)
        assert audits[0].next_paid_through_date == date(2026, 2, 16)

    async def test_weekly_override_can_clear(
        self, db_session, create_enrolment, weekly_plan, monday_template
    ):
        enrolment = await create_enrolment(
            weekly_plan, [monday_template], paid_through_date=date(2026, 1, 26)
        )

        change = await EnrolmentService(db_session).update_paid_through_date(enrolment.id, None)

        assert change.paid_through is None
        refreshed = await Enrolment.get_by_id(db_session, enrolment.id)
        assert refreshed.paid_through_date is None

    async def test_block_override_aligns_ledger(
        self, db_session, create_enrolment, block_plan, monday_template
    ):
        enrolment = await create_enrolment(block_plan, [monday_template])
        await CreditService(db_session).record_credit_event(
            enrolment, EnrolmentCreditEventType.PURCHASE, 10, "2026-01-01"
        )
        await db_session.commit()

        change = await EnrolmentService(db_session).update_paid_through_date(
            enrolment.id,
            "2026-02-02",
            now=datetime(2026, 1, 14, 1, 0, tzinfo=timezone.utc),
        )

        # 8 left after Jan 5 and 12; Jan 19, 26 and Feb 2 need 3
        adjustments = await EnrolmentCreditEvent.list_for_enrolment(
            db_session, enrolment.id, EnrolmentCreditEventType.MANUAL_ADJUST
        )
        assert [event.credits_delta for event in adjustments] == [-5]
        assert change.previous_paid_through == "2026-03-09"
        assert change.paid_through == "2026-02-02"
        assert change.credits_remaining == 3

        refreshed = await Enrolment.get_by_id(db_session, enrolment.id)
        assert refreshed.paid_through_date is None
        assert refreshed.credits_remaining == 3

    async def test_unknown_enrolment(self, db_session):
        with pytest.raises(NotFoundException):
            await EnrolmentService(db_session).update_paid_through_date("missing", "2026-02-02")
