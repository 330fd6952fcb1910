"""Tests for the block credit ledger and billing snapshots."""

from datetime import date, datetime, timezone
from unittest.mock import patch

import pytest

from app.models import Enrolment
from app.models.credit import EnrolmentCreditEvent, EnrolmentCreditEventType
from app.models.enrolment import BillingType
from app.services.class_service import ClassService
from app.services.credit_service import CreditService
from core.exceptions import BadRequestException, NotFoundException

# 11am on Wednesday 14 January in Brisbane
WEDNESDAY_MORNING = datetime(2026, 1, 14, 1, 0, tzinfo=timezone.utc)


class TestBillingSnapshot:
    """Tests for block enrolment snapshots."""

    @pytest.fixture
    async def enrolment(self, db_session, create_enrolment, block_plan, monday_template):
        enrolment = await create_enrolment(block_plan, [monday_template])
        await CreditService(db_session).record_credit_event(
            enrolment, EnrolmentCreditEventType.PURCHASE, 10, "2026-01-01", note="Opening block"
        )
        await db_session.commit()
        return enrolment

    async def test_elapsed_classes_are_consumed(self, db_session, enrolment):
        snapshot = await CreditService(db_session).get_enrolment_billing_status(
            enrolment.id, now=WEDNESDAY_MORNING
        )

        consumed = await EnrolmentCreditEvent.list_for_enrolment(
            db_session, enrolment.id, EnrolmentCreditEventType.CONSUME
        )
        assert [event.occurred_on for event in consumed] == [date(2026, 1, 5), date(2026, 1, 12)]
        assert all(event.credits_delta == -1 for event in consumed)

        assert snapshot.billing_type == BillingType.PER_CLASS
        assert snapshot.paid_through_date == "2026-03-09"
        assert snapshot.next_payment_due_date == "2026-03-16"
        assert snapshot.covered_occurrences == 8
        assert snapshot.remaining_credits == 0

        refreshed = await Enrolment.get_by_id(db_session, enrolment.id)
        assert refreshed.credits_remaining == 8

    async def test_snapshot_is_repeatable(self, db_session, enrolment):
        service = CreditService(db_session)
        first = await service.get_enrolment_billing_status(enrolment.id, now=WEDNESDAY_MORNING)
        second = await service.get_enrolment_billing_status(enrolment.id, now=WEDNESDAY_MORNING)

        assert second == first
        consumed = await EnrolmentCreditEvent.list_for_enrolment(
            db_session, enrolment.id, EnrolmentCreditEventType.CONSUME
        )
        assert len(consumed) == 2

    async def test_cancelled_class_is_not_consumed(self, db_session, enrolment, monday_template):
        await ClassService(db_session).cancel_class_occurrence(monday_template.id, "2026-01-12")
        snapshot = await CreditService(db_session).get_enrolment_billing_status(
            enrolment.id, now=WEDNESDAY_MORNING
        )

        consumed = await EnrolmentCreditEvent.list_for_enrolment(
            db_session, enrolment.id, EnrolmentCreditEventType.CONSUME
        )
        assert [event.occurred_on for event in consumed] == [date(2026, 1, 5)]
        # 10 bought, 1 cancellation credit, 1 class held
        assert snapshot.covered_occurrences == 10

    async def test_refresh_open_enrolments(self, db_session, enrolment):
        snapshots = await CreditService(db_session).refresh_open_enrolments(now=WEDNESDAY_MORNING)

        assert [snapshot.enrolment_id for snapshot in snapshots] == [enrolment.id]
        assert snapshots[0].covered_occurrences == 8

    async def test_refresh_skips_failing_enrolment(
        self, db_session, enrolment, create_enrolment, block_plan, monday_template
    ):
        """A failure rolls back that enrolment only; the others still commit."""
        broken = await create_enrolment(block_plan, [monday_template])
        enrolment_id = enrolment.id
        broken_id = broken.id
        compute = CreditService.compute_billing_snapshot

        async def fail_after_consuming(self, target, today):
            snapshot = await compute(self, target, today)
            if target.id == broken_id:
                raise RuntimeError("schedule unavailable")
            return snapshot

        with patch.object(CreditService, "compute_billing_snapshot", fail_after_consuming):
            snapshots = await CreditService(db_session).refresh_open_enrolments(now=WEDNESDAY_MORNING)

        assert [snapshot.enrolment_id for snapshot in snapshots] == [enrolment_id]
        consumed = await EnrolmentCreditEvent.list_for_enrolment(
            db_session, enrolment_id, EnrolmentCreditEventType.CONSUME
        )
        assert len(consumed) == 2
        assert await EnrolmentCreditEvent.list_for_enrolment(
            db_session, broken_id, EnrolmentCreditEventType.CONSUME
        ) == []


class TestWeeklySnapshot:
    """Tests for weekly enrolment snapshots."""

    async def test_next_due_follows_paid_through(
        self, db_session, create_enrolment, weekly_plan, monday_template
    ):
        enrolment = await create_enrolment(
            weekly_plan, [monday_template], paid_through_date=date(2026, 1, 26)
        )

        snapshot = await CreditService(db_session).get_enrolment_billing_status(
            enrolment.id, now=WEDNESDAY_MORNING
        )

        assert snapshot.billing_type == BillingType.PER_WEEK
        assert snapshot.paid_through_date == "2026-01-26"
        assert snapshot.next_payment_due_date == "2026-02-02"
        assert snapshot.remaining_credits is None
        assert snapshot.sessions_per_week == 1

    async def test_unknown_enrolment(self, db_session):
        with pytest.raises(NotFoundException):
            await CreditService(db_session).get_enrolment_billing_status("missing")


class TestAdjustCredits:
    """Tests for manual credit adjustments."""

    async def test_adjustment_updates_balance(
        self, db_session, create_enrolment, block_plan, monday_template
    ):
        enrolment = await create_enrolment(block_plan, [monday_template])

        balance = await CreditService(db_session).adjust_credits(
            enrolment.id, 3, note="Make-up lessons", now=WEDNESDAY_MORNING
        )

        assert balance == 3
        events = await EnrolmentCreditEvent.list_for_enrolment(
            db_session, enrolment.id, EnrolmentCreditEventType.MANUAL_ADJUST
        )
        assert len(events) == 1
        assert events[0].occurred_on == date(2026, 1, 14)
        assert events[0].note == "Make-up lessons"

    async def test_zero_adjustment_is_rejected(
        self, db_session, create_enrolment, block_plan, monday_template
    ):
        enrolment = await create_enrolment(block_plan, [monday_template])
        with pytest.raises(BadRequestException):
            await CreditService(db_session).adjust_credits(enrolment.id, 0)

    async def test_weekly_plan_is_rejected(
        self, db_session, create_enrolment, weekly_plan, monday_template
    ):
        enrolment = await create_enrolment(weekly_plan, [monday_template])
        enrolment_id = enrolment.id
        with pytest.raises(BadRequestException):
            await CreditService(db_session).adjust_credits(enrolment_id, 2)

    async def test_cancellation_credit_is_recorded_once(
        self, db_session, create_enrolment, block_plan, monday_template
    ):
        enrolment = await create_enrolment(block_plan, [monday_template])
        service = CreditService(db_session)

        assert await service.register_cancellation_credit(enrolment, monday_template.id, "2026-01-12")
        assert not await service.register_cancellation_credit(enrolment, monday_template.id, "2026-01-12")
        assert enrolment.credits_remaining == 1
