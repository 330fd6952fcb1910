"""Credit ledger and billing status for enrolments.

``credits_remaining`` on an enrolment is a cache of the signed sum of its
credit events and is never edited directly. Every movement is a ledger row.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.credit import EnrolmentCreditEvent, EnrolmentCreditEventType
from app.models.enrolment import BillingType, Enrolment, EnrolmentStatus
from app.services.coverage_service import next_scheduled_day_key
from app.services.occurrence_service import (
    consume_occurrences_for_credits,
    resolve_occurrence_horizon,
    schedule_occurrences,
)
from app.services.schedule_service import EnrolmentSchedule, load_enrolment_schedule
from app.utils.day_keys import (
    DayKey,
    add_days,
    to_date,
    to_day_key,
    to_optional_day_key,
    to_optional_date,
    today_day_key,
)
from core.db import UnitOfWork
from core.exceptions import BadRequestException, NotFoundException
from core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class EnrolmentBillingSnapshot:
    """Where an enrolment stands today."""

    enrolment_id: str
    billing_type: Optional[BillingType]
    paid_through_date: Optional[DayKey]
    next_payment_due_date: Optional[DayKey]
    remaining_credits: Optional[int]
    covered_occurrences: int
    sessions_per_week: int


class CreditService:
    """Service for the enrolment credit ledger."""

    def __init__(self, db_session: AsyncSession):
        self.db_session = db_session

    async def record_credit_event(
        self,
        enrolment: Enrolment,
        event_type: EnrolmentCreditEventType,
        credits_delta: int,
        occurred_on: DayKey,
        note: Optional[str] = None,
        invoice_id: Optional[str] = None,
        template_id: Optional[str] = None,
        refresh_balance: bool = True,
    ) -> EnrolmentCreditEvent:
        """Append a ledger row and, by default, refresh the cached balance."""
        event = EnrolmentCreditEvent(
            enrolment_id=enrolment.id,
            type=event_type,
            credits_delta=credits_delta,
            occurred_on=to_date(occurred_on),
            note=note.strip() if note and note.strip() else None,
            invoice_id=invoice_id,
            template_id=template_id,
        )
        self.db_session.add(event)
        if refresh_balance:
            await self.sync_credit_balance(enrolment)
        return event

    async def sync_credit_balance(
        self, enrolment: Enrolment, as_of: Optional[DayKey] = None
    ) -> int:
        """Set ``credits_remaining`` to the ledger sum and return it."""
        await self.db_session.flush()
        balance = await EnrolmentCreditEvent.sum_for_enrolment(
            self.db_session, enrolment.id, as_of=to_optional_date(as_of)
        )
        enrolment.credits_remaining = balance
        return balance

    async def consume_scheduled_credits(
        self,
        enrolment: Enrolment,
        through_day_key: DayKey,
        schedule: Optional[EnrolmentSchedule] = None,
    ) -> int:
        """
        Backfill one CONSUME event for every scheduled, non-skipped
        occurrence from the enrolment start through ``through_day_key``
        that does not have one yet.

        Returns the number of events created.
        """
        if enrolment.billing_type != BillingType.PER_CLASS:
            return 0

        start = to_day_key(enrolment.start_date)
        window_end = through_day_key
        end = to_optional_day_key(enrolment.end_date)
        if end is not None and end < window_end:
            window_end = end
        if start > window_end:
            return 0

        if schedule is None:
            schedule = await load_enrolment_schedule(self.db_session, enrolment)

        existing = await EnrolmentCreditEvent.list_for_enrolment(
            self.db_session, enrolment.id, EnrolmentCreditEventType.CONSUME
        )
        consumed = {
            (event.template_id, to_day_key(event.occurred_on)) for event in existing
        }

        created = 0
        occurrences = schedule_occurrences(
            schedule.templates, start, horizon_day_key=window_end, skip=schedule.skip
        )
        for occurrence in occurrences:
            if (occurrence.template_id, occurrence.day_key) in consumed:
                continue
            await self.record_credit_event(
                enrolment,
                EnrolmentCreditEventType.CONSUME,
                -1,
                occurrence.day_key,
                note="Auto-consumed scheduled class",
                template_id=occurrence.template_id,
                refresh_balance=False,
            )
            created += 1

        if created:
            await self.sync_credit_balance(enrolment)
            logger.debug(f"Backfilled {created} credit consumptions for enrolment {enrolment.id}")
        return created

    async def adjust_credits(
        self,
        enrolment_id: str,
        credits_delta: int,
        note: Optional[str] = None,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Record a MANUAL_ADJUST on a block enrolment. Returns the new balance."""
        if credits_delta == 0:
            raise BadRequestException("Credit adjustment must not be zero")

        async with UnitOfWork(self.db_session):
            enrolment = await Enrolment.get_for_update(self.db_session, enrolment_id)
            if not enrolment:
                raise NotFoundException("Enrolment not found")
            if enrolment.billing_type != BillingType.PER_CLASS:
                raise BadRequestException("Credits can only be adjusted on block-based plans")

            await self.record_credit_event(
                enrolment,
                EnrolmentCreditEventType.MANUAL_ADJUST,
                credits_delta,
                today_day_key(now),
                note=note or (f"Manual adjustment by {actor_id}" if actor_id else None),
            )
            balance = enrolment.credits_remaining

        logger.info(
            f"Adjusted credits on enrolment {enrolment_id} by {credits_delta}, balance {balance}"
        )
        return balance

    async def get_enrolment_billing_status(
        self, enrolment_id: str, now: Optional[datetime] = None
    ) -> EnrolmentBillingSnapshot:
        async with UnitOfWork(self.db_session):
            enrolment = await Enrolment.get_by_id(self.db_session, enrolment_id)
            if not enrolment:
                raise NotFoundException("Enrolment not found")
            return await self.compute_billing_snapshot(enrolment, today_day_key(now))

    async def compute_billing_snapshot(
        self, enrolment: Enrolment, today: DayKey
    ) -> EnrolmentBillingSnapshot:
        """
        Billing position of one enrolment on ``today``.

        Weekly plans report the stored paid-through date and the first
        occurrence after it. Block plans first backfill consumption for
        classes already held, then spend the balance over the upcoming
        schedule to find how far it reaches.
        """
        plan = enrolment.plan
        if plan is None:
            return EnrolmentBillingSnapshot(
                enrolment_id=enrolment.id,
                billing_type=None,
                paid_through_date=None,
                next_payment_due_date=None,
                remaining_credits=None,
                covered_occurrences=0,
                sessions_per_week=1,
            )

        schedule = await load_enrolment_schedule(self.db_session, enrolment)
        start = to_day_key(enrolment.start_date)
        end = to_optional_day_key(enrolment.end_date)

        if plan.billing_type == BillingType.PER_WEEK:
            paid_through = to_optional_day_key(enrolment.paid_through_date)
            resume = add_days(paid_through, 1) if paid_through is not None else start
            next_due = next_scheduled_day_key(
                max(resume, start),
                schedule.templates,
                schedule.holidays,
                schedule.cancellations,
                end_day_key=end,
            )
            return EnrolmentBillingSnapshot(
                enrolment_id=enrolment.id,
                billing_type=plan.billing_type,
                paid_through_date=paid_through,
                next_payment_due_date=next_due,
                remaining_credits=None,
                covered_occurrences=0,
                sessions_per_week=plan.weekly_sessions,
            )

        # Classes before today are spent; today's class is still ahead.
        await self.consume_scheduled_credits(enrolment, add_days(today, -1), schedule)
        balance = await self.sync_credit_balance(enrolment, as_of=today)

        window_start = max(today, start)
        cadence = plan.weekly_sessions
        needed = max(balance + cadence, 1)
        horizon = resolve_occurrence_horizon(window_start, needed, cadence, end)
        occurrences = schedule_occurrences(
            schedule.templates, window_start, horizon, end_day_key=end, skip=schedule.skip
        )
        walk = consume_occurrences_for_credits(occurrences, balance)

        return EnrolmentBillingSnapshot(
            enrolment_id=enrolment.id,
            billing_type=plan.billing_type,
            paid_through_date=walk.paid_through,
            next_payment_due_date=walk.next_due,
            remaining_credits=walk.remaining,
            covered_occurrences=walk.covered,
            sessions_per_week=cadence,
        )

    async def register_cancellation_credit(
        self, enrolment: Enrolment, template_id: str, day_key: DayKey, note: Optional[str] = None
    ) -> bool:
        """Credit a block enrolment for a cancelled class, once per day and template."""
        existing = await EnrolmentCreditEvent.find(
            self.db_session,
            enrolment.id,
            EnrolmentCreditEventType.CANCELLATION_CREDIT,
            to_date(day_key),
            template_id=template_id,
        )
        if existing:
            return False
        await self.record_credit_event(
            enrolment,
            EnrolmentCreditEventType.CANCELLATION_CREDIT,
            1,
            day_key,
            note=note or "Class cancelled",
            template_id=template_id,
        )
        return True

    async def remove_cancellation_credit(
        self, enrolment: Enrolment, template_id: str, day_key: DayKey
    ) -> bool:
        existing = await EnrolmentCreditEvent.find(
            self.db_session,
            enrolment.id,
            EnrolmentCreditEventType.CANCELLATION_CREDIT,
            to_date(day_key),
            template_id=template_id,
        )
        if not existing:
            return False
        await self.db_session.delete(existing)
        await self.sync_credit_balance(enrolment)
        return True

    async def list_open_enrolments(self, today: DayKey) -> Sequence[Enrolment]:
        today_date = to_date(today)
        result = await self.db_session.execute(
            select(Enrolment).where(
                Enrolment.status == EnrolmentStatus.ACTIVE,
                Enrolment.plan_id.is_not(None),
                Enrolment.start_date <= today_date,
                or_(Enrolment.end_date.is_(None), Enrolment.end_date >= today_date),
            )
        )
        return result.scalars().all()

    async def refresh_open_enrolments(
        self, now: Optional[datetime] = None
    ) -> List[EnrolmentBillingSnapshot]:
        """
        Recompute the billing snapshot of every open enrolment.

        Each enrolment commits on its own; one that fails is rolled back,
        logged and skipped.
        """
        today = today_day_key(now)
        enrolment_ids = [enrolment.id for enrolment in await self.list_open_enrolments(today)]

        snapshots: List[EnrolmentBillingSnapshot] = []
        failed = 0
        for enrolment_id in enrolment_ids:
            try:
                async with UnitOfWork(self.db_session):
                    enrolment = await Enrolment.get_by_id(self.db_session, enrolment_id)
                    snapshot = await self.compute_billing_snapshot(enrolment, today)
            except Exception as e:
                logger.error(f"Error refreshing billing for enrolment {enrolment_id}: {e}", exc_info=True)
                failed += 1
                continue
            snapshots.append(snapshot)

        logger.info(f"Refreshed billing for {len(snapshots)} open enrolments, {failed} failed")
        return snapshots
