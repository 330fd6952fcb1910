"""Enrolment entitlement changes: template moves, manual overrides and audits."""

from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.class_template import ClassTemplate
from app.models.credit import EnrolmentCreditEventType
from app.models.enrolment import (
    BillingType,
    CoverageAuditReason,
    Enrolment,
    EnrolmentClassAssignment,
    EnrolmentCoverageAudit,
)
from app.services.coverage_service import (
    compute_paid_through_after_template_change,
    count_scheduled_sessions_excluding_holidays,
    next_scheduled_day_key,
)
from app.services.credit_service import CreditService
from app.services.schedule_service import EnrolmentSchedule, load_enrolment_schedule
from app.utils.day_keys import (
    DayKey,
    to_day_key,
    to_optional_date,
    to_optional_day_key,
    today_day_key,
)
from core.config import config
from core.db import UnitOfWork
from core.exceptions import BadRequestException, ConflictException, NotFoundException
from core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PaidThroughChange:
    enrolment_id: str
    previous_paid_through: Optional[DayKey]
    paid_through: Optional[DayKey]
    credits_remaining: Optional[int] = None


class EnrolmentService:
    """Service for enrolment entitlement mutations."""

    def __init__(self, db_session: AsyncSession):
        self.db_session = db_session

    def record_coverage_audit(
        self,
        enrolment: Enrolment,
        reason: CoverageAuditReason,
        previous: Optional[DayKey],
        next_: Optional[DayKey],
        actor_id: Optional[str] = None,
    ) -> EnrolmentCoverageAudit:
        audit = EnrolmentCoverageAudit(
            enrolment_id=enrolment.id,
            reason=reason,
            previous_paid_through_date=to_optional_date(previous),
            next_paid_through_date=to_optional_date(next_),
            actor_id=actor_id,
        )
        self.db_session.add(audit)
        return audit

    def set_paid_through(
        self,
        enrolment: Enrolment,
        paid_through: Optional[DayKey],
        reason: CoverageAuditReason,
        actor_id: Optional[str] = None,
    ) -> bool:
        """Store a new paid-through date with its audit row. No-op when unchanged."""
        previous = to_optional_day_key(enrolment.paid_through_date)
        if previous == paid_through:
            return False
        enrolment.paid_through_date = to_optional_date(paid_through)
        self.record_coverage_audit(enrolment, reason, previous, paid_through, actor_id)
        return True

    def remap_paid_through(
        self,
        enrolment: Enrolment,
        old_schedule: EnrolmentSchedule,
        new_schedule: EnrolmentSchedule,
        reason: CoverageAuditReason,
        actor_id: Optional[str] = None,
    ) -> Optional[DayKey]:
        """
        Carry a weekly enrolment's entitlement from one schedule to another.

        Used for template moves as well as holiday and cancellation edits,
        where the templates stay and only the skipped days differ. Returns
        the new paid-through date, or None when nothing changed.
        """
        old_paid_through = to_optional_day_key(enrolment.paid_through_date)
        remapped = compute_paid_through_after_template_change(
            enrolment_start=to_day_key(enrolment.start_date),
            enrolment_end=to_optional_day_key(enrolment.end_date),
            old_paid_through=old_paid_through,
            old_templates=old_schedule.templates,
            new_templates=new_schedule.templates,
            old_holidays=old_schedule.holidays,
            new_holidays=new_schedule.holidays,
            old_cancellations=old_schedule.cancellations,
            new_cancellations=new_schedule.cancellations,
        )
        if remapped is None or remapped == old_paid_through:
            return None
        self.set_paid_through(enrolment, remapped, reason, actor_id)
        return remapped

    async def iter_enrolment_batches(
        self, enrolment_ids: Sequence[str]
    ) -> AsyncIterator[Sequence[Enrolment]]:
        """Yield enrolments in batches of ``COVERAGE_RECOMPUTE_BATCH_SIZE``,
        flushing the previous batch first."""
        size = max(1, config.COVERAGE_RECOMPUTE_BATCH_SIZE)
        for offset in range(0, len(enrolment_ids), size):
            await self.db_session.flush()
            result = await self.db_session.execute(
                select(Enrolment)
                .where(Enrolment.id.in_(enrolment_ids[offset:offset + size]))
                .order_by(Enrolment.id)
                .execution_options(populate_existing=True)
            )
            yield result.scalars().all()
        await self.db_session.flush()

    async def change_enrolment_templates(
        self,
        enrolment_id: str,
        template_ids: Sequence[str],
        actor_id: Optional[str] = None,
    ) -> PaidThroughChange:
        """
        Move an enrolment onto a new set of class templates.

        Weekly plans keep the number of sessions already paid for: the
        paid-through date is remapped onto the new weekdays and audited.

        Raises:
            BadRequestException: No templates given
            NotFoundException: Enrolment or a template not found
            ConflictException: More templates than the plan's weekly sessions
        """
        unique_ids: List[str] = list(dict.fromkeys(template_ids))
        if not unique_ids:
            raise BadRequestException("Select at least one class")

        async with UnitOfWork(self.db_session):
            enrolment = await Enrolment.get_for_update(self.db_session, enrolment_id)
            if not enrolment:
                raise NotFoundException("Enrolment not found")

            templates_by_id = {
                template.id: template
                for template in await ClassTemplate.get_many(self.db_session, unique_ids)
            }
            missing = [template_id for template_id in unique_ids if template_id not in templates_by_id]
            if missing:
                raise NotFoundException(
                    "Class template not found", data={"template_ids": missing}
                )
            new_templates = [templates_by_id[template_id] for template_id in unique_ids]

            plan = enrolment.plan
            if plan is not None and plan.sessions_per_week and len(new_templates) > plan.sessions_per_week:
                raise ConflictException(
                    f"This plan allows {plan.sessions_per_week} class(es) per week; "
                    f"{len(new_templates)} were selected."
                )

            old_schedule = await load_enrolment_schedule(self.db_session, enrolment)
            new_schedule = await load_enrolment_schedule(
                self.db_session, enrolment, templates=new_templates
            )
            previous = to_optional_day_key(enrolment.paid_through_date)

            self._assign_templates(enrolment, new_templates)

            if plan is not None and plan.billing_type == BillingType.PER_WEEK:
                self.remap_paid_through(
                    enrolment,
                    old_schedule,
                    new_schedule,
                    CoverageAuditReason.CLASS_CHANGED,
                    actor_id,
                )
            result = PaidThroughChange(
                enrolment_id=enrolment.id,
                previous_paid_through=previous,
                paid_through=to_optional_day_key(enrolment.paid_through_date),
                credits_remaining=enrolment.credits_remaining,
            )

        logger.info(
            f"Enrolment {enrolment_id} moved to templates {unique_ids}; "
            f"paid through {result.previous_paid_through} -> {result.paid_through}"
        )
        return result

    def _assign_templates(self, enrolment: Enrolment, templates: Sequence[ClassTemplate]) -> None:
        enrolment.template_id = templates[0].id
        enrolment.template = templates[0]
        if len(templates) == 1:
            enrolment.class_assignments = []
            return

        # Keep rows for templates that stay so the unique pair is never re-inserted.
        existing = {assignment.template_id: assignment for assignment in enrolment.class_assignments}
        enrolment.class_assignments = [
            existing.get(template.id)
            or EnrolmentClassAssignment(template_id=template.id, template=template)
            for template in templates
        ]

    async def update_paid_through_date(
        self,
        enrolment_id: str,
        paid_through: Optional[DayKey],
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PaidThroughChange:
        """
        Admin override of an enrolment's entitlement.

        Weekly plans store the date (or clear it). Block plans keep no
        paid-through date, so the ledger is aligned instead: a MANUAL_ADJUST
        event makes the balance equal the classes scheduled from the next
        occurrence up to the requested date.
        """
        async with UnitOfWork(self.db_session):
            enrolment = await Enrolment.get_for_update(self.db_session, enrolment_id)
            if not enrolment:
                raise NotFoundException("Enrolment not found")
            plan = enrolment.plan
            if plan is None:
                raise BadRequestException("Enrolment plan missing.")

            previous = to_optional_day_key(enrolment.paid_through_date)

            if plan.billing_type == BillingType.PER_WEEK:
                self.set_paid_through(
                    enrolment,
                    paid_through,
                    CoverageAuditReason.PAIDTHROUGH_MANUAL_EDIT,
                    actor_id,
                )
                result = PaidThroughChange(enrolment.id, previous, paid_through)
            else:
                result = await self._align_block_credits(
                    enrolment, paid_through, today_day_key(now), actor_id
                )

        logger.info(
            f"Paid-through override on enrolment {enrolment_id}: "
            f"{result.previous_paid_through} -> {result.paid_through} by {actor_id}"
        )
        return result

    async def _align_block_credits(
        self,
        enrolment: Enrolment,
        paid_through: Optional[DayKey],
        today: DayKey,
        actor_id: Optional[str],
    ) -> PaidThroughChange:
        credit_service = CreditService(self.db_session)
        snapshot = await credit_service.compute_billing_snapshot(enrolment, today)
        balance = await credit_service.sync_credit_balance(enrolment, as_of=today)

        target = 0
        if paid_through is not None:
            schedule = await load_enrolment_schedule(self.db_session, enrolment)
            first = next_scheduled_day_key(
                max(today, to_day_key(enrolment.start_date)),
                schedule.templates,
                schedule.holidays,
                schedule.cancellations,
                end_day_key=to_optional_day_key(enrolment.end_date),
            )
            if first is not None:
                target = count_scheduled_sessions_excluding_holidays(
                    first,
                    paid_through,
                    schedule.templates,
                    schedule.holidays,
                    schedule.cancellations,
                )

        delta = target - balance
        if delta:
            await credit_service.record_credit_event(
                enrolment,
                EnrolmentCreditEventType.MANUAL_ADJUST,
                delta,
                today,
                note=f"Paid-through set to {paid_through or 'none'}",
            )
        self.record_coverage_audit(
            enrolment,
            CoverageAuditReason.PAIDTHROUGH_MANUAL_EDIT,
            snapshot.paid_through_date,
            paid_through,
            actor_id,
        )
        return PaidThroughChange(
            enrolment_id=enrolment.id,
            previous_paid_through=snapshot.paid_through_date,
            paid_through=paid_through,
            credits_remaining=enrolment.credits_remaining,
        )
