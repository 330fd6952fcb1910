"""Class occurrence cancellations."""

from typing import List, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.class_template import ClassCancellation, ClassTemplate
from app.models.enrolment import (
    BillingType,
    CoverageAuditReason,
    Enrolment,
    EnrolmentClassAssignment,
    EnrolmentStatus,
)
from app.services.credit_service import CreditService
from app.services.enrolment_service import EnrolmentService
from app.services.occurrence_service import Cancellation
from app.services.schedule_service import load_enrolment_schedule
from app.utils.day_keys import DayKey, day_of_week, to_date, to_optional_day_key
from core.db import UnitOfWork
from core.exceptions import BadRequestException, NotFoundException
from core.logging import get_logger

logger = get_logger(__name__)


class ClassService:
    """Service for cancelling and restoring single class occurrences."""

    def __init__(self, db_session: AsyncSession):
        self.db_session = db_session
        self.enrolment_service = EnrolmentService(db_session)
        self.credit_service = CreditService(db_session)

    async def list_cancellations(self, template_id: str) -> Sequence[ClassCancellation]:
        return await ClassCancellation.list_for_templates(self.db_session, [template_id])

    async def cancel_class_occurrence(
        self,
        template_id: str,
        day_key: DayKey,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> ClassCancellation:
        """
        Cancel one occurrence of a template.

        Weekly enrolments have their paid-through date walked past the
        lost class; block enrolments get one credit back. Cancelling an
        already cancelled occurrence returns the existing record.

        Raises:
            NotFoundException: Template not found
            BadRequestException: The class does not run on that day
        """
        async with UnitOfWork(self.db_session):
            template = await self._get_template(template_id)
            self._check_runs_on(template, day_key)

            existing = await ClassCancellation.get_for_day(self.db_session, template_id, to_date(day_key))
            if existing:
                return existing

            enrolments = await self._attending_enrolments(template_id, day_key)
            old_schedules = {
                enrolment.id: await load_enrolment_schedule(self.db_session, enrolment)
                for enrolment in enrolments
            }

            cancellation = ClassCancellation(
                template_id=template_id,
                cancelled_on=to_date(day_key),
                reason=reason,
                created_by_id=actor_id,
            )
            self.db_session.add(cancellation)
            await self.db_session.flush()

            added = Cancellation(template_id, day_key)
            for enrolment in enrolments:
                if enrolment.billing_type == BillingType.PER_CLASS:
                    await self.credit_service.register_cancellation_credit(
                        enrolment, template_id, day_key, note=reason
                    )
                    continue
                old = old_schedules[enrolment.id]
                self.enrolment_service.remap_paid_through(
                    enrolment,
                    old,
                    old.with_cancellations(old.cancellations + [added]),
                    CoverageAuditReason.CLASS_CANCELLED,
                    actor_id,
                )

        logger.info(
            f"Cancelled {template.name} on {day_key}; {len(enrolments)} enrolment(s) adjusted"
        )
        return cancellation

    async def restore_class_occurrence(
        self,
        template_id: str,
        day_key: DayKey,
        actor_id: Optional[str] = None,
    ) -> None:
        """Undo a cancellation: weekly enrolments are remapped back, block
        enrolments lose the cancellation credit."""
        async with UnitOfWork(self.db_session):
            template = await self._get_template(template_id)
            cancellation = await ClassCancellation.get_for_day(
                self.db_session, template_id, to_date(day_key)
            )
            if not cancellation:
                raise NotFoundException("Cancellation not found")

            enrolments = await self._attending_enrolments(template_id, day_key)
            removed = Cancellation(template_id, day_key)
            for enrolment in enrolments:
                if enrolment.billing_type == BillingType.PER_CLASS:
                    await self.credit_service.remove_cancellation_credit(enrolment, template_id, day_key)
                    continue
                old = await load_enrolment_schedule(self.db_session, enrolment)
                self.enrolment_service.remap_paid_through(
                    enrolment,
                    old,
                    old.with_cancellations(item for item in old.cancellations if item != removed),
                    CoverageAuditReason.CLASS_RESTORED,
                    actor_id,
                )

            await self.db_session.delete(cancellation)

        logger.info(f"Restored {template.name} on {day_key}")

    async def _get_template(self, template_id: str) -> ClassTemplate:
        template = await ClassTemplate.get_by_id(self.db_session, template_id)
        if not template:
            raise NotFoundException("Class template not found")
        return template

    @staticmethod
    def _check_runs_on(template: ClassTemplate, day_key: DayKey) -> None:
        if template.day_of_week is None or day_of_week(day_key) != template.day_of_week:
            raise BadRequestException("This class does not run on that day.")
        start = to_optional_day_key(template.start_date)
        end = to_optional_day_key(template.end_date)
        if (start and day_key < start) or (end and day_key > end):
            raise BadRequestException("This class does not run on that day.")

    async def _attending_enrolments(self, template_id: str, day_key: DayKey) -> List[Enrolment]:
        """Open enrolments with a plan that attend the template on the day."""
        day = to_date(day_key)
        assigned = select(EnrolmentClassAssignment.enrolment_id).where(
            EnrolmentClassAssignment.template_id == template_id
        )
        await self.db_session.flush()
        result = await self.db_session.execute(
            select(Enrolment)
            .where(
                or_(Enrolment.template_id == template_id, Enrolment.id.in_(assigned)),
                Enrolment.status.in_([EnrolmentStatus.ACTIVE, EnrolmentStatus.CHANGEOVER]),
                Enrolment.plan_id.is_not(None),
                Enrolment.start_date <= day,
                or_(Enrolment.end_date.is_(None), Enrolment.end_date >= day),
            )
            .order_by(Enrolment.id)
            .execution_options(populate_existing=True)
        )
        return [
            enrolment
            for enrolment in result.scalars().all()
            if any(template.id == template_id for template in enrolment.assigned_templates)
        ]
