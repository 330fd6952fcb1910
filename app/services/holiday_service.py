"""Holiday management and the coverage recompute it triggers."""

from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.class_template import ClassCancellation, ClassTemplate, Holiday, Level
from app.models.enrolment import (
    BillingType,
    CoverageAuditReason,
    Enrolment,
    EnrolmentPlan,
    EnrolmentStatus,
)
from app.services.enrolment_service import EnrolmentService
from app.services.occurrence_service import Cancellation, HolidayWindow, ScheduleTemplate
from app.services.schedule_service import EnrolmentSchedule
from app.utils.day_keys import DayKey, parse_day_key, to_date
from core.db import UnitOfWork
from core.exceptions import NotFoundException, ValidationException
from core.logging import get_logger

logger = get_logger(__name__)


class HolidayService:
    """Service for holidays. Every change remaps affected weekly enrolments."""

    def __init__(self, db_session: AsyncSession):
        self.db_session = db_session
        self.enrolment_service = EnrolmentService(db_session)

    async def list_holidays(self) -> Sequence[Holiday]:
        return await Holiday.list_all(self.db_session)

    async def get_holiday(self, holiday_id: str) -> Holiday:
        holiday = await Holiday.get_by_id(self.db_session, holiday_id)
        if not holiday:
            raise NotFoundException("Holiday not found")
        return holiday

    async def create_holiday(
        self,
        name: str,
        start_date: DayKey,
        end_date: DayKey,
        template_id: Optional[str] = None,
        level_id: Optional[str] = None,
        note: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Holiday:
        async with UnitOfWork(self.db_session):
            await self._validate(start_date, end_date, template_id, level_id)
            before = await self._windows()

            holiday = Holiday(
                name=name.strip(),
                start_date=to_date(start_date),
                end_date=to_date(end_date),
                template_id=template_id,
                level_id=level_id,
                note=note,
            )
            self.db_session.add(holiday)
            await self.db_session.flush()

            changed = await self.recompute_for_holiday_change(
                before,
                before + [HolidayWindow.from_model(holiday)],
                [HolidayWindow.from_model(holiday)],
                CoverageAuditReason.HOLIDAY_ADDED,
                actor_id,
            )

        logger.info(f"Holiday {holiday.id} created ({start_date}..{end_date}), {changed} enrolment(s) remapped")
        return holiday

    async def update_holiday(
        self,
        holiday_id: str,
        name: str,
        start_date: DayKey,
        end_date: DayKey,
        template_id: Optional[str] = None,
        level_id: Optional[str] = None,
        note: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Holiday:
        async with UnitOfWork(self.db_session):
            holiday = await self.get_holiday(holiday_id)
            await self._validate(start_date, end_date, template_id, level_id)
            before = await self._windows()
            old_window = HolidayWindow.from_model(holiday)

            holiday.name = name.strip()
            holiday.start_date = to_date(start_date)
            holiday.end_date = to_date(end_date)
            holiday.template_id = template_id
            holiday.level_id = level_id
            holiday.note = note
            await self.db_session.flush()

            new_window = HolidayWindow.from_model(holiday)
            after = self._replace_one(before, old_window, new_window)
            changed = await self.recompute_for_holiday_change(
                before,
                after,
                [old_window, new_window],
                CoverageAuditReason.HOLIDAY_UPDATED,
                actor_id,
            )

        logger.info(f"Holiday {holiday_id} updated, {changed} enrolment(s) remapped")
        return holiday

    async def delete_holiday(self, holiday_id: str, actor_id: Optional[str] = None) -> None:
        async with UnitOfWork(self.db_session):
            holiday = await self.get_holiday(holiday_id)
            before = await self._windows()
            old_window = HolidayWindow.from_model(holiday)

            await self.db_session.delete(holiday)
            await self.db_session.flush()

            changed = await self.recompute_for_holiday_change(
                before,
                self._replace_one(before, old_window, None),
                [old_window],
                CoverageAuditReason.HOLIDAY_REMOVED,
                actor_id,
            )

        logger.info(f"Holiday {holiday_id} deleted, {changed} enrolment(s) remapped")

    async def recompute_for_holiday_change(
        self,
        old_holidays: List[HolidayWindow],
        new_holidays: List[HolidayWindow],
        changed: List[HolidayWindow],
        reason: CoverageAuditReason,
        actor_id: Optional[str] = None,
    ) -> int:
        """
        Remap every active weekly enrolment the changed windows can touch.

        The sessions paid for are counted under the old holiday set and
        walked out again under the new one, so repeating the same change is
        a no-op. Returns the number of enrolments whose date moved.
        """
        window_start = min(window.start_date for window in changed)
        window_end = max(window.end_date for window in changed)
        enrolment_ids = await self._affected_enrolment_ids(window_start, window_end)

        remapped = 0
        async for batch in self.enrolment_service.iter_enrolment_batches(enrolment_ids):
            for enrolment in batch:
                templates = [ScheduleTemplate.from_model(t) for t in enrolment.assigned_templates]
                if not any(window.applies_to(t) for window in changed for t in templates):
                    continue
                cancellations = [
                    Cancellation.from_model(item)
                    for item in await ClassCancellation.list_for_templates(
                        self.db_session, [t.template_id for t in templates]
                    )
                ]
                old_schedule = EnrolmentSchedule(templates, old_holidays, cancellations)
                if self.enrolment_service.remap_paid_through(
                    enrolment,
                    old_schedule,
                    old_schedule.with_holidays(new_holidays),
                    reason,
                    actor_id,
                ):
                    remapped += 1
            logger.debug(f"Holiday recompute batch of {len(batch)} done")
        return remapped

    async def _affected_enrolment_ids(self, window_start: DayKey, window_end: DayKey) -> List[str]:
        result = await self.db_session.execute(
            select(Enrolment.id)
            .join(EnrolmentPlan, Enrolment.plan_id == EnrolmentPlan.id)
            .where(
                Enrolment.status == EnrolmentStatus.ACTIVE,
                EnrolmentPlan.billing_type == BillingType.PER_WEEK,
                Enrolment.paid_through_date.is_not(None),
                Enrolment.paid_through_date >= to_date(window_start),
                Enrolment.start_date <= to_date(window_end),
            )
            .order_by(Enrolment.id)
        )
        return list(result.scalars().all())

    async def _windows(self) -> List[HolidayWindow]:
        return [HolidayWindow.from_model(holiday) for holiday in await Holiday.list_all(self.db_session)]

    @staticmethod
    def _replace_one(
        windows: List[HolidayWindow],
        old: HolidayWindow,
        new: Optional[HolidayWindow],
    ) -> List[HolidayWindow]:
        """Swap (or drop) one occurrence of ``old``; identical windows may repeat."""
        result = list(windows)
        if old in result:
            result.remove(old)
        if new is not None:
            result.append(new)
        return result

    async def _validate(
        self,
        start_date: DayKey,
        end_date: DayKey,
        template_id: Optional[str],
        level_id: Optional[str],
    ) -> None:
        if parse_day_key(end_date) < parse_day_key(start_date):
            raise ValidationException("End date must be on or after start date.")
        if template_id and not await ClassTemplate.get_by_id(self.db_session, template_id):
            raise NotFoundException("Class template not found")
        if level_id and not await self.db_session.get(Level, level_id):
            raise NotFoundException("Level not found")
