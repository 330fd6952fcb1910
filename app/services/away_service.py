"""Away periods: missed-class math and the paid-through shifts it drives."""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.away import AwayPeriod, AwayPeriodImpact, AwayScope
from app.models.enrolment import CoverageAuditReason, Enrolment, EnrolmentStatus
from app.models.family import Family, Student
from app.services.enrolment_service import EnrolmentService
from app.services.occurrence_service import (
    Cancellation,
    HolidayWindow,
    ScheduleTemplate,
    build_skip_predicate,
    resolve_occurrence_horizon,
    schedule_occurrences,
)
from app.services.schedule_service import load_enrolment_schedule
from app.utils.day_keys import (
    DayKey,
    add_days,
    days_between,
    parse_day_key,
    to_date,
    to_day_key,
    to_optional_day_key,
)
from core.config import config
from core.db import UnitOfWork
from core.exceptions import (
    AwayPeriodOverlap,
    BadRequestException,
    NotFoundException,
    ValidationException,
)
from core.logging import get_logger

logger = get_logger(__name__)


def resolve_sessions_per_week(templates: Sequence[ScheduleTemplate]) -> int:
    """Templates with a weekday, never less than one."""
    return max(1, sum(1 for template in templates if template.day_of_week is not None))


def apply_away_delta_days(base_day_key: DayKey, delta_days: int) -> DayKey:
    return add_days(base_day_key, delta_days)


def list_away_occurrences(
    templates: Sequence[ScheduleTemplate],
    start_day_key: DayKey,
    end_day_key: Optional[DayKey],
    horizon_day_key: DayKey,
    holidays: Sequence[HolidayWindow] = (),
    cancellations: Sequence[Cancellation] = (),
) -> List[DayKey]:
    """Days in the window on which a class would have run (holidays and
    cancellations are not missed classes)."""
    schedule = schedule_occurrences(
        templates,
        start_day_key,
        horizon_day_key=horizon_day_key,
        end_day_key=end_day_key,
        skip=build_skip_predicate(templates, holidays, cancellations),
    )
    return schedule.day_keys()


def calculate_away_delta_days(
    current_paid_through: DayKey,
    missed_occurrences: int,
    sessions_per_week: int,
    templates: Sequence[ScheduleTemplate],
    enrolment_end: Optional[DayKey] = None,
    holidays: Sequence[HolidayWindow] = (),
    cancellations: Sequence[Cancellation] = (),
) -> int:
    """
    Days to push a paid-through date for ``missed_occurrences`` missed classes.

    A single weekly class moves one week per missed class. With several
    classes a week the date moves to the N-th scheduled class after the
    current paid-through date, so the shift follows the real weekly pattern.
    The search widens in fixed steps a bounded number of times; when the
    schedule is too sparse the shift stops at the last class found.
    """
    if missed_occurrences <= 0:
        return 0
    if sessions_per_week <= 1:
        return missed_occurrences * 7

    extension_start = add_days(current_paid_through, 1)
    if enrolment_end is not None and extension_start > enrolment_end:
        return 0

    horizon = resolve_occurrence_horizon(
        extension_start, missed_occurrences, sessions_per_week, enrolment_end
    )
    future: List[DayKey] = []
    for _ in range(config.AWAY_HORIZON_MAX_ATTEMPTS):
        bounded = horizon
        if enrolment_end is not None and bounded > enrolment_end:
            bounded = enrolment_end
        future = list_away_occurrences(
            templates, extension_start, enrolment_end, bounded, holidays, cancellations
        )
        if len(future) >= missed_occurrences:
            break
        if enrolment_end is not None and bounded >= enrolment_end:
            break
        horizon = add_days(bounded, config.AWAY_HORIZON_STEP_DAYS)

    found = min(missed_occurrences, len(future))
    if found < missed_occurrences:
        logger.warning(
            f"Away shift truncated: found {len(future)} of {missed_occurrences} classes "
            f"after {current_paid_through}"
        )
    if found <= 0:
        return 0
    return max(0, days_between(current_paid_through, future[found - 1]))


@dataclass
class AwayImpact:
    enrolment_id: str
    missed_occurrences: int
    paid_through_delta_days: int
    paid_through: DayKey


class AwayService:
    """Service for creating, editing and removing away periods."""

    def __init__(self, db_session: AsyncSession):
        self.db_session = db_session
        self.enrolment_service = EnrolmentService(db_session)

    async def list_away_periods(self, family_id: str) -> Sequence[AwayPeriod]:
        return await AwayPeriod.list_for_family(self.db_session, family_id)

    async def create_away_period(
        self,
        family_id: str,
        start_date: DayKey,
        end_date: DayKey,
        scope: AwayScope = AwayScope.FAMILY,
        student_id: Optional[str] = None,
        note: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> AwayPeriod:
        """
        Record an absence and push out the paid-through date of every
        enrolment it affects.

        Raises:
            BadRequestException: Student missing or not in the family
            ValidationException: End date before start date
            NotFoundException: Family not found
            AwayPeriodOverlap: Clashes with a live away period
        """
        async with UnitOfWork(self.db_session):
            student_id = await self._validate(family_id, start_date, end_date, scope, student_id)

            away_period = AwayPeriod(
                family_id=family_id,
                student_id=student_id,
                start_date=to_date(start_date),
                end_date=to_date(end_date),
                note=note.strip() if note and note.strip() else None,
                created_by_id=actor_id,
                impacts=[],
            )
            self.db_session.add(away_period)
            await self.db_session.flush()
            impacts = await self._apply(away_period, actor_id)

        logger.info(
            f"Away period {away_period.id} created for family {family_id} "
            f"({start_date}..{end_date}), {len(impacts)} enrolment(s) shifted"
        )
        return away_period

    async def update_away_period(
        self,
        away_period_id: str,
        family_id: str,
        start_date: DayKey,
        end_date: DayKey,
        scope: AwayScope = AwayScope.FAMILY,
        student_id: Optional[str] = None,
        note: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> AwayPeriod:
        """Revert every shift the period caused, then apply the edited period."""
        async with UnitOfWork(self.db_session):
            away_period = await AwayPeriod.get_by_id(self.db_session, away_period_id)
            if not away_period:
                raise NotFoundException("Away period not found.")
            if away_period.family_id != family_id:
                raise BadRequestException("Away period family cannot be changed.")

            student_id = await self._validate(
                family_id, start_date, end_date, scope, student_id, exclude_id=away_period.id
            )

            await self._revert(away_period, actor_id)

            away_period.student_id = student_id
            away_period.start_date = to_date(start_date)
            away_period.end_date = to_date(end_date)
            away_period.note = note.strip() if note and note.strip() else None
            impacts = await self._apply(away_period, actor_id)

        logger.info(
            f"Away period {away_period_id} updated ({start_date}..{end_date}), "
            f"{len(impacts)} enrolment(s) shifted"
        )
        return away_period

    async def delete_away_period(
        self,
        away_period_id: str,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        async with UnitOfWork(self.db_session):
            away_period = await AwayPeriod.get_by_id(self.db_session, away_period_id)
            if not away_period:
                raise NotFoundException("Away period not found.")
            await self._revert(away_period, actor_id)
            away_period.soft_delete(now)

        logger.info(f"Away period {away_period_id} deleted")

    async def _validate(
        self,
        family_id: str,
        start_date: DayKey,
        end_date: DayKey,
        scope: AwayScope,
        student_id: Optional[str],
        exclude_id: Optional[str] = None,
    ) -> Optional[str]:
        """Check the request and return the student id to store."""
        if scope == AwayScope.STUDENT and not student_id:
            raise BadRequestException("Select a student for a student-specific away period.")
        if scope == AwayScope.FAMILY:
            student_id = None

        start, end = parse_day_key(start_date), parse_day_key(end_date)
        if end < start:
            raise ValidationException("End date must be on or after start date.")

        family = await Family.get_by_id(self.db_session, family_id)
        if not family:
            raise NotFoundException("Family not found.")

        if student_id:
            student = await Student.get_by_id(self.db_session, student_id)
            if not student or student.family_id != family_id:
                raise BadRequestException("Selected student does not belong to this family.")

        clash = await AwayPeriod.find_overlapping(
            self.db_session,
            family_id,
            start,
            end,
            student_id=student_id,
            exclude_id=exclude_id,
        )
        if clash:
            if student_id:
                message = (
                    "This date range overlaps an existing family away period "
                    "or another away period for this student."
                )
            else:
                message = "This date range overlaps an existing away period for this family."
            raise AwayPeriodOverlap(message, data={"away_period_id": clash.id})

        return student_id

    async def _impacted_enrolments(self, away_period: AwayPeriod) -> Sequence[Enrolment]:
        await self.db_session.flush()
        query = (
            select(Enrolment)
            .join(Student, Enrolment.student_id == Student.id)
            .where(
                Student.family_id == away_period.family_id,
                Enrolment.status.in_([EnrolmentStatus.ACTIVE, EnrolmentStatus.CHANGEOVER]),
                Enrolment.plan_id.is_not(None),
                Enrolment.start_date <= away_period.end_date,
                or_(Enrolment.end_date.is_(None), Enrolment.end_date >= away_period.start_date),
            )
            .order_by(Enrolment.start_date, Enrolment.id)
            .execution_options(populate_existing=True)
        )
        if away_period.student_id:
            query = query.where(Enrolment.student_id == away_period.student_id)
        result = await self.db_session.execute(query)
        return result.scalars().all()

    async def _apply(self, away_period: AwayPeriod, actor_id: Optional[str]) -> List[AwayImpact]:
        away_start = to_day_key(away_period.start_date)
        away_end = to_day_key(away_period.end_date)
        impacts: List[AwayImpact] = []

        for enrolment in await self._impacted_enrolments(away_period):
            base = to_optional_day_key(enrolment.paid_through_date)
            if base is None:
                continue

            schedule = await load_enrolment_schedule(self.db_session, enrolment)
            enrolment_end = to_optional_day_key(enrolment.end_date)
            range_start = max(away_start, to_day_key(enrolment.start_date))
            range_end = min(away_end, enrolment_end) if enrolment_end else away_end

            missed = len(
                list_away_occurrences(
                    schedule.templates,
                    range_start,
                    range_end,
                    range_end,
                    schedule.holidays,
                    schedule.cancellations,
                )
            )
            if missed <= 0:
                continue

            delta = calculate_away_delta_days(
                current_paid_through=base,
                missed_occurrences=missed,
                sessions_per_week=resolve_sessions_per_week(schedule.templates),
                templates=schedule.templates,
                enrolment_end=enrolment_end,
                holidays=schedule.holidays,
                cancellations=schedule.cancellations,
            )
            if delta <= 0:
                continue

            paid_through = apply_away_delta_days(base, delta)
            self.enrolment_service.set_paid_through(
                enrolment, paid_through, CoverageAuditReason.AWAY_APPLIED, actor_id
            )
            away_period.impacts.append(
                AwayPeriodImpact(
                    enrolment_id=enrolment.id,
                    missed_occurrences=missed,
                    paid_through_delta_days=delta,
                )
            )
            impacts.append(AwayImpact(enrolment.id, missed, delta, paid_through))
            logger.debug(
                f"Away period {away_period.id}: enrolment {enrolment.id} missed {missed}, "
                f"paid through {base} -> {paid_through}"
            )

        await self.db_session.flush()
        return impacts

    async def _revert(self, away_period: AwayPeriod, actor_id: Optional[str]) -> None:
        for impact in list(away_period.impacts):
            enrolment = await Enrolment.get_for_update(self.db_session, impact.enrolment_id)
            current = to_optional_day_key(enrolment.paid_through_date) if enrolment else None
            if current is not None and impact.paid_through_delta_days:
                self.enrolment_service.set_paid_through(
                    enrolment,
                    apply_away_delta_days(current, -impact.paid_through_delta_days),
                    CoverageAuditReason.AWAY_REVERTED,
                    actor_id,
                )
        away_period.impacts.clear()
        await self.db_session.flush()
