"""Load the schedule inputs of the billing calculators from the database."""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.class_template import ClassCancellation, ClassTemplate, Holiday
from app.models.enrolment import Enrolment
from app.services.occurrence_service import (
    Cancellation,
    HolidayWindow,
    ScheduleTemplate,
    SkipPredicate,
    build_skip_predicate,
)


@dataclass
class EnrolmentSchedule:
    """Templates plus the holidays and cancellations that can touch them."""

    templates: List[ScheduleTemplate]
    holidays: List[HolidayWindow] = field(default_factory=list)
    cancellations: List[Cancellation] = field(default_factory=list)

    @property
    def skip(self) -> SkipPredicate:
        return build_skip_predicate(self.templates, self.holidays, self.cancellations)

    def with_holidays(self, holidays: Iterable[HolidayWindow]) -> "EnrolmentSchedule":
        return EnrolmentSchedule(self.templates, list(holidays), self.cancellations)

    def with_cancellations(self, cancellations: Iterable[Cancellation]) -> "EnrolmentSchedule":
        return EnrolmentSchedule(self.templates, self.holidays, list(cancellations))


async def load_template_schedule(
    db_session: AsyncSession, templates: Sequence[ClassTemplate]
) -> EnrolmentSchedule:
    template_ids = [template.id for template in templates]
    level_ids = [template.level_id for template in templates]
    holidays = await Holiday.list_for_templates(db_session, template_ids, level_ids)
    cancellations = await ClassCancellation.list_for_templates(db_session, template_ids)
    return EnrolmentSchedule(
        templates=[ScheduleTemplate.from_model(template) for template in templates],
        holidays=[HolidayWindow.from_model(holiday) for holiday in holidays],
        cancellations=[Cancellation.from_model(item) for item in cancellations],
    )


async def load_enrolment_schedule(
    db_session: AsyncSession,
    enrolment: Enrolment,
    templates: Optional[Sequence[ClassTemplate]] = None,
) -> EnrolmentSchedule:
    """Schedule for the enrolment's assigned templates, or for ``templates``."""
    if templates is None:
        templates = enrolment.assigned_templates
    return await load_template_schedule(db_session, templates)
