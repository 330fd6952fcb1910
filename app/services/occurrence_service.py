"""Occurrence scheduling for weekly class templates.

Everything here is pure and works on day keys. Callers convert ORM rows
with the ``from_model`` constructors and hand the results to the coverage,
away and payment calculations.
"""

import heapq
import math
from dataclasses import dataclass
from itertools import islice
from typing import (
    TYPE_CHECKING,
    Callable,
    Iterable,
    Iterator,
    List,
    NamedTuple,
    Optional,
    Sequence,
)

from app.utils.day_keys import (
    DayKey,
    add_days,
    next_weekday_on_or_after,
    to_day_key,
    to_optional_day_key,
)
from core.config import config

if TYPE_CHECKING:
    from app.models.class_template import ClassCancellation, ClassTemplate, Holiday

SkipPredicate = Callable[[str, DayKey], bool]


@dataclass(frozen=True)
class ScheduleTemplate:
    """A weekly class slot as the calculators see it."""

    template_id: str
    day_of_week: Optional[int]  # 0 = Monday; None generates nothing
    start_date: Optional[DayKey] = None
    end_date: Optional[DayKey] = None
    level_id: Optional[str] = None

    @classmethod
    def from_model(cls, template: "ClassTemplate") -> "ScheduleTemplate":
        return cls(
            template_id=template.id,
            day_of_week=template.day_of_week,
            start_date=to_optional_day_key(template.start_date),
            end_date=to_optional_day_key(template.end_date),
            level_id=template.level_id,
        )


@dataclass(frozen=True)
class HolidayWindow:
    """Closed date range of skipped classes, optionally scoped."""

    start_date: DayKey
    end_date: DayKey
    template_id: Optional[str] = None
    level_id: Optional[str] = None

    @classmethod
    def from_model(cls, holiday: "Holiday") -> "HolidayWindow":
        return cls(
            start_date=to_day_key(holiday.start_date),
            end_date=to_day_key(holiday.end_date),
            template_id=holiday.template_id,
            level_id=holiday.level_id,
        )

    def applies_to(self, template: ScheduleTemplate) -> bool:
        if self.template_id is not None and self.template_id != template.template_id:
            return False
        if self.level_id is not None and self.level_id != template.level_id:
            return False
        return True

    def contains(self, day_key: DayKey) -> bool:
        return self.start_date <= day_key <= self.end_date


@dataclass(frozen=True)
class Cancellation:
    """One cancelled occurrence of one template."""

    template_id: str
    day_key: DayKey

    @classmethod
    def from_model(cls, cancellation: "ClassCancellation") -> "Cancellation":
        return cls(
            template_id=cancellation.template_id,
            day_key=to_day_key(cancellation.cancelled_on),
        )


class Occurrence(NamedTuple):
    day_key: DayKey
    template_id: str


@dataclass
class CreditWalk:
    """Result of consuming a credit balance over upcoming occurrences."""

    paid_through: Optional[DayKey]
    next_due: Optional[DayKey]
    remaining: int
    covered: int


def sessions_per_week(templates: Iterable[ScheduleTemplate]) -> int:
    """Number of templates that actually produce a weekly occurrence."""
    return sum(1 for template in templates if template.day_of_week is not None)


def resolve_occurrence_horizon(
    start_day_key: DayKey,
    occurrences_needed: int,
    sessions_per_week: int,
    end_day_key: Optional[DayKey] = None,
    buffer_weeks: Optional[int] = None,
) -> DayKey:
    """Last day worth scanning to find ``occurrences_needed`` occurrences.

    Covers the weeks the cadence needs plus a buffer, capped at the
    enrolment end when there is one.
    """
    if buffer_weeks is None:
        buffer_weeks = config.OCCURRENCE_HORIZON_BUFFER_WEEKS
    cadence = max(1, sessions_per_week or 1)
    weeks = max(1, math.ceil(max(occurrences_needed, 1) / cadence))
    projected = add_days(start_day_key, (weeks + buffer_weeks) * 7)
    if end_day_key is not None and projected > end_day_key:
        return end_day_key
    return projected


class OccurrenceSchedule:
    """
    Ordered, finite, restartable sequence of class occurrences.

    Each template yields its weekday once a week from the later of the
    window start and its own start date, until the earliest of its end
    date, the enrolment end and the horizon. Streams are merged by date
    and filtered through ``skip``. Iteration is lazy, so callers can stop
    as soon as they have what they need; iterating again starts over.
    """

    def __init__(
        self,
        templates: Sequence[ScheduleTemplate],
        start_day_key: DayKey,
        limit_day_key: DayKey,
        skip: Optional[SkipPredicate] = None,
    ):
        self.templates = list(templates)
        self.start_day_key = start_day_key
        self.limit_day_key = limit_day_key
        self.skip = skip

    def __iter__(self) -> Iterator[Occurrence]:
        streams = [
            self._template_stream(template)
            for template in self.templates
            if template.day_of_week is not None
        ]
        for occurrence in heapq.merge(*streams):
            if self.skip is not None and self.skip(occurrence.template_id, occurrence.day_key):
                continue
            yield occurrence

    def _template_stream(self, template: ScheduleTemplate) -> Iterator[Occurrence]:
        window_start = self.start_day_key
        if template.start_date is not None and template.start_date > window_start:
            window_start = template.start_date
        window_end = self.limit_day_key
        if template.end_date is not None and template.end_date < window_end:
            window_end = template.end_date

        cursor = next_weekday_on_or_after(window_start, template.day_of_week)
        while cursor <= window_end:
            yield Occurrence(cursor, template.template_id)
            cursor = add_days(cursor, 7)

    def take(self, count: int) -> List[Occurrence]:
        return list(islice(self, max(count, 0)))

    def day_keys(self) -> List[DayKey]:
        return [occurrence.day_key for occurrence in self]


def schedule_occurrences(
    templates: Sequence[ScheduleTemplate],
    start_day_key: DayKey,
    horizon_day_key: DayKey,
    end_day_key: Optional[DayKey] = None,
    skip: Optional[SkipPredicate] = None,
) -> OccurrenceSchedule:
    """Occurrences of ``templates`` from ``start_day_key`` to the earlier of
    ``end_day_key`` and ``horizon_day_key``, both inclusive."""
    limit = horizon_day_key
    if end_day_key is not None and end_day_key < limit:
        limit = end_day_key
    return OccurrenceSchedule(templates, start_day_key, limit, skip)


def build_skip_predicate(
    templates: Iterable[ScheduleTemplate],
    holidays: Iterable[HolidayWindow] = (),
    cancellations: Iterable[Cancellation] = (),
) -> SkipPredicate:
    """Predicate that is true for cancelled occurrences and for days inside
    a holiday scoped to (or global over) the occurrence's template."""
    cancelled = {(item.template_id, item.day_key) for item in cancellations}
    templates_by_id = {template.template_id: template for template in templates}
    holiday_list = list(holidays)

    def skip(template_id: str, day_key: DayKey) -> bool:
        if (template_id, day_key) in cancelled:
            return True
        template = templates_by_id.get(template_id)
        if template is None:
            return False
        return any(
            holiday.applies_to(template) and holiday.contains(day_key)
            for holiday in holiday_list
        )

    return skip


def consume_occurrences_for_credits(
    occurrences: Iterable[Occurrence], credits: int
) -> CreditWalk:
    """Spend one credit per occurrence, in order, until the balance runs out."""
    remaining = credits
    paid_through: Optional[DayKey] = None
    next_due: Optional[DayKey] = None
    covered = 0

    for occurrence in occurrences:
        if remaining <= 0:
            next_due = occurrence.day_key
            break
        paid_through = occurrence.day_key
        covered += 1
        remaining -= 1

    return CreditWalk(
        paid_through=paid_through,
        next_due=next_due,
        remaining=remaining,
        covered=covered,
    )
