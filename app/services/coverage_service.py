"""Coverage engine: turn an entitlement into a paid-through day and back.

Coverage is found by walking the real occurrence schedule, never by
dividing sessions by a weekly cadence, because holidays and cancellations
leave irregular gaps in the calendar.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from app.services.occurrence_service import (
    Cancellation,
    HolidayWindow,
    OccurrenceSchedule,
    ScheduleTemplate,
    build_skip_predicate,
    schedule_occurrences,
    sessions_per_week,
)
from app.utils.day_keys import DayKey, add_days
from core.config import config
from core.exceptions.billing import InvalidEntitlement


@dataclass
class CoverageWindow:
    """Coverage produced by one purchase."""

    coverage_start: Optional[DayKey]
    coverage_end: Optional[DayKey]
    entitlement_sessions: int


@dataclass
class BlockCoverage:
    """Coverage window for a block (credit) purchase."""

    coverage_start: Optional[DayKey]
    coverage_end: Optional[DayKey]
    credits_purchased: int


def _skipped_day_count(
    start_day_key: DayKey,
    templates: Sequence[ScheduleTemplate],
    holidays: Iterable[HolidayWindow],
    cancellations: Iterable[Cancellation],
) -> int:
    """Distinct days on or after the start on which some occurrence can be skipped."""
    template_ids = {template.template_id for template in templates}
    days = {
        item.day_key
        for item in cancellations
        if item.template_id in template_ids and item.day_key >= start_day_key
    }
    for holiday in holidays:
        if not any(holiday.applies_to(template) for template in templates):
            continue
        cursor = max(holiday.start_date, start_day_key)
        while cursor <= holiday.end_date:
            days.add(cursor)
            cursor = add_days(cursor, 1)
    return len(days)


def coverage_horizon(
    start_day_key: DayKey,
    sessions: int,
    templates: Sequence[ScheduleTemplate],
    holidays: Iterable[HolidayWindow] = (),
    cancellations: Iterable[Cancellation] = (),
) -> DayKey:
    """
    A horizon far enough out that ``sessions`` occurrences fit behind it.

    Assumes the worst case of a single template still running: one week per
    session, one more per skipped day, plus the buffer, counted from the
    latest template start. The walk is lazy, so a generous horizon costs
    nothing once the quota is met.
    """
    anchor = start_day_key
    for template in templates:
        if template.start_date is not None and template.start_date > anchor:
            anchor = template.start_date
    skipped = _skipped_day_count(start_day_key, templates, holidays, cancellations)
    weeks = max(sessions, 1) + skipped + config.OCCURRENCE_HORIZON_BUFFER_WEEKS
    return add_days(anchor, weeks * 7)


def coverage_schedule(
    start_day_key: DayKey,
    templates: Sequence[ScheduleTemplate],
    sessions: int,
    holidays: Sequence[HolidayWindow] = (),
    cancellations: Sequence[Cancellation] = (),
    end_day_key: Optional[DayKey] = None,
) -> OccurrenceSchedule:
    horizon = coverage_horizon(start_day_key, sessions, templates, holidays, cancellations)
    return schedule_occurrences(
        templates,
        start_day_key,
        horizon_day_key=horizon,
        end_day_key=end_day_key,
        skip=build_skip_predicate(templates, holidays, cancellations),
    )


def compute_coverage_end_day(
    start_day_key: DayKey,
    templates: Sequence[ScheduleTemplate],
    entitlement_sessions: int,
    holidays: Sequence[HolidayWindow] = (),
    cancellations: Sequence[Cancellation] = (),
    end_day_key: Optional[DayKey] = None,
) -> Optional[DayKey]:
    """
    Day of the last occurrence consumed by ``entitlement_sessions``.

    Walks forward from ``start_day_key`` skipping holidays and cancellations.
    When the enrolment ends before the entitlement is used up, returns the
    last occurrence that did fit, or None if none did.

    Raises:
        InvalidEntitlement: if ``entitlement_sessions`` is zero or negative.
    """
    if entitlement_sessions <= 0:
        raise InvalidEntitlement(data={"entitlement_sessions": entitlement_sessions})

    schedule = coverage_schedule(
        start_day_key, templates, entitlement_sessions, holidays, cancellations, end_day_key
    )
    last_covered: Optional[DayKey] = None
    for consumed, occurrence in enumerate(schedule, start=1):
        last_covered = occurrence.day_key
        if consumed >= entitlement_sessions:
            break
    return last_covered


def count_scheduled_sessions_excluding_holidays(
    start_day_key: DayKey,
    end_day_key: DayKey,
    templates: Sequence[ScheduleTemplate],
    holidays: Sequence[HolidayWindow] = (),
    cancellations: Sequence[Cancellation] = (),
) -> int:
    """Non-skipped occurrences in the closed window."""
    if end_day_key < start_day_key:
        return 0
    schedule = schedule_occurrences(
        templates,
        start_day_key,
        horizon_day_key=end_day_key,
        skip=build_skip_predicate(templates, holidays, cancellations),
    )
    return sum(1 for _ in schedule)


def next_scheduled_day_key(
    start_day_key: DayKey,
    templates: Sequence[ScheduleTemplate],
    holidays: Sequence[HolidayWindow] = (),
    cancellations: Sequence[Cancellation] = (),
    end_day_key: Optional[DayKey] = None,
) -> Optional[DayKey]:
    """First non-skipped occurrence on or after ``start_day_key``."""
    schedule = coverage_schedule(
        start_day_key, templates, 1, holidays, cancellations, end_day_key
    )
    for occurrence in schedule:
        return occurrence.day_key
    return None


def limit_weekly_templates(
    templates: Sequence[ScheduleTemplate], sessions_per_week: Optional[int]
) -> List[ScheduleTemplate]:
    """One template per weekday, earliest weekdays first, at most
    ``sessions_per_week`` of them."""
    unique: List[ScheduleTemplate] = []
    seen = set()
    for template in templates:
        if template.day_of_week is None or template.day_of_week in seen:
            continue
        seen.add(template.day_of_week)
        unique.append(template)

    if not sessions_per_week or sessions_per_week <= 0 or len(unique) <= sessions_per_week:
        return unique
    return sorted(unique, key=lambda template: template.day_of_week)[:sessions_per_week]


def _resume_day_key(
    current_paid_through: Optional[DayKey], enrolment_start: DayKey
) -> DayKey:
    if current_paid_through is None:
        return enrolment_start
    return max(add_days(current_paid_through, 1), enrolment_start)


def compute_weekly_coverage(
    enrolment_start: DayKey,
    enrolment_end: Optional[DayKey],
    current_paid_through: Optional[DayKey],
    duration_weeks: int,
    plan_sessions_per_week: Optional[int],
    templates: Sequence[ScheduleTemplate],
    holidays: Sequence[HolidayWindow] = (),
    cancellations: Sequence[Cancellation] = (),
) -> CoverageWindow:
    """Coverage bought by one PER_WEEK plan period.

    The entitlement is ``duration_weeks`` times the plan's weekly sessions,
    spent on the enrolment's templates (one per weekday, at most the plan's
    cadence) from the first occurrence after the current paid-through date.
    """
    if duration_weeks <= 0:
        raise InvalidEntitlement(
            message="Weekly plans require a duration greater than zero",
            data={"duration_weeks": duration_weeks},
        )
    cadence = plan_sessions_per_week if plan_sessions_per_week and plan_sessions_per_week > 0 else 1
    entitlement_sessions = duration_weeks * cadence
    effective = limit_weekly_templates(templates, cadence)

    coverage_start = next_scheduled_day_key(
        _resume_day_key(current_paid_through, enrolment_start),
        effective,
        holidays,
        cancellations,
        end_day_key=enrolment_end,
    )
    if coverage_start is None:
        return CoverageWindow(None, None, entitlement_sessions)

    coverage_end = compute_coverage_end_day(
        coverage_start,
        effective,
        entitlement_sessions,
        holidays,
        cancellations,
        end_day_key=enrolment_end,
    )
    return CoverageWindow(coverage_start, coverage_end, entitlement_sessions)


def compute_block_pay_ahead_coverage(
    current_paid_through: Optional[DayKey],
    enrolment_start: DayKey,
    enrolment_end: Optional[DayKey],
    templates: Sequence[ScheduleTemplate],
    blocks_purchased: int,
    block_class_count: int,
    holidays: Sequence[HolidayWindow] = (),
    cancellations: Sequence[Cancellation] = (),
    credits_purchased: Optional[int] = None,
) -> BlockCoverage:
    """
    Coverage window for buying ``blocks_purchased`` blocks of classes.

    ``credits_purchased`` overrides the block arithmetic for custom block
    lengths. No credits means no window.
    """
    if credits_purchased is None:
        credits_purchased = max(block_class_count, 1) * max(blocks_purchased, 0)
    if credits_purchased <= 0:
        return BlockCoverage(None, None, 0)

    coverage_start = next_scheduled_day_key(
        _resume_day_key(current_paid_through, enrolment_start),
        templates,
        holidays,
        cancellations,
        end_day_key=enrolment_end,
    )
    if coverage_start is None:
        return BlockCoverage(None, None, credits_purchased)

    coverage_end = compute_coverage_end_day(
        coverage_start,
        templates,
        credits_purchased,
        holidays,
        cancellations,
        end_day_key=enrolment_end,
    )
    return BlockCoverage(coverage_start, coverage_end, credits_purchased)


def compute_paid_through_after_template_change(
    enrolment_start: DayKey,
    enrolment_end: Optional[DayKey],
    old_paid_through: Optional[DayKey],
    old_templates: Sequence[ScheduleTemplate],
    new_templates: Sequence[ScheduleTemplate],
    old_holidays: Sequence[HolidayWindow] = (),
    new_holidays: Sequence[HolidayWindow] = (),
    old_cancellations: Sequence[Cancellation] = (),
    new_cancellations: Sequence[Cancellation] = (),
) -> Optional[DayKey]:
    """
    Remap an entitlement from one template set onto another.

    Counts the sessions the old templates delivered between the enrolment
    start and the old paid-through date (skipping the old holidays), then
    spends the same count on the new templates from the enrolment start,
    skipping the new holidays. The walk is not capped to the old window, so
    a weekday shift never under-counts.

    The same function remaps a single template set when only its holidays
    or cancellations change: pass the same templates twice with the old and
    new skip sets.

    Returns None when there is nothing to remap.
    """
    if old_paid_through is None or not old_templates or not new_templates:
        return None
    if old_paid_through < enrolment_start:
        return None

    entitlement_sessions = count_scheduled_sessions_excluding_holidays(
        enrolment_start,
        old_paid_through,
        old_templates,
        old_holidays,
        old_cancellations,
    )
    new_cadence = sessions_per_week(new_templates)
    if entitlement_sessions <= 0 or new_cadence <= 0:
        return None

    return compute_coverage_end_day(
        enrolment_start,
        new_templates,
        entitlement_sessions,
        new_holidays,
        new_cancellations,
        end_day_key=enrolment_end,
    )
