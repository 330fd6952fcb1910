"""Business-timezone day keys.

A day key is a ``YYYY-MM-DD`` string naming a calendar date in the business
time zone. Every billing calculation works on day keys so that two
timestamps on the same local date always land on the same key, whatever
UTC offset they were recorded with. Day keys sort lexicographically in
date order, so ``min``/``max``/``<`` work on them directly.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Optional, Union
from zoneinfo import ZoneInfo

from core.config import config
from core.exceptions.billing import InvalidDateFormat

DayKey = str
DateLike = Union[datetime, date, str]

DAY_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@lru_cache
def business_time_zone() -> ZoneInfo:
    return ZoneInfo(config.BUSINESS_TIME_ZONE)


def parse_day_key(value: str) -> date:
    """Parse a user-supplied ``YYYY-MM-DD`` string.

    Raises:
        InvalidDateFormat: if the value is not a real calendar date in that format.
    """
    if not isinstance(value, str) or not DAY_KEY_PATTERN.match(value):
        raise InvalidDateFormat(data={"value": str(value)})
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise InvalidDateFormat(data={"value": value})


def to_day_key(value: DateLike) -> DayKey:
    """Day key of a timestamp, date or date string in the business zone.

    Naive datetimes are treated as UTC. Plain ``date`` values are already
    calendar dates and map to themselves.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(business_time_zone()).date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        if DAY_KEY_PATTERN.match(value):
            return parse_day_key(value).isoformat()
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            raise InvalidDateFormat(data={"value": value})
        return to_day_key(parsed)
    raise InvalidDateFormat(data={"value": repr(value)})


def to_optional_day_key(value: Optional[DateLike]) -> Optional[DayKey]:
    return to_day_key(value) if value is not None else None


def to_date(day_key: DayKey) -> date:
    return parse_day_key(day_key)


def to_optional_date(day_key: Optional[DayKey]) -> Optional[date]:
    return parse_day_key(day_key) if day_key is not None else None


def add_days(day_key: DayKey, days: int) -> DayKey:
    return (parse_day_key(day_key) + timedelta(days=days)).isoformat()


def compare(a: DayKey, b: DayKey) -> int:
    """-1, 0 or 1 as ``a`` is before, on or after ``b``."""
    first, second = parse_day_key(a), parse_day_key(b)
    return (first > second) - (first < second)


def days_between(start: DayKey, end: DayKey) -> int:
    """Signed number of days from ``start`` to ``end``."""
    return (parse_day_key(end) - parse_day_key(start)).days


def day_of_week(day_key: DayKey) -> int:
    """0 = Monday ... 6 = Sunday."""
    return parse_day_key(day_key).weekday()


def next_weekday_on_or_after(day_key: DayKey, weekday: int) -> DayKey:
    offset = (weekday % 7 - day_of_week(day_key)) % 7
    return add_days(day_key, offset)


def start_of_day(value: DateLike) -> datetime:
    """Midnight of the value's business day, as an aware datetime."""
    local = parse_day_key(to_day_key(value))
    return datetime.combine(local, time.min, tzinfo=business_time_zone())


def today_day_key(now: Optional[datetime] = None) -> DayKey:
    return to_day_key(now or datetime.now(timezone.utc))


def ranges_overlap(
    start_a: DayKey, end_a: DayKey, start_b: DayKey, end_b: DayKey
) -> bool:
    """Closed-range overlap test."""
    return start_a <= end_b and start_b <= end_a
