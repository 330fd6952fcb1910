"""Away period schemas."""

from datetime import date
from typing import Optional

from pydantic import Field

from app.models.away import AwayScope
from app.schemas.base import BaseSchema


class AwayPeriodCreate(BaseSchema):
    """Create an away period for a family or one of its students."""

    family_id: str
    start_date: date
    end_date: date
    scope: AwayScope = AwayScope.FAMILY
    student_id: Optional[str] = None
    note: Optional[str] = Field(None, max_length=1000)


class AwayPeriodUpdate(BaseSchema):
    """Replace an away period's window; impacts are reverted and reapplied."""

    start_date: date
    end_date: date
    scope: AwayScope = AwayScope.FAMILY
    student_id: Optional[str] = None
    note: Optional[str] = Field(None, max_length=1000)


class AwayPeriodImpactResponse(BaseSchema):
    enrolment_id: str
    missed_occurrences: int
    paid_through_delta_days: int


class AwayPeriodResponse(BaseSchema):
    """Away period response."""

    id: str
    family_id: str
    student_id: Optional[str] = None
    scope: AwayScope
    start_date: date
    end_date: date
    note: Optional[str] = None
    impacts: list[AwayPeriodImpactResponse] = []


class AwayPeriodListResponse(BaseSchema):
    items: list[AwayPeriodResponse]
    total: int
