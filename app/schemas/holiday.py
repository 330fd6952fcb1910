"""Holiday schemas."""

from datetime import date
from typing import Optional

from pydantic import Field

from app.schemas.base import BaseSchema


class HolidayCreate(BaseSchema):
    """Holiday window. Global unless a template or level is given."""

    name: str = Field(..., min_length=1, max_length=200)
    start_date: date
    end_date: date
    template_id: Optional[str] = None
    level_id: Optional[str] = None
    note: Optional[str] = None


class HolidayUpdate(HolidayCreate):
    pass


class HolidayResponse(BaseSchema):
    id: str
    name: str
    start_date: date
    end_date: date
    template_id: Optional[str] = None
    level_id: Optional[str] = None
    note: Optional[str] = None


class HolidayListResponse(BaseSchema):
    items: list[HolidayResponse]
    total: int
