"""Class occurrence schemas."""

from datetime import date
from typing import Optional

from pydantic import Field

from app.schemas.base import BaseSchema


class ClassCancellationCreate(BaseSchema):
    """Cancel one occurrence of a class template."""

    cancelled_on: date
    reason: Optional[str] = Field(None, max_length=500)


class ClassCancellationResponse(BaseSchema):
    id: str
    template_id: str
    cancelled_on: date
    reason: Optional[str] = None


class ClassCancellationListResponse(BaseSchema):
    items: list[ClassCancellationResponse]
    total: int
