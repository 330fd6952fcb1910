"""Enrolment billing schemas."""

from datetime import date
from typing import Optional

from pydantic import Field

from app.models.enrolment import BillingType
from app.schemas.base import BaseSchema


class EnrolmentBillingStatusResponse(BaseSchema):
    """Where an enrolment stands today."""

    enrolment_id: str
    billing_type: Optional[BillingType] = None
    paid_through_date: Optional[date] = None
    next_payment_due_date: Optional[date] = None
    remaining_credits: Optional[int] = None
    covered_occurrences: int
    sessions_per_week: int


class EnrolmentTemplatesUpdate(BaseSchema):
    """Move an enrolment onto a new set of class templates."""

    template_ids: list[str] = Field(..., min_length=1)


class PaidThroughUpdate(BaseSchema):
    """Admin override of the paid-through date. ``None`` clears it."""

    paid_through_date: Optional[date] = None


class CreditAdjustment(BaseSchema):
    """Manual credit adjustment on a block enrolment."""

    credits_delta: int
    note: Optional[str] = Field(None, max_length=500)


class PaidThroughChangeResponse(BaseSchema):
    enrolment_id: str
    previous_paid_through: Optional[date] = None
    paid_through: Optional[date] = None
    credits_remaining: Optional[int] = None


class CreditBalanceResponse(BaseSchema):
    enrolment_id: str
    credits_remaining: int
