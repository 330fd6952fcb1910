"""Enrolment credit ledger for block (per-class) plans."""

import enum
from datetime import date
from typing import Optional, Sequence
from uuid import uuid4

from sqlalchemy import (
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base, TimestampMixin


class EnrolmentCreditEventType(str, enum.Enum):
    """Kind of ledger entry."""

    PURCHASE = "purchase"  # Block bought through an invoice
    CONSUME = "consume"  # One class attended or elapsed
    CANCELLATION_CREDIT = "cancellation_credit"  # Class cancelled by the school
    MANUAL_ADJUST = "manual_adjust"  # Admin correction


class EnrolmentCreditEvent(Base, TimestampMixin):
    """Append-only credit movement. The signed sum is the balance."""

    __tablename__ = "enrolment_credit_events"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    enrolment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("enrolments.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[EnrolmentCreditEventType] = mapped_column(
        Enum(EnrolmentCreditEventType), nullable=False
    )
    credits_delta: Mapped[int] = mapped_column(Integer, nullable=False)  # Signed
    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # References
    invoice_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True
    )
    template_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("class_templates.id", ondelete="SET NULL"), nullable=True
    )

    __table_args__ = (
        Index("ix_enrolment_credit_events_enrolment_day", "enrolment_id", "occurred_on"),
        Index("ix_enrolment_credit_events_invoice_id", "invoice_id"),
    )

    @classmethod
    async def sum_for_enrolment(
        cls, db_session: AsyncSession, enrolment_id: str, as_of: Optional[date] = None
    ) -> int:
        """Balance from the ledger, optionally counting only events up to ``as_of``."""
        query = select(func.coalesce(func.sum(cls.credits_delta), 0)).where(
            cls.enrolment_id == enrolment_id
        )
        if as_of is not None:
            query = query.where(cls.occurred_on <= as_of)
        result = await db_session.execute(query)
        return int(result.scalar_one())

    @classmethod
    async def list_for_enrolment(
        cls,
        db_session: AsyncSession,
        enrolment_id: str,
        event_type: Optional[EnrolmentCreditEventType] = None,
    ) -> Sequence["EnrolmentCreditEvent"]:
        query = select(cls).where(cls.enrolment_id == enrolment_id)
        if event_type is not None:
            query = query.where(cls.type == event_type)
        result = await db_session.execute(query.order_by(cls.occurred_on, cls.id))
        return result.scalars().all()

    @classmethod
    async def find(
        cls,
        db_session: AsyncSession,
        enrolment_id: str,
        event_type: EnrolmentCreditEventType,
        occurred_on: date,
        template_id: Optional[str] = None,
    ) -> Optional["EnrolmentCreditEvent"]:
        """First event of a type on a day, used to keep per-day events unique."""
        query = select(cls).where(
            cls.enrolment_id == enrolment_id,
            cls.type == event_type,
            cls.occurred_on == occurred_on,
        )
        if template_id is not None:
            query = query.where(cls.template_id == template_id)
        result = await db_session.execute(query.limit(1))
        return result.scalars().first()
