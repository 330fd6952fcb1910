"""Invoice and line item models."""

import enum
from datetime import date, datetime
from typing import List, Optional, Sequence
from uuid import uuid4

from sqlalchemy import (
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base, TimestampMixin


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    VOID = "void"


class InvoiceLineItemKind(str, enum.Enum):
    ENROLMENT = "enrolment"
    PRODUCT = "product"
    ADJUSTMENT = "adjustment"


class Invoice(Base, TimestampMixin):
    """A billable charge against a family, optionally for one enrolment."""

    __tablename__ = "invoices"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    family_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("families.id", ondelete="CASCADE"), nullable=False, index=True
    )
    enrolment_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("enrolments.id", ondelete="SET NULL"), nullable=True, index=True
    )
    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus), default=InvoiceStatus.DRAFT, nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_paid_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    issued_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    due_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Entitlement bought by this invoice
    coverage_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    coverage_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    credits_purchased: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    line_items: Mapped[List["InvoiceLineItem"]] = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def has_enrolment_line(self) -> bool:
        return any(item.kind == InvoiceLineItemKind.ENROLMENT for item in self.line_items)

    @property
    def enrolment_quantity(self) -> int:
        """Quantity on the ENROLMENT lines, at least one."""
        quantity = sum(
            item.quantity for item in self.line_items if item.kind == InvoiceLineItemKind.ENROLMENT
        )
        return max(quantity, 1)

    @classmethod
    async def get_by_id(cls, db_session: AsyncSession, invoice_id: str) -> Optional["Invoice"]:
        result = await db_session.execute(select(cls).where(cls.id == invoice_id))
        return result.scalar_one_or_none()

    @classmethod
    async def list_for_enrolment(
        cls,
        db_session: AsyncSession,
        enrolment_id: str,
        status: Optional[InvoiceStatus] = None,
    ) -> Sequence["Invoice"]:
        query = select(cls).where(cls.enrolment_id == enrolment_id)
        if status is not None:
            query = query.where(cls.status == status)
        result = await db_session.execute(query.order_by(cls.coverage_end, cls.id))
        return result.scalars().all()

    @classmethod
    async def latest_paid_coverage_end(
        cls, db_session: AsyncSession, enrolment_id: str
    ) -> Optional[date]:
        """Latest coverage end among the enrolment's PAID invoices."""
        result = await db_session.execute(
            select(cls.coverage_end)
            .where(
                cls.enrolment_id == enrolment_id,
                cls.status == InvoiceStatus.PAID,
                cls.coverage_end.is_not(None),
            )
            .order_by(cls.coverage_end.desc())
            .limit(1)
        )
        return result.scalars().first()


class InvoiceLineItem(Base, TimestampMixin):
    __tablename__ = "invoice_line_items"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    invoice_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[InvoiceLineItemKind] = mapped_column(Enum(InvoiceLineItemKind), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    enrolment_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("enrolments.id", ondelete="SET NULL"), nullable=True
    )

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="line_items")
