"""Payment and allocation models."""

import enum
from datetime import datetime
from typing import List, Optional, Sequence
from uuid import uuid4

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base, TimestampMixin


class PaymentStatus(str, enum.Enum):
    COMPLETED = "completed"
    VOID = "void"


class Payment(Base, TimestampMixin):
    """Money received from a family."""

    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    family_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("families.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus), default=PaymentStatus.COMPLETED, nullable=False
    )
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Reversal
    reversed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reversal_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    allocations: Mapped[List["PaymentAllocation"]] = relationship(
        "PaymentAllocation",
        back_populates="payment",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("family_id", "idempotency_key", name="uq_payments_family_idempotency_key"),
    )

    @classmethod
    async def get_by_id(cls, db_session: AsyncSession, payment_id: str) -> Optional["Payment"]:
        result = await db_session.execute(select(cls).where(cls.id == payment_id))
        return result.scalar_one_or_none()

    @classmethod
    async def get_by_idempotency_key(
        cls, db_session: AsyncSession, family_id: str, idempotency_key: str
    ) -> Optional["Payment"]:
        result = await db_session.execute(
            select(cls).where(
                cls.family_id == family_id,
                cls.idempotency_key == idempotency_key,
            )
        )
        return result.scalar_one_or_none()

    @classmethod
    async def list_for_family(cls, db_session: AsyncSession, family_id: str) -> Sequence["Payment"]:
        result = await db_session.execute(
            select(cls).where(cls.family_id == family_id).order_by(cls.paid_at.desc())
        )
        return result.scalars().all()


class PaymentAllocation(Base, TimestampMixin):
    """Part of a payment applied to one invoice."""

    __tablename__ = "payment_allocations"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    payment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    invoice_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    payment: Mapped["Payment"] = relationship("Payment", back_populates="allocations")
