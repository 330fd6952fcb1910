"""Enrolment, billing plan and coverage audit models."""

import enum
from datetime import date
from typing import TYPE_CHECKING, List, Optional, Sequence
from uuid import uuid4

from sqlalchemy import (
    Date,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.class_template import ClassTemplate
    from app.models.family import Student


class BillingType(str, enum.Enum):
    """How an enrolment plan is billed."""

    PER_WEEK = "per_week"  # Paid-through date
    PER_CLASS = "per_class"  # Credit blocks


class EnrolmentStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CHANGEOVER = "changeover"  # Moving between classes
    CANCELLED = "cancelled"


class CoverageAuditReason(str, enum.Enum):
    """Why an enrolment's paid-through date moved."""

    HOLIDAY_ADDED = "holiday_added"
    HOLIDAY_REMOVED = "holiday_removed"
    HOLIDAY_UPDATED = "holiday_updated"
    CLASS_CHANGED = "class_changed"
    CLASS_CANCELLED = "class_cancelled"
    CLASS_RESTORED = "class_restored"
    AWAY_APPLIED = "away_applied"
    AWAY_REVERTED = "away_reverted"
    PAIDTHROUGH_MANUAL_EDIT = "paidthrough_manual_edit"
    INVOICE_APPLIED = "invoice_applied"
    PAYMENT_UNDONE = "payment_undone"


class EnrolmentPlan(Base, TimestampMixin):
    """Billing policy attached to enrolments."""

    __tablename__ = "enrolment_plans"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    billing_type: Mapped[BillingType] = mapped_column(Enum(BillingType), nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_weeks: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # PER_WEEK
    block_class_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # PER_CLASS
    sessions_per_week: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    level_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("levels.id", ondelete="SET NULL"), nullable=True
    )

    @property
    def weekly_sessions(self) -> int:
        return self.sessions_per_week if self.sessions_per_week and self.sessions_per_week > 0 else 1


class Enrolment(Base, TimestampMixin):
    """A student's subscription to one or more class templates under a plan."""

    __tablename__ = "enrolments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    student_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plan_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("enrolment_plans.id"), nullable=True, index=True
    )
    template_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("class_templates.id"), nullable=True, index=True
    )
    status: Mapped[EnrolmentStatus] = mapped_column(
        Enum(EnrolmentStatus), default=EnrolmentStatus.ACTIVE, nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Entitlement: paid_through_date for PER_WEEK, credits_remaining for PER_CLASS
    paid_through_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    credits_remaining: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    student: Mapped["Student"] = relationship(
        "Student", back_populates="enrolments", lazy="selectin"
    )
    plan: Mapped[Optional["EnrolmentPlan"]] = relationship("EnrolmentPlan", lazy="selectin")
    template: Mapped[Optional["ClassTemplate"]] = relationship("ClassTemplate", lazy="selectin")
    class_assignments: Mapped[List["EnrolmentClassAssignment"]] = relationship(
        "EnrolmentClassAssignment",
        back_populates="enrolment",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def assigned_templates(self) -> List["ClassTemplate"]:
        """Templates this enrolment attends: extra assignments when present,
        otherwise the primary template."""
        if self.class_assignments:
            seen = {}
            for assignment in self.class_assignments:
                seen.setdefault(assignment.template.id, assignment.template)
            return list(seen.values())
        return [self.template] if self.template is not None else []

    @property
    def billing_type(self) -> Optional[BillingType]:
        return self.plan.billing_type if self.plan is not None else None

    @classmethod
    async def get_by_id(cls, db_session: AsyncSession, enrolment_id: str) -> Optional["Enrolment"]:
        await db_session.flush()
        result = await db_session.execute(
            select(cls)
            .where(cls.id == enrolment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @classmethod
    async def get_for_update(cls, db_session: AsyncSession, enrolment_id: str) -> Optional["Enrolment"]:
        """Load and row-lock an enrolment for an entitlement mutation.

        The lock is a no-op on SQLite.
        """
        await db_session.flush()
        result = await db_session.execute(
            select(cls)
            .where(cls.id == enrolment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


class EnrolmentClassAssignment(Base, TimestampMixin):
    """Additional template attended under the same enrolment."""

    __tablename__ = "enrolment_class_assignments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    enrolment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("enrolments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    template_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("class_templates.id"), nullable=False
    )

    enrolment: Mapped["Enrolment"] = relationship("Enrolment", back_populates="class_assignments")
    template: Mapped["ClassTemplate"] = relationship("ClassTemplate", lazy="selectin")

    __table_args__ = (
        UniqueConstraint(
            "enrolment_id", "template_id", name="uq_enrolment_class_assignments_pair"
        ),
    )


class EnrolmentCoverageAudit(Base, TimestampMixin):
    """Append-only record of every paid-through change."""

    __tablename__ = "enrolment_coverage_audits"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    enrolment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("enrolments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reason: Mapped[CoverageAuditReason] = mapped_column(Enum(CoverageAuditReason), nullable=False)
    previous_paid_through_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    next_paid_through_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    actor_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    @classmethod
    async def list_for_enrolment(
        cls, db_session: AsyncSession, enrolment_id: str
    ) -> Sequence["EnrolmentCoverageAudit"]:
        result = await db_session.execute(
            select(cls)
            .where(cls.enrolment_id == enrolment_id)
            .order_by(cls.created_at, cls.id)
        )
        return result.scalars().all()
