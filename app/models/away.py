"""Away periods and the paid-through shifts they caused."""

import enum
from datetime import date
from typing import List, Optional, Sequence
from uuid import uuid4

from sqlalchemy import (
    Date,
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

from core.db import Base, SoftDeleteMixin, TimestampMixin


class AwayScope(str, enum.Enum):
    FAMILY = "family"
    STUDENT = "student"


class AwayPeriod(Base, TimestampMixin, SoftDeleteMixin):
    """A family- or student-wide absence window (both ends inclusive)."""

    __tablename__ = "away_periods"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    family_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("families.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("students.id", ondelete="CASCADE"), nullable=True
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    impacts: Mapped[List["AwayPeriodImpact"]] = relationship(
        "AwayPeriodImpact",
        back_populates="away_period",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def scope(self) -> AwayScope:
        return AwayScope.STUDENT if self.student_id else AwayScope.FAMILY

    @classmethod
    async def get_by_id(cls, db_session: AsyncSession, away_period_id: str) -> Optional["AwayPeriod"]:
        result = await db_session.execute(
            select(cls).where(cls.id == away_period_id, cls.is_deleted.is_(False))
        )
        return result.scalar_one_or_none()

    @classmethod
    async def list_for_family(
        cls, db_session: AsyncSession, family_id: str
    ) -> Sequence["AwayPeriod"]:
        result = await db_session.execute(
            select(cls)
            .where(cls.family_id == family_id, cls.is_deleted.is_(False))
            .order_by(cls.start_date)
        )
        return result.scalars().all()

    @classmethod
    async def find_overlapping(
        cls,
        db_session: AsyncSession,
        family_id: str,
        start_date: date,
        end_date: date,
        student_id: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> Optional["AwayPeriod"]:
        """A live away period that clashes with the window.

        Family-wide periods clash with everything in the family. A
        student period clashes with family-wide periods and with other
        periods of the same student.
        """
        query = select(cls).where(
            cls.family_id == family_id,
            cls.is_deleted.is_(False),
            cls.start_date <= end_date,
            cls.end_date >= start_date,
        )
        if student_id is not None:
            query = query.where(
                (cls.student_id.is_(None)) | (cls.student_id == student_id)
            )
        if exclude_id is not None:
            query = query.where(cls.id != exclude_id)
        result = await db_session.execute(query.limit(1))
        return result.scalars().first()


class AwayPeriodImpact(Base, TimestampMixin):
    """How far one away period moved one enrolment's paid-through date."""

    __tablename__ = "away_period_impacts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    away_period_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("away_periods.id", ondelete="CASCADE"), nullable=False
    )
    enrolment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("enrolments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    missed_occurrences: Mapped[int] = mapped_column(Integer, nullable=False)
    paid_through_delta_days: Mapped[int] = mapped_column(Integer, nullable=False)

    away_period: Mapped["AwayPeriod"] = relationship("AwayPeriod", back_populates="impacts")

    __table_args__ = (
        UniqueConstraint("away_period_id", "enrolment_id", name="uq_away_period_impacts_pair"),
    )
