"""Class schedule models: levels, weekly templates, holidays and cancellations."""

from datetime import date
from typing import Optional, Sequence
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    or_,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base, TimestampMixin


class Level(Base, TimestampMixin):
    __tablename__ = "levels"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)


class ClassTemplate(Base, TimestampMixin):
    """A recurring weekly class slot. No weekday means no occurrences."""

    __tablename__ = "class_templates"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    level_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("levels.id", ondelete="SET NULL"), nullable=True, index=True
    )
    day_of_week: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 0 = Monday
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    start_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    end_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @classmethod
    async def get_by_id(cls, db_session: AsyncSession, template_id: str) -> Optional["ClassTemplate"]:
        return await db_session.get(cls, template_id)

    @classmethod
    async def get_many(
        cls, db_session: AsyncSession, template_ids: Sequence[str]
    ) -> Sequence["ClassTemplate"]:
        if not template_ids:
            return []
        result = await db_session.execute(select(cls).where(cls.id.in_(template_ids)))
        return result.scalars().all()


class Holiday(Base, TimestampMixin):
    """Closed date range with no classes.

    Global when neither template nor level is set, otherwise limited to
    the matching template and/or level.
    """

    __tablename__ = "holidays"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    template_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("class_templates.id", ondelete="CASCADE"), nullable=True
    )
    level_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("levels.id", ondelete="CASCADE"), nullable=True
    )
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @classmethod
    async def get_by_id(cls, db_session: AsyncSession, holiday_id: str) -> Optional["Holiday"]:
        return await db_session.get(cls, holiday_id)

    @classmethod
    async def list_for_templates(
        cls,
        db_session: AsyncSession,
        template_ids: Sequence[str],
        level_ids: Sequence[Optional[str]],
    ) -> Sequence["Holiday"]:
        """Holidays that can touch any of the given templates."""
        scoped_levels = [level_id for level_id in level_ids if level_id]
        template_clause = cls.template_id.is_(None)
        if template_ids:
            template_clause = or_(template_clause, cls.template_id.in_(template_ids))
        level_clause = cls.level_id.is_(None)
        if scoped_levels:
            level_clause = or_(level_clause, cls.level_id.in_(scoped_levels))
        result = await db_session.execute(
            select(cls).where(template_clause, level_clause).order_by(cls.start_date)
        )
        return result.scalars().all()

    @classmethod
    async def list_all(cls, db_session: AsyncSession) -> Sequence["Holiday"]:
        result = await db_session.execute(select(cls).order_by(cls.start_date))
        return result.scalars().all()


class ClassCancellation(Base, TimestampMixin):
    """A single cancelled occurrence of one template."""

    __tablename__ = "class_cancellations"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    template_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("class_templates.id", ondelete="CASCADE"), nullable=False
    )
    cancelled_on: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    __table_args__ = (
        UniqueConstraint("template_id", "cancelled_on", name="uq_class_cancellations_template_day"),
    )

    @classmethod
    async def get_for_day(
        cls, db_session: AsyncSession, template_id: str, day: date
    ) -> Optional["ClassCancellation"]:
        result = await db_session.execute(
            select(cls).where(cls.template_id == template_id, cls.cancelled_on == day)
        )
        return result.scalar_one_or_none()

    @classmethod
    async def list_for_templates(
        cls, db_session: AsyncSession, template_ids: Sequence[str]
    ) -> Sequence["ClassCancellation"]:
        if not template_ids:
            return []
        result = await db_session.execute(
            select(cls).where(cls.template_id.in_(template_ids)).order_by(cls.cancelled_on)
        )
        return result.scalars().all()
