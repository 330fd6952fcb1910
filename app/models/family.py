"""Family and student models."""

from typing import TYPE_CHECKING, List, Optional
from uuid import uuid4

from sqlalchemy import ForeignKey, String
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.enrolment import Enrolment


class Family(Base, TimestampMixin):
    """A billing account: payments, invoices and away periods hang off it."""

    __tablename__ = "families"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    students: Mapped[List["Student"]] = relationship(
        "Student", back_populates="family", cascade="all, delete-orphan"
    )

    @classmethod
    async def get_by_id(cls, db_session: AsyncSession, family_id: str) -> Optional["Family"]:
        return await db_session.get(cls, family_id)


class Student(Base, TimestampMixin):
    __tablename__ = "students"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    family_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("families.id", ondelete="CASCADE"), nullable=False, index=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    family: Mapped["Family"] = relationship("Family", back_populates="students")
    enrolments: Mapped[List["Enrolment"]] = relationship(
        "Enrolment", back_populates="student"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @classmethod
    async def get_by_id(cls, db_session: AsyncSession, student_id: str) -> Optional["Student"]:
        return await db_session.get(cls, student_id)
