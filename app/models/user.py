import enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, Enum, ForeignKey, String, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base, TimestampMixin


class Role(str, enum.Enum):
    """User roles in the system."""
    OWNER = "owner"
    ADMIN = "admin"
    PARENT = "parent"


class User(Base, TimestampMixin):
    """Staff or parent account. Parents are linked to one family."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[Role] = mapped_column(
        Enum(Role, native_enum=True, values_callable=lambda x: [e.value for e in x]),
        default=Role.PARENT,
        nullable=False
    )
    family_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("families.id", ondelete="SET NULL"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.OWNER, Role.ADMIN)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @classmethod
    async def get_by_id(cls, db_session: AsyncSession, user_id: str) -> Optional["User"]:
        result = await db_session.execute(select(cls).where(cls.id == user_id))
        return result.scalar_one_or_none()

    @classmethod
    async def get_by_email(cls, db_session: AsyncSession, email: str) -> Optional["User"]:
        result = await db_session.execute(select(cls).where(cls.email == email.lower()))
        return result.scalar_one_or_none()
