from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, func
from sqlalchemy.orm import Mapped, declared_attr, mapped_column


class TimestampMixin:
    """Adds created_at and updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


class SoftDeleteMixin:
    """Soft delete: rows stay in place and are filtered by is_deleted."""

    @declared_attr.directive
    def is_deleted(cls) -> Mapped[bool]:  # type: ignore[override]
        return mapped_column(
            Boolean,
            default=False,
            server_default="false",
            nullable=False,
            index=True,
        )

    @declared_attr.directive
    def deleted_at(cls) -> Mapped[Optional[datetime]]:  # type: ignore[override]
        return mapped_column(DateTime(timezone=True), nullable=True)

    def soft_delete(self, now: Optional[datetime] = None) -> None:
        """Mark the record as deleted without removing it."""
        self.is_deleted = True
        self.deleted_at = now or datetime.now(timezone.utc)


__all__ = ["TimestampMixin", "SoftDeleteMixin"]
