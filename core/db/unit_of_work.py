"""Transaction boundary for mutating service operations."""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from core.logging import get_logger

logger = get_logger(__name__)

_DEPTH_KEY = "unit_of_work_depth"


class UnitOfWork:
    """
    Async context manager that commits on clean exit and rolls back on error.

    Nested units on the same session join the outermost one: only the
    outermost exit commits or rolls back, so a service operation can call
    another without committing half of its work.

    Usage:
        async with UnitOfWork(db_session):
            ...
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @property
    def depth(self) -> int:
        return self.session.info.get(_DEPTH_KEY, 0)

    async def __aenter__(self) -> "UnitOfWork":
        self.session.info[_DEPTH_KEY] = self.depth + 1
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        depth = self.depth - 1
        self.session.info[_DEPTH_KEY] = depth
        if depth > 0:
            return

        if exc_type is not None:
            await self.session.rollback()
            logger.debug(f"Unit of work rolled back: {exc_type.__name__}")
            return

        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.error("Unit of work commit failed, rolled back")
            raise
