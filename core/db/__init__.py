from core.db.base import Base
from core.db.mixins import TimestampMixin, SoftDeleteMixin
from core.db.session import async_session_factory, engine, get_db
from core.db.unit_of_work import UnitOfWork

__all__ = [
    "Base",
    "TimestampMixin",
    "SoftDeleteMixin",
    "async_session_factory",
    "engine",
    "get_db",
    "UnitOfWork",
]
