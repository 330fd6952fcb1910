from typing import Any, AsyncGenerator, Dict

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from core.config import config


def get_engine_config(database_url: str) -> Dict[str, Any]:
    """Engine keyword arguments for the configured backend.

    Postgres gets a pre-pinged connection pool. SQLite (tests and local
    development) runs without pooling.
    """
    config_dict: Dict[str, Any] = {"echo": False}

    if "postgresql" in database_url:
        config_dict.update({
            "pool_size": config.DATABASE_POOL_SIZE,
            "max_overflow": config.DATABASE_MAX_OVERFLOW,
            "pool_recycle": 3600,
            "pool_pre_ping": True,
        })
    elif "sqlite" in database_url:
        config_dict.update({
            "connect_args": {"check_same_thread": False},
            "poolclass": NullPool,
        })

    return config_dict


engine = create_async_engine(
    config.DATABASE_URL,
    **get_engine_config(config.DATABASE_URL)
)


def enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    """SQLite ignores foreign keys unless asked on every connection."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


if "sqlite" in config.DATABASE_URL:
    event.listen(engine.sync_engine, "connect", enable_sqlite_foreign_keys)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides an async database session.

    Usage:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
