"""Database engine and session helpers for the SQLite key-value store."""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Tuple

from loguru import logger
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_scoped_session,
    async_sessionmaker,
    create_async_engine,
)

from streamnotes.models import Base


def get_database_url(db_path: Path) -> str:
    """SQLAlchemy URL for an aiosqlite database file."""
    return f"sqlite+aiosqlite:///{db_path}"


@asynccontextmanager
async def scoped_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a transactional scope around a series of operations.

    Commits on success, rolls back and re-raises on failure.
    """
    factory = async_scoped_session(session_maker, scopefunc=asyncio.current_task)
    try:
        async with factory() as session:
            yield session
            await session.commit()
    except Exception:
        await factory.rollback()
        raise
    finally:
        await factory.remove()


async def create_engine_and_session(
    db_path: Path,
) -> Tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create an engine for ``db_path`` and make sure the schema exists."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db_url = get_database_url(db_path)
    logger.debug(f"Creating engine for {db_url}")

    engine = create_async_engine(db_url, connect_args={"check_same_thread": False})
    session_maker = async_sessionmaker(engine, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return engine, session_maker
