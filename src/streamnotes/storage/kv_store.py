"""Key-value stores for persisted mode.

Both implementations satisfy the KeyValueStore protocol. The in-memory store
is used in tests and for throwaway sessions; the SQLite store is what the CLI
uses between runs.
"""

from typing import Dict, Optional, Protocol

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from streamnotes import db
from streamnotes.models import KeyValueEntry
from streamnotes.services.exceptions import QuotaExceededError


class KeyValueStore(Protocol):
    """Protocol for a string key-value store."""

    async def get(self, key: str) -> Optional[str]:
        """Return the stored value or None."""
        ...

    async def set(self, key: str, value: str) -> None:
        """Store a value, raising QuotaExceededError when it does not fit."""
        ...

    async def delete(self, key: str) -> None:
        """Remove a key. Missing keys are ignored."""
        ...


def _size(value: str) -> int:
    return len(value.encode("utf-8"))


class InMemoryKeyValueStore:
    """Dict-backed store with an optional total capacity in bytes."""

    def __init__(self, capacity_bytes: Optional[int] = None):
        self.capacity_bytes = capacity_bytes
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        if self.capacity_bytes is not None:
            used = sum(_size(v) for k, v in self._data.items() if k != key)
            if used + _size(value) > self.capacity_bytes:
                raise QuotaExceededError(
                    f"Writing {_size(value)} bytes under '{key}' exceeds the "
                    f"{self.capacity_bytes} byte capacity"
                )
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SQLiteKeyValueStore:
    """Store backed by a single table in a SQLite database."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        max_value_bytes: Optional[int] = None,
    ):
        self.session_maker = session_maker
        self.max_value_bytes = max_value_bytes

    async def get(self, key: str) -> Optional[str]:
        async with db.scoped_session(self.session_maker) as session:
            result = await session.execute(
                select(KeyValueEntry.value).where(KeyValueEntry.key == key)
            )
            return result.scalar_one_or_none()

    async def set(self, key: str, value: str) -> None:
        if self.max_value_bytes is not None and _size(value) > self.max_value_bytes:
            raise QuotaExceededError(
                f"Value for '{key}' is {_size(value)} bytes, limit is {self.max_value_bytes}"
            )

        stmt = insert(KeyValueEntry).values(key=key, value=value)
        stmt = stmt.on_conflict_do_update(
            index_elements=[KeyValueEntry.key],
            set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
        )
        async with db.scoped_session(self.session_maker) as session:
            await session.execute(stmt)
        logger.trace(f"Stored {_size(value)} bytes under {key}")

    async def delete(self, key: str) -> None:
        async with db.scoped_session(self.session_maker) as session:
            await session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))
