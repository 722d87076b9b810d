"""
Key-value store protocol and implementations.

The session layer treats persistence as an opaque asynchronous key-value
store. Two implementations are provided:
- SQLAlchemyKeyValueStore: durable storage in a local database
- InMemoryKeyValueStore: process-lifetime storage
"""

import logging
from abc import abstractmethod
from typing import Iterable, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine

from pocket_calendar.database import (
    create_session_factory,
    get_async_db_context,
    init_db,
)
from pocket_calendar.models.storage import StoredValue

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """
    Protocol for asynchronous string key-value stores.

    Implementations may raise on storage failures; callers that need
    best-effort semantics wrap them (see TokenStore).
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value stored under ``key`` or None."""
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any existing value."""
        ...

    @abstractmethod
    async def multi_remove(self, keys: Iterable[str]) -> None:
        """Remove every key in ``keys``. Missing keys are ignored."""
        ...


class InMemoryKeyValueStore(KeyValueStore):
    """Key-value store held in a dict; contents are lost with the process."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def multi_remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class SQLAlchemyKeyValueStore(KeyValueStore):
    """
    Key-value store persisted through SQLAlchemy.

    Each operation runs in its own short session. The table is created
    on first use.
    """

    def __init__(self, engine: AsyncEngine):
        """
        Initialize the store.

        Args:
            engine: Async engine for the backing database
        """
        self._engine = engine
        self._session_factory = create_session_factory(engine)
        self._schema_ready = False

    async def _ensure_schema(self) -> None:
        if not self._schema_ready:
            await init_db(self._engine)
            self._schema_ready = True

    async def get(self, key: str) -> Optional[str]:
        await self._ensure_schema()
        async with get_async_db_context(self._session_factory) as session:
            result = await session.execute(
                select(StoredValue.value).where(StoredValue.key == key)
            )
            return result.scalar_one_or_none()

    async def set(self, key: str, value: str) -> None:
        await self._ensure_schema()
        async with get_async_db_context(self._session_factory) as session:
            existing = await session.get(StoredValue, key)
            if existing:
                existing.value = value
            else:
                session.add(StoredValue(key=key, value=value))
        logger.debug(f"Stored value for key {key!r}")

    async def multi_remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        await self._ensure_schema()
        async with get_async_db_context(self._session_factory) as session:
            await session.execute(
                delete(StoredValue).where(StoredValue.key.in_(keys))
            )
        logger.debug(f"Removed keys {keys}")
