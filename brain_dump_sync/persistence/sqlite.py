"""
SQLite-backed slot storage.

A single ``kv`` table in one database file. Useful when the host already
keeps other client state in SQLite.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import aiosqlite

from ..exceptions import StorageConnectionError, StorageIOError
from .base import KeyValueStore

logger = logging.getLogger(__name__)


class SQLiteKeyValueStore(KeyValueStore):
    """Stores slots as rows of ``kv(key TEXT PRIMARY KEY, value TEXT)``."""

    def __init__(self, db_path: str | Path = ":memory:"):
        self.db_path = db_path
        self.conn: Any = None  # aiosqlite.Connection
        self._initialized = False

    @classmethod
    async def create(cls, db_path: str | Path = ":memory:") -> SQLiteKeyValueStore:
        """Create and initialize the store."""
        store = cls(db_path)
        await store.initialize()
        return store

    async def initialize(self) -> None:
        """Open the connection and create the table."""
        if self._initialized:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self.conn = await aiosqlite.connect(str(self.db_path))
            await self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            await self.conn.commit()
        except Exception as e:
            raise StorageConnectionError(str(self.db_path), e) from e

        self._initialized = True
        logger.debug(f"SQLite slot store ready: {self.db_path}")

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    async def read(self, key: str) -> str | None:
        await self._ensure_initialized()
        try:
            async with self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageIOError("read", key, e) from e
        return row[0] if row else None

    async def write(self, key: str, value: str) -> None:
        await self._ensure_initialized()
        try:
            await self.conn.execute(
                """
                INSERT INTO kv (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value),
            )
            await self.conn.commit()
        except aiosqlite.Error as e:
            raise StorageIOError("write", key, e) from e

    async def clear(self, key: str) -> None:
        await self._ensure_initialized()
        try:
            await self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            await self.conn.commit()
        except aiosqlite.Error as e:
            raise StorageIOError("clear", key, e) from e

    async def close(self) -> None:
        """Close the SQLite connection."""
        if self.conn:
            await self.conn.close()
            self.conn = None
        self._initialized = False
