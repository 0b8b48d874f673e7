"""
Local durable slot storage.

Backends:
    - MemoryKeyValueStore: in-process, for tests
    - FileKeyValueStore: one JSON file per slot (aiofiles)
    - SQLiteKeyValueStore: single-table SQLite database (aiosqlite)
"""

from __future__ import annotations

from ..config import SyncConfig
from .base import KeyValueStore
from .file import FileKeyValueStore
from .memory import MemoryKeyValueStore
from .sqlite import SQLiteKeyValueStore


async def create_key_value_store(config: SyncConfig) -> KeyValueStore:
    """Build the slot store selected by ``config.storage_backend``."""
    if config.storage_backend == "memory":
        return MemoryKeyValueStore()
    if config.storage_backend == "sqlite":
        return await SQLiteKeyValueStore.create(config.storage_path / "client.db")
    return FileKeyValueStore(config.storage_path)


__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "FileKeyValueStore",
    "SQLiteKeyValueStore",
    "create_key_value_store",
]
