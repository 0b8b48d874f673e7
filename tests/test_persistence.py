"""Tests for the slot storage backends."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from brain_dump_sync.config import SyncConfig
from brain_dump_sync.persistence import (
    FileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    SQLiteKeyValueStore,
    create_key_value_store,
)


class TestFileKeyValueStore:
    """Tests for FileKeyValueStore."""

    @pytest.fixture
    def store(self, tmp_path: Path) -> FileKeyValueStore:
        return FileKeyValueStore(tmp_path / "slots")

    async def test_missing_slot(self, store: FileKeyValueStore) -> None:
        assert await store.read("absent") is None

    async def test_write_and_read(self, store: FileKeyValueStore) -> None:
        """Test a value survives a new store instance."""
        await store.write("brain-dump-offline-queue", '[{"temp_id": "t1"}]')

        reopened = FileKeyValueStore(store.base_dir)
        assert await reopened.read("brain-dump-offline-queue") == '[{"temp_id": "t1"}]'

    async def test_overwrite_leaves_no_temp_files(self, store: FileKeyValueStore) -> None:
        await store.write("slot", "one")
        await store.write("slot", "two")

        assert await store.read("slot") == "two"
        assert [p.name for p in store.base_dir.iterdir()] == ["slot.json"]

    async def test_clear(self, store: FileKeyValueStore) -> None:
        await store.write("slot", "value")
        await store.clear("slot")
        await store.clear("slot")

        assert await store.read("slot") is None

    def test_unsafe_key(self, store: FileKeyValueStore) -> None:
        """Test keys cannot escape the base directory."""
        path = store.path_for("../etc/passwd")
        assert path.parent == store.base_dir


class TestSQLiteKeyValueStore:
    """Tests for SQLiteKeyValueStore."""

    @pytest.fixture
    async def store(self, tmp_path: Path) -> AsyncIterator[SQLiteKeyValueStore]:
        store = await SQLiteKeyValueStore.create(tmp_path / "client.db")
        yield store
        await store.close()

    async def test_write_read_clear(self, store: SQLiteKeyValueStore) -> None:
        await store.write("slot", "one")
        await store.write("slot", "two")
        assert await store.read("slot") == "two"

        await store.clear("slot")
        assert await store.read("slot") is None

    async def test_persists_across_connections(self, tmp_path: Path) -> None:
        path = tmp_path / "client.db"
        async with await SQLiteKeyValueStore.create(path) as store:
            await store.write("slot", "kept")

        async with await SQLiteKeyValueStore.create(path) as store:
            assert await store.read("slot") == "kept"


class TestMemoryKeyValueStore:
    """Tests for MemoryKeyValueStore."""

    async def test_initial_data(self) -> None:
        store = MemoryKeyValueStore({"slot": "value"})
        assert await store.read("slot") == "value"

        await store.clear("slot")
        assert store.data == {}


class TestCreateKeyValueStore:
    """Tests for backend selection."""

    @pytest.mark.parametrize(
        ("backend", "expected"),
        [
            ("memory", MemoryKeyValueStore),
            ("file", FileKeyValueStore),
            ("sqlite", SQLiteKeyValueStore),
        ],
    )
    async def test_backend_selection(
        self, tmp_path: Path, backend: str, expected: type[KeyValueStore]
    ) -> None:
        config = SyncConfig(storage_backend=backend, storage_path=tmp_path)
        store = await create_key_value_store(config)
        try:
            assert isinstance(store, expected)
        finally:
            await store.close()
