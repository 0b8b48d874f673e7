"""
Durable queue of unconfirmed writes.

Holds writes whose network submission failed so they can be retried
later, in the order the user made them. The whole queue is stored as a
JSON array under one slot of a KeyValueStore:

    [{"temp_id": ..., "payload": {...}, "retry_count": 0, "enqueued_at": ...}, ...]
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import replace
from typing import Any

from ..config import DEFAULT_QUEUE_KEY, LEGACY_QUEUE_KEYS
from ..models import QueuedWrite
from ..persistence import KeyValueStore

logger = logging.getLogger(__name__)

_PATCHABLE_FIELDS = frozenset({"retry_count", "payload", "enqueued_at"})


class DurableQueueStore:
    """FIFO queue of QueuedWrite records persisted through a KeyValueStore.

    The in-memory list is authoritative once loaded; every mutation writes
    the full list back to the slot.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        key: str = DEFAULT_QUEUE_KEY,
        legacy_keys: tuple[str, ...] = LEGACY_QUEUE_KEYS,
    ):
        """Initialize the queue store.

        Args:
            storage: Slot storage backing the queue
            key: Slot holding the current queue
            legacy_keys: Slots written by earlier releases, discarded on load
        """
        self.storage = storage
        self.key = key
        self.legacy_keys = legacy_keys
        self._writes: list[QueuedWrite] = []
        self._loaded = False
        self._load_lock = asyncio.Lock()
        self._persist_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._writes)

    async def load(self) -> list[QueuedWrite]:
        """Load the queue from storage (once) and drop legacy slots."""
        await self._ensure_loaded()
        return self.list()

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return

        async with self._load_lock:
            if self._loaded:
                return

            await self._discard_legacy()

            raw = await self.storage.read(self.key)
            self._writes = self._decode(raw) if raw else []
            self._loaded = True

            if self._writes:
                logger.info(f"Loaded {len(self._writes)} queued writes")

    async def _discard_legacy(self) -> None:
        for legacy_key in self.legacy_keys:
            if await self.storage.read(legacy_key) is None:
                continue
            logger.warning(f"Discarding queue data stored under legacy key '{legacy_key}'")
            await self.storage.clear(legacy_key)

    def _decode(self, raw: str) -> list[QueuedWrite]:
        try:
            items = json.loads(raw)
        except json.JSONDecodeError as e:
            # If queue is corrupted, start fresh
            logger.error(f"Queue slot '{self.key}' is not valid JSON, starting empty: {e}")
            return []

        if not isinstance(items, list):
            logger.error(f"Queue slot '{self.key}' does not hold a list, starting empty")
            return []

        writes: list[QueuedWrite] = []
        seen: set[str] = set()
        for item in items:
            try:
                write = QueuedWrite.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed queued write: {e}")
                continue
            if write.temp_id in seen:
                continue
            seen.add(write.temp_id)
            writes.append(write)
        return writes

    async def _persist(self) -> None:
        async with self._persist_lock:
            # Snapshot inside the lock so the last write always carries the newest state
            if not self._writes:
                await self.storage.clear(self.key)
                return
            payload: list[dict[str, Any]] = [w.to_dict() for w in self._writes]
            await self.storage.write(self.key, json.dumps(payload))

    async def enqueue(self, write: QueuedWrite) -> None:
        """Append a write to the tail of the queue.

        A write whose temp_id is already queued is ignored.
        """
        await self._ensure_loaded()
        if any(w.temp_id == write.temp_id for w in self._writes):
            logger.debug(f"Write {write.temp_id} already queued")
            return

        self._writes.append(write)
        await self._persist()
        logger.info(f"Queued write {write.temp_id}, queue size: {len(self._writes)}")

    def list(self) -> list[QueuedWrite]:
        """Return queued writes in FIFO order."""
        return list(self._writes)

    def get(self, temp_id: str) -> QueuedWrite | None:
        for write in self._writes:
            if write.temp_id == temp_id:
                return write
        return None

    async def remove(self, temp_id: str) -> bool:
        """Remove a write.

        Returns:
            True if the write was queued
        """
        await self._ensure_loaded()
        before = len(self._writes)
        self._writes = [w for w in self._writes if w.temp_id != temp_id]
        if len(self._writes) == before:
            return False
        await self._persist()
        return True

    async def update(self, temp_id: str, **patch: Any) -> QueuedWrite | None:
        """Apply a field patch to a queued write, keeping its position.

        Args:
            temp_id: Write to patch
            **patch: Field values (retry_count, payload, enqueued_at)

        Returns:
            The updated write, or None if it is not queued
        """
        unknown = set(patch) - _PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot patch queued write fields: {', '.join(sorted(unknown))}")

        await self._ensure_loaded()
        for index, write in enumerate(self._writes):
            if write.temp_id == temp_id:
                updated = replace(write, **patch)
                self._writes[index] = updated
                await self._persist()
                return updated
        return None

    async def clear(self) -> None:
        """Drop every queued write."""
        await self._ensure_loaded()
        self._writes = []
        await self._persist()
