"""
Optimistic view store.

The ordered collection of entries currently shown to the user, newest
first. Entries are addressed by ``Entry.key``: the temp_id while pending,
the canonical id once confirmed. Only the Reconciler mutates this store.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime

from ..models import IMPORTANT_SCORE, Entry, ViewStats, utc_now


class OptimisticViewStore:
    """Ordered, key-unique collection of entries."""

    def __init__(self) -> None:
        self._entries: list[Entry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(list(self._entries))

    def __contains__(self, key: object) -> bool:
        return self.index_of(key) is not None  # type: ignore[arg-type]

    def entries(self) -> list[Entry]:
        """Snapshot of the entries in display order."""
        return list(self._entries)

    def pending(self) -> list[Entry]:
        return [e for e in self._entries if e.pending]

    def index_of(self, key: str) -> int | None:
        for index, entry in enumerate(self._entries):
            if entry.key == key:
                return index
        return None

    def get(self, key: str) -> Entry | None:
        index = self.index_of(key)
        return self._entries[index] if index is not None else None

    def get_by_id(self, entry_id: str) -> Entry | None:
        """Find a confirmed entry by canonical id."""
        for entry in self._entries:
            if not entry.pending and entry.id == entry_id:
                return entry
        return None

    def insert(self, entry: Entry, index: int = 0) -> bool:
        """Insert at ``index`` (head by default) unless the key is present.

        Returns:
            True if inserted
        """
        if entry.key in self:
            return False
        self._entries.insert(max(0, min(index, len(self._entries))), entry)
        return True

    def append(self, entry: Entry) -> bool:
        return self.insert(entry, len(self._entries))

    def replace(self, key: str, entry: Entry) -> bool:
        """Swap the entry stored under ``key`` in place."""
        index = self.index_of(key)
        if index is None:
            return False
        self._entries[index] = entry
        return True

    def remove(self, key: str) -> Entry | None:
        index = self.index_of(key)
        if index is None:
            return None
        return self._entries.pop(index)

    def retain(self, keep: list[Entry]) -> None:
        """Replace the whole contents, dropping duplicate keys."""
        self._entries = []
        for entry in keep:
            self.append(entry)

    def stats(self, now: datetime | None = None) -> ViewStats:
        """Count entries by day, importance and type."""
        now = now or utc_now()
        today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

        stats = ViewStats(total=len(self._entries))
        for entry in self._entries:
            if entry.created_at >= today_start:
                stats.today += 1
            if (entry.importance_score or 0) >= IMPORTANT_SCORE:
                stats.important += 1
            stats.by_type[entry.content_type] = stats.by_type.get(entry.content_type, 0) + 1
        return stats
