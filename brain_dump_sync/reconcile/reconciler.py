"""
Reconciler: the only writer of the optimistic view.

Merges optimistic placeholders, write confirmations, realtime change
notifications and fetched snapshots into one consistent collection.

Guarantees:
- At most one entry per canonical id.
- ``confirm`` and a realtime ``insert`` for the same write converge to the
  same state whichever arrives first.
- Updates are last-write-wins on ``updated_at``; equal timestamps keep the
  local value.
- A deleted id is never resurrected by a late insert or confirmation.

All operations are synchronous, in-memory and perform no I/O.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import replace
from datetime import datetime
from typing import Any

from ..models import Entry, RealtimeEvent, RealtimeOperation, parse_timestamp
from ..view import OptimisticViewStore
from .messages import (
    PendingCreated,
    ReconcileMessage,
    RealtimeReceived,
    SnapshotLoaded,
    WriteConfirmed,
    WriteDiscarded,
)

logger = logging.getLogger(__name__)

# Bound on remembered deletes and early updates
DEFAULT_HISTORY_LIMIT = 500


class _BoundedMap(OrderedDict):
    """Insertion-ordered map that evicts its oldest keys past ``limit``."""

    def __init__(self, limit: int):
        super().__init__()
        self.limit = limit

    def remember(self, key: str, value: Any) -> None:
        self[key] = value
        self.move_to_end(key)
        while len(self) > self.limit:
            self.popitem(last=False)


class Reconciler:
    """Applies merge operations to an OptimisticViewStore."""

    def __init__(
        self,
        view: OptimisticViewStore | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        self.view = view if view is not None else OptimisticViewStore()
        self._tombstones = _BoundedMap(history_limit)
        self._early_updates = _BoundedMap(history_limit)
        self._touched = _BoundedMap(history_limit)
        self._revision = 0

    @property
    def revision(self) -> int:
        """Counter bumped whenever a confirmed entry is added or changed."""
        return self._revision

    def _touch(self, entry_id: str) -> None:
        self._revision += 1
        self._touched.remember(entry_id, self._revision)

    # =========================================================================
    # Channel dispatch
    # =========================================================================

    def handle(self, message: ReconcileMessage) -> None:
        """Apply a channel message. Messages with no view effect are ignored."""
        if isinstance(message, PendingCreated):
            self.add_pending(message.entry)
        elif isinstance(message, WriteConfirmed):
            self.confirm(message.temp_id, message.entry)
        elif isinstance(message, WriteDiscarded):
            self.discard(message.temp_id)
        elif isinstance(message, RealtimeReceived):
            self.apply(message.event)
        elif isinstance(message, SnapshotLoaded):
            self.load_snapshot(message.entries, append=message.append, since=message.since)

    # =========================================================================
    # Local writes
    # =========================================================================

    def add_pending(self, entry: Entry) -> bool:
        """Show a placeholder at the head of the view."""
        if not entry.pending:
            entry = replace(entry, pending=True)
        return self.view.insert(entry)

    def confirm(self, temp_id: str, canonical: Entry) -> Entry | None:
        """Replace the placeholder ``temp_id`` with the server's entry.

        If the canonical id is already in view (a realtime insert won the
        race) the newer of the two is kept and the placeholder removed.

        Returns:
            The entry now in view for the canonical id, or None if that id
            was deleted meanwhile
        """
        canonical = replace(canonical, pending=False, temp_id=temp_id)
        position = self.view.index_of(temp_id)
        self.view.remove(temp_id)

        if canonical.id is None:
            logger.warning(f"Confirmation for {temp_id} carries no canonical id")
            return None

        if canonical.id in self._tombstones:
            logger.debug(f"Entry {canonical.id} was deleted before confirmation of {temp_id}")
            return None

        canonical = self._with_early_update(canonical)
        existing = self.view.get_by_id(canonical.id)
        if existing is not None:
            winner = canonical if canonical.updated_at > existing.updated_at else existing
            winner = replace(winner, pending=False, temp_id=temp_id)
            self.view.replace(existing.key, winner)
            self._touch(canonical.id)
            return winner

        self.view.insert(canonical, position if position is not None else 0)
        self._touch(canonical.id)
        return canonical

    def discard(self, temp_id: str) -> Entry | None:
        """Remove a placeholder whose write will never be confirmed."""
        return self.view.remove(temp_id)

    # =========================================================================
    # Realtime
    # =========================================================================

    def apply(self, event: RealtimeEvent) -> None:
        """Merge a realtime change notification."""
        entry_id = event.record_id
        if entry_id is None:
            return

        if event.operation == RealtimeOperation.DELETE:
            self._apply_delete(entry_id)
        elif event.operation == RealtimeOperation.INSERT:
            self._apply_insert(entry_id, event)
        elif event.operation == RealtimeOperation.UPDATE:
            self._apply_update(entry_id, event)

    def _apply_insert(self, entry_id: str, event: RealtimeEvent) -> None:
        if entry_id in self._tombstones or self.view.get_by_id(entry_id) is not None:
            return

        entry = self._parse(event.new_record)
        if entry is None:
            return
        entry = self._with_early_update(entry)

        placeholder = self._match_pending(event.new_record or {})
        if placeholder is not None:
            # Our own write, pushed back before its confirmation arrived
            temp_id = placeholder.temp_id or placeholder.key
            self.view.replace(placeholder.key, replace(entry, temp_id=temp_id))
            self._touch(entry_id)
            return

        self.view.insert(entry)
        self._touch(entry_id)

    def _apply_update(self, entry_id: str, event: RealtimeEvent) -> None:
        if entry_id in self._tombstones:
            return

        record = event.new_record or {}
        incoming_ts = self._record_timestamp(record, event)
        existing = self.view.get_by_id(entry_id)

        if existing is None:
            held = self._early_updates.get(entry_id)
            if held is None or (incoming_ts is not None and (held[1] is None or incoming_ts > held[1])):
                self._early_updates.remember(entry_id, (record, incoming_ts))
            return

        if incoming_ts is None or incoming_ts <= existing.updated_at:
            logger.debug(f"Ignoring stale update for {entry_id}")
            return

        merged = self._merge(existing, record, incoming_ts)
        if merged is not None:
            self.view.replace(existing.key, merged)
            self._touch(entry_id)

    def _apply_delete(self, entry_id: str) -> None:
        self._tombstones.remember(entry_id, True)
        self._early_updates.pop(entry_id, None)
        existing = self.view.get_by_id(entry_id)
        if existing is not None:
            self.view.remove(existing.key)

    # =========================================================================
    # Snapshots
    # =========================================================================

    def load_snapshot(
        self,
        entries: list[Entry],
        append: bool = False,
        since: int | None = None,
    ) -> None:
        """Merge a fetched page of entries.

        A replace keeps placeholders at the head, then any confirmed entry
        missing from the page that is newer than the page's newest entry or
        was added or changed after ``since``. Everything else confirmed is
        replaced by the page.

        Args:
            entries: Entries from the server, newest first
            append: True for an older page (pagination); False replaces
                confirmed entries
            since: ``revision`` when the fetch started
        """
        fetched = [
            replace(e, pending=False)
            for e in entries
            if e.id is not None and e.id not in self._tombstones
        ]

        if append:
            for entry in fetched:
                if self.view.get_by_id(entry.id) is None:  # type: ignore[arg-type]
                    self.view.append(entry)
            return

        merged: list[Entry] = []
        for entry in fetched:
            current = self.view.get_by_id(entry.id)  # type: ignore[arg-type]
            if current is not None and current.updated_at > entry.updated_at:
                # A realtime update newer than the fetch already landed
                merged.append(current)
            else:
                merged.append(self._with_early_update(entry))

        fetched_ids = {e.id for e in fetched}
        newest = max((e.created_at for e in fetched), default=None)
        kept = [
            e
            for e in self.view
            if not e.pending
            and e.id not in fetched_ids
            and self._arrived_during_fetch(e, since, newest)
        ]

        self.view.retain(self.view.pending() + kept + merged)

    def _arrived_during_fetch(
        self, entry: Entry, since: int | None, newest: datetime | None
    ) -> bool:
        if newest is not None and entry.created_at > newest:
            return True
        return since is not None and self._touched.get(entry.id, 0) > since

    # =========================================================================
    # Helpers
    # =========================================================================

    def _match_pending(self, record: dict[str, Any]) -> Entry | None:
        """Find the oldest placeholder that this server record fulfils."""
        content = (record.get("content") or "").strip()
        image_url = record.get("image_url")
        user_id = record.get("user_id")

        for entry in reversed(self.view.pending()):
            if user_id and entry.user_id and user_id != entry.user_id:
                continue
            if entry.image_url:
                if image_url == entry.image_url:
                    return entry
            elif content and entry.content.strip() == content:
                return entry
        return None

    def _with_early_update(self, entry: Entry) -> Entry:
        if entry.id is None:
            return entry
        held = self._early_updates.pop(entry.id, None)
        if held is None:
            return entry
        record, ts = held
        if ts is None or ts <= entry.updated_at:
            return entry
        return self._merge(entry, record, ts) or entry

    def _merge(self, existing: Entry, record: dict[str, Any], ts: datetime) -> Entry | None:
        try:
            merged = existing.merged_with(record)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Dropping malformed update for {existing.id}: {e}")
            return None
        return replace(merged, updated_at=ts)

    def _parse(self, record: dict[str, Any] | None) -> Entry | None:
        if not record:
            return None
        try:
            return Entry.from_record(record)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Dropping malformed realtime record: {e}")
            return None

    @staticmethod
    def _record_timestamp(record: dict[str, Any], event: RealtimeEvent) -> datetime | None:
        try:
            ts = parse_timestamp(record.get("updated_at"))
        except (TypeError, ValueError):
            ts = None
        return ts or event.server_timestamp
