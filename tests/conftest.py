"""
Shared test configuration and fixtures.

Provides in-memory fakes for the remote collaborators (save function,
entry listing, realtime feed) so sync behaviour can be tested without a
backend.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from brain_dump_sync.config import SyncConfig
from brain_dump_sync.models import Entry, WriteRequest
from brain_dump_sync.offline_queue import DurableQueueStore
from brain_dump_sync.persistence import MemoryKeyValueStore
from brain_dump_sync.reconcile import ReconcileChannel, ReconcileMessage, Reconciler
from brain_dump_sync.remote import EntrySource, RealtimeTransport, RemoteWriter

USER_ID = "user-1"
BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

_ids = itertools.count(1)


def ts(seconds: int = 0) -> datetime:
    """A fixed instant offset from BASE_TIME."""
    return BASE_TIME + timedelta(seconds=seconds)


def make_record(
    entry_id: str,
    content: str = "note",
    *,
    user_id: str = USER_ID,
    created: int = 0,
    updated: int | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Server row for an entry."""
    record = {
        "id": entry_id,
        "user_id": user_id,
        "content": content,
        "title": content[:50],
        "content_type": "note",
        "created_at": ts(created).isoformat(),
        "updated_at": ts(created if updated is None else updated).isoformat(),
    }
    record.update(extra)
    return record


def make_entry(entry_id: str, content: str = "note", **kwargs: Any) -> Entry:
    return Entry.from_record(make_record(entry_id, content, **kwargs))


class FakeRemoteWriter(RemoteWriter):
    """Remote writer that replays scripted outcomes.

    Each call consumes the next outcome: an Exception is raised, an Entry
    is returned as is. Once the script is exhausted every write succeeds
    with a fresh canonical id.
    """

    def __init__(self, outcomes: list[Any] | None = None):
        self.outcomes = list(outcomes or [])
        self.calls: list[WriteRequest] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def write(self, request: WriteRequest) -> Entry:
        self.calls.append(request)
        if self.gate is not None:
            await self.gate.wait()

        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome

        return make_entry(f"entry-{next(_ids)}", request.content, user_id=request.user_id)

    async def close(self) -> None:
        self.closed = True


class FakeEntrySource(EntrySource):
    """Entry listing that serves fixed pages."""

    def __init__(self, pages: list[Any] | None = None):
        self.pages = list(pages or [])
        self.calls: list[dict[str, Any]] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def list_entries(
        self,
        user_id: str,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[Entry]:
        self.calls.append({"user_id": user_id, "limit": limit, "before": before})
        if self.gate is not None:
            await self.gate.wait()
        if not self.pages:
            return []
        page = self.pages.pop(0)
        if isinstance(page, BaseException):
            raise page
        return list(page)

    async def close(self) -> None:
        self.closed = True


class FakeTransport(RealtimeTransport):
    """Realtime feed driven by scripted connections.

    Each ``stream`` call consumes one connection: a list of payloads to
    yield before the connection ends, or an Exception raised on connect.
    With no connections left the stream stays open and silent.
    """

    def __init__(self, connections: list[Any] | None = None):
        self.connections = list(connections or [])
        self.streams: list[tuple[str, str, str]] = []
        self.closed = False

    async def stream(self, topic: str, user_id: str, table: str) -> AsyncIterator[dict[str, Any]]:
        self.streams.append((topic, user_id, table))
        if not self.connections:
            await asyncio.Event().wait()
            return

        connection = self.connections.pop(0)
        if isinstance(connection, BaseException):
            raise connection
        for payload in connection:
            yield payload

    async def close(self) -> None:
        self.closed = True


class Recorder:
    """Channel listener that keeps every message."""

    def __init__(self) -> None:
        self.messages: list[ReconcileMessage] = []

    def __call__(self, message: ReconcileMessage) -> None:
        self.messages.append(message)

    def of_type(self, kind: type) -> list[Any]:
        return [m for m in self.messages if isinstance(m, kind)]


async def settle(times: int = 5) -> None:
    """Let scheduled tasks run."""
    for _ in range(times):
        await asyncio.sleep(0)


@pytest.fixture
def storage() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def queue(storage: MemoryKeyValueStore) -> DurableQueueStore:
    return DurableQueueStore(storage)


@pytest.fixture
def reconciler() -> Reconciler:
    return Reconciler()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def channel(reconciler: Reconciler, recorder: Recorder) -> ReconcileChannel:
    channel = ReconcileChannel(reconciler)
    channel.subscribe(recorder)
    return channel


@pytest.fixture
def remote() -> FakeRemoteWriter:
    return FakeRemoteWriter()


@pytest.fixture
def config() -> SyncConfig:
    return SyncConfig(
        base_url="https://project.example.co",
        api_key="anon-key",
        user_id=USER_ID,
        storage_backend="memory",
        flush_interval=60.0,
        reconnect_delay=0.01,
        write_timeout=1.0,
    )
