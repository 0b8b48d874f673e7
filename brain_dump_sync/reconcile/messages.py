"""
Typed messages carried on the reconcile channel.

Producers (submitter, flusher, realtime ingestor, snapshot fetch) publish
these; the Reconciler applies them to the view and listeners use them for
user-facing notices.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..models import Entry, RealtimeEvent


class DiscardReason(Enum):
    """Why a pending write was removed without being confirmed."""

    REJECTED = "rejected"  # Server refused the payload; never retried
    RETRIES_EXHAUSTED = "retries_exhausted"  # Dropped from the durable queue


@dataclass(frozen=True)
class PendingCreated:
    """A write was submitted; show its placeholder immediately."""

    entry: Entry


@dataclass(frozen=True)
class WriteConfirmed:
    """The server accepted the write identified by ``temp_id``."""

    temp_id: str
    entry: Entry
    from_queue: bool = False


@dataclass(frozen=True)
class WriteQueued:
    """Submission failed transiently; the write is in the durable queue."""

    temp_id: str
    error: str


@dataclass(frozen=True)
class WriteDiscarded:
    """The pending write is gone for good.

    ``content`` is the text the user wrote, so it can be restored to the
    input or named in a warning.
    """

    temp_id: str
    reason: DiscardReason
    content: str
    error: str | None = None


@dataclass(frozen=True)
class WritesSynced:
    """A flush pass confirmed ``count`` queued writes."""

    count: int


@dataclass(frozen=True)
class RealtimeReceived:
    """A change notification arrived from the push channel."""

    event: RealtimeEvent


@dataclass(frozen=True)
class SnapshotLoaded:
    """A page of entries was fetched from the server.

    ``since`` is the Reconciler revision taken before the fetch started.
    """

    entries: list[Entry] = field(default_factory=list)
    append: bool = False
    since: int | None = None


ReconcileMessage = (
    PendingCreated
    | WriteConfirmed
    | WriteQueued
    | WriteDiscarded
    | WritesSynced
    | RealtimeReceived
    | SnapshotLoaded
)
