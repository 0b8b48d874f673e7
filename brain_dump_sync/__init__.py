"""
Brain Dump Sync

Optimistic, offline-tolerant sync client for brain-dump entries.

Provides:
- Instant optimistic placeholders for submitted dumps
- Durable offline queue with bounded retries
- Realtime change ingestion with auto-reconnect
- Reconciliation of confirmations, realtime changes and fetched pages
  without duplicates

Usage:

    >>> from brain_dump_sync import DumpSyncClient, SyncConfig
    >>> config = SyncConfig.from_yaml()
    >>> async with await DumpSyncClient.create(config) as client:
    ...     temp_id = client.submit("Buy milk")
    ...     client.entries()[0].pending
    True

Notices:

    # React to confirmations, queueing and lost writes
    from brain_dump_sync import WriteDiscarded

    def on_message(message):
        if isinstance(message, WriteDiscarded):
            print(f"Could not save: {message.content}")

    unsubscribe = client.subscribe(on_message)

Storage Selection:

    # One JSON file per slot (default)
    SyncConfig(storage_backend="file", storage_path="~/.brain-dump/storage")

    # SQLite database
    SyncConfig(storage_backend="sqlite")

    # In-memory, for tests
    SyncConfig(storage_backend="memory")
"""

from .client import DumpSyncClient
from .config import SyncConfig
from .connectivity import ConnectivityMonitor

# Exceptions
from .exceptions import (
    ConfigError,
    DumpSyncError,
    PermanentWriteError,
    StorageConnectionError,
    StorageIOError,
    TransientWriteError,
    ValidationError,
    WriteError,
)
from .flusher import FlushResult, FlushState, RetryFlusher
from .logging_utils import SyncLoggerAdapter, configure_logging

# Data model
from .models import (
    Entry,
    QueuedWrite,
    RealtimeEvent,
    RealtimeOperation,
    ViewStats,
    WriteRequest,
)
from .offline_queue import DurableQueueStore
from .persistence import (
    FileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    SQLiteKeyValueStore,
)
from .realtime import RealtimeIngestor

# Reconciliation
from .reconcile import (
    DiscardReason,
    PendingCreated,
    RealtimeReceived,
    ReconcileChannel,
    ReconcileMessage,
    Reconciler,
    SnapshotLoaded,
    WriteConfirmed,
    WriteDiscarded,
    WriteQueued,
    WritesSynced,
)
from .submitter import SubmitOutcome, SubmitResult, WriteSubmitter
from .view import OptimisticViewStore

__all__ = [
    # Client
    "DumpSyncClient",
    "SyncConfig",
    # Components
    "WriteSubmitter",
    "SubmitOutcome",
    "SubmitResult",
    "DurableQueueStore",
    "RetryFlusher",
    "FlushState",
    "FlushResult",
    "ConnectivityMonitor",
    "RealtimeIngestor",
    "Reconciler",
    "ReconcileChannel",
    "OptimisticViewStore",
    # Messages
    "ReconcileMessage",
    "DiscardReason",
    "PendingCreated",
    "WriteConfirmed",
    "WriteQueued",
    "WriteDiscarded",
    "WritesSynced",
    "RealtimeReceived",
    "SnapshotLoaded",
    # Data model
    "Entry",
    "WriteRequest",
    "QueuedWrite",
    "RealtimeEvent",
    "RealtimeOperation",
    "ViewStats",
    # Storage
    "KeyValueStore",
    "MemoryKeyValueStore",
    "FileKeyValueStore",
    "SQLiteKeyValueStore",
    # Logging
    "configure_logging",
    "SyncLoggerAdapter",
    # Exceptions
    "DumpSyncError",
    "ValidationError",
    "WriteError",
    "TransientWriteError",
    "PermanentWriteError",
    "StorageIOError",
    "StorageConnectionError",
    "ConfigError",
]

__version__ = "0.1.0"
