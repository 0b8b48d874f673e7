"""
Dump sync client.

Wires the sync components together behind one object:

    config -> slot storage -> durable queue
    submitter / flusher / realtime ingestor / refresh -> channel -> reconciler -> view

Usage:
    >>> config = SyncConfig.from_yaml()
    >>> async with await DumpSyncClient.create(config) as client:
    ...     client.submit("Buy milk")
    ...     for entry in client.entries():
    ...         print(entry.key, entry.pending, entry.content)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from .config import SyncConfig
from .connectivity import ConnectivityMonitor
from .exceptions import ConfigError, StorageConnectionError
from .flusher import FlushResult, RetryFlusher
from .logging_utils import SyncLoggerAdapter, configure_logging
from .models import Entry, ViewStats
from .offline_queue import DurableQueueStore
from .persistence import KeyValueStore, create_key_value_store
from .realtime import RealtimeIngestor
from .reconcile import (
    PendingCreated,
    ReconcileChannel,
    ReconcileMessage,
    Reconciler,
    SnapshotLoaded,
)
from .remote import (
    EntrySource,
    HttpEntrySource,
    HttpRemoteWriter,
    PhoenixRealtimeTransport,
    RealtimeTransport,
    RemoteWriter,
)
from .submitter import SubmitResult, WriteSubmitter
from .view import OptimisticViewStore

logger = logging.getLogger(__name__)


class DumpSyncClient:
    """Optimistic, offline-tolerant client for one user's entries."""

    def __init__(
        self,
        config: SyncConfig,
        storage: KeyValueStore,
        remote: RemoteWriter,
        source: EntrySource | None = None,
        transport: RealtimeTransport | None = None,
        connectivity: ConnectivityMonitor | None = None,
    ):
        """Initialize the client from already-built collaborators.

        Use ``create`` to build everything from a SyncConfig.

        Args:
            config: Client configuration
            storage: Slot storage for the durable queue
            remote: Remote write operation
            source: Entry listing for refresh and paging; None disables both
            transport: Realtime change feed; None disables realtime
            connectivity: Online/offline signal; a non-probing monitor by default
        """
        self.config = config
        self.storage = storage
        self.remote = remote
        self.source = source
        self.transport = transport
        self.connectivity = connectivity or ConnectivityMonitor()

        self.view = OptimisticViewStore()
        self.reconciler = Reconciler(self.view)
        self.channel = ReconcileChannel(self.reconciler)
        self.queue = DurableQueueStore(
            storage, key=config.queue_key, legacy_keys=config.legacy_queue_keys
        )
        self.submitter = WriteSubmitter(
            config.user_id,
            remote,
            self.queue,
            self.channel,
            write_timeout=config.write_timeout,
        )
        self.flusher = RetryFlusher(
            remote,
            self.queue,
            self.channel,
            max_retries=config.max_retries,
            interval=config.flush_interval,
            write_timeout=config.write_timeout,
            connectivity=self.connectivity,
        )
        self.ingestor: RealtimeIngestor | None = None
        if transport is not None:
            self.ingestor = RealtimeIngestor(
                transport,
                self.channel,
                config.user_id,
                table=config.realtime_table,
                reconnect_delay=config.reconnect_delay,
                on_reconnect=self._refresh_after_reconnect,
            )

        self._started = False
        self.log = SyncLoggerAdapter(logger, {"user_id": config.user_id})

    @classmethod
    async def create(cls, config: SyncConfig) -> DumpSyncClient:
        """Build a client talking to the backend named in ``config``.

        Raises:
            ConfigError: If base_url or user_id is missing
        """
        if not config.base_url:
            raise ConfigError("base_url", "is required")
        if not config.user_id:
            raise ConfigError("user_id", "is required")

        configure_logging(config)
        storage = await create_key_value_store(config)
        remote = HttpRemoteWriter(
            config.base_url,
            api_key=config.api_key,
            access_token=config.access_token,
            timeout=config.write_timeout,
        )
        source = HttpEntrySource(
            config.base_url,
            api_key=config.api_key,
            access_token=config.access_token,
            timeout=config.write_timeout,
            table=config.realtime_table,
        )
        transport = PhoenixRealtimeTransport(
            config.realtime_url,
            api_key=config.api_key,
            access_token=config.access_token,
            heartbeat_interval=config.heartbeat_interval,
        )
        connectivity = ConnectivityMonitor(
            host=config.base_url,
            interval=config.connectivity_interval,
            timeout=config.connectivity_timeout,
        )
        return cls(config, storage, remote, source, transport, connectivity)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Load queued writes, fetch entries and start background sync."""
        if self._started:
            return
        self._started = True

        # Writes left over from an earlier run show as pending again
        for write in await self.queue.load():
            self.channel.publish(PendingCreated(write.pending_entry()))

        await self.refresh()

        await self.connectivity.start()
        await self.flusher.start()
        if self.ingestor is not None:
            await self.ingestor.start()

        self.log.info(
            f"Dump sync client started, {len(self.queue)} writes queued",
            extra={"queue_size": len(self.queue)},
        )

    async def stop(self) -> None:
        """Finish in-flight submissions and stop background sync."""
        await self.submitter.drain()

        if self.ingestor is not None:
            await self.ingestor.stop()
        await self.flusher.stop()
        await self.connectivity.stop()

        await self.remote.close()
        if self.source is not None:
            await self.source.close()
        await self.storage.close()

        self._started = False
        self.log.info("Dump sync client stopped")

    async def __aenter__(self) -> DumpSyncClient:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()

    # =========================================================================
    # Writes
    # =========================================================================

    def submit(
        self,
        content: str,
        *,
        source: str = "manual",
        attachment_ref: str | None = None,
    ) -> str:
        """Add a dump optimistically and deliver it in the background.

        Returns:
            The temp_id of the pending entry
        """
        return self.submitter.submit(content, source=source, attachment_ref=attachment_ref)

    async def submit_and_wait(
        self,
        content: str,
        *,
        source: str = "manual",
        attachment_ref: str | None = None,
    ) -> SubmitResult:
        return await self.submitter.submit_and_wait(
            content, source=source, attachment_ref=attachment_ref
        )

    async def flush(self) -> FlushResult:
        """Retry queued writes now."""
        return await self.flusher.flush()

    def set_online(self, online: bool) -> None:
        """Feed a connectivity signal from the host environment."""
        self.connectivity.set_online(online)

    # =========================================================================
    # Reads
    # =========================================================================

    async def refresh(self) -> bool:
        """Replace confirmed entries with the newest page from the server.

        Returns:
            True if the fetch succeeded
        """
        if self.source is None:
            return False

        since = self.reconciler.revision
        try:
            entries = await self.source.list_entries(
                self.config.user_id, limit=self.config.page_size
            )
        except StorageConnectionError as e:
            logger.warning(f"Refresh failed, keeping current entries: {e}")
            return False

        self.channel.publish(SnapshotLoaded(entries=entries, since=since))
        return True

    async def load_more(self) -> int:
        """Append the page of entries older than the oldest one in view.

        Returns:
            Number of entries fetched; fewer than ``page_size`` means no more
        """
        if self.source is None:
            return 0

        before = self._oldest_confirmed()
        try:
            entries = await self.source.list_entries(
                self.config.user_id, limit=self.config.page_size, before=before
            )
        except StorageConnectionError as e:
            logger.warning(f"Loading older entries failed: {e}")
            return 0

        self.channel.publish(SnapshotLoaded(entries=entries, append=True))
        return len(entries)

    async def _refresh_after_reconnect(self) -> None:
        logger.info("Realtime reconnected, refreshing entries")
        await self.refresh()

    def _oldest_confirmed(self) -> datetime | None:
        confirmed = [e.created_at for e in self.view if not e.pending]
        return min(confirmed) if confirmed else None

    def entries(self) -> list[Entry]:
        """Entries in display order, newest first."""
        return self.view.entries()

    def stats(self) -> ViewStats:
        return self.view.stats()

    @property
    def queue_length(self) -> int:
        return len(self.queue)

    def subscribe(self, listener: Callable[[ReconcileMessage], None]) -> Callable[[], None]:
        """Receive every reconcile message after it is applied to the view.

        Returns:
            A callable that removes the listener
        """
        return self.channel.subscribe(listener)
