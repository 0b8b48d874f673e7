"""
Retry flusher.

Drains the durable queue one write at a time, in FIFO order, whenever
connectivity is restored and on a fixed interval. Each failed attempt
bumps the write's retry count; a write that reaches the ceiling is
dropped and the user is told which content was lost.

Flushing is a two-state machine (IDLE, FLUSHING). A flush requested
while a pass is running joins that pass instead of starting another.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, replace
from enum import Enum

from .connectivity import ConnectivityMonitor
from .exceptions import PermanentWriteError, StorageIOError
from .models import QueuedWrite
from .offline_queue import DurableQueueStore
from .reconcile import (
    DiscardReason,
    ReconcileChannel,
    WriteConfirmed,
    WriteDiscarded,
    WritesSynced,
)
from .remote import RemoteWriter

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 5


class FlushState(Enum):
    """Current state of the flusher."""

    IDLE = "idle"
    FLUSHING = "flushing"


@dataclass
class FlushResult:
    """Result of one pass over the queue."""

    synced: int = 0
    failed: int = 0
    dropped: int = 0
    rejected: int = 0
    remaining: int = 0
    coalesced: bool = False


class RetryFlusher:
    """Sequential retry loop over the durable queue.

    The flusher is the queue's owner after the initial enqueue: it is the
    only component that updates or removes queued writes.
    """

    def __init__(
        self,
        remote: RemoteWriter,
        queue: DurableQueueStore,
        channel: ReconcileChannel,
        max_retries: int = DEFAULT_MAX_RETRIES,
        interval: float = 30.0,
        write_timeout: float = 30.0,
        connectivity: ConnectivityMonitor | None = None,
    ):
        """Initialize the flusher.

        Args:
            remote: Remote write operation
            queue: Durable queue to drain
            channel: Channel to the Reconciler
            max_retries: Failed flush attempts before a write is dropped
            interval: Seconds between timer-driven passes
            write_timeout: Seconds before an attempt counts as failed
            connectivity: Source of online events; timer passes are skipped
                while a probing monitor reports offline
        """
        self.remote = remote
        self.queue = queue
        self.channel = channel
        self.max_retries = max_retries
        self.interval = interval
        self.write_timeout = write_timeout
        self.connectivity = connectivity

        self._state = FlushState.IDLE
        self._pass: asyncio.Task[FlushResult] | None = None
        self._timer: asyncio.Task[None] | None = None

        if connectivity is not None:
            connectivity.on_online(self._on_online)

    @property
    def state(self) -> FlushState:
        return self._state

    def _transition(self, expected: FlushState, target: FlushState) -> bool:
        """Move to ``target`` only from ``expected``."""
        if self._state is not expected:
            return False
        self._state = target
        return True

    # =========================================================================
    # Triggers
    # =========================================================================

    def trigger(self) -> asyncio.Task[FlushResult]:
        """Start a pass if idle; otherwise return the running one."""
        if self._transition(FlushState.IDLE, FlushState.FLUSHING):
            task = asyncio.create_task(self._run_pass())
            self._pass = task
            return task
        return self._pass  # type: ignore[return-value]

    async def flush(self) -> FlushResult:
        """Run a pass now, or join the pass already in progress."""
        joining = self._state is FlushState.FLUSHING
        result = await asyncio.shield(self.trigger())
        return replace(result, coalesced=True) if joining else result

    def _on_online(self) -> None:
        logger.info("Connection restored, flushing queue")
        self.trigger()

    async def start(self) -> None:
        """Flush once if online, then flush every ``interval`` seconds."""
        if self._timer is not None:
            return

        if self.connectivity is None or self.connectivity.is_online:
            self.trigger()

        async def timer_loop() -> None:
            while True:
                await asyncio.sleep(self.interval)
                if self._known_offline():
                    logger.debug("Offline, skipping timed flush")
                    continue
                try:
                    await self.flush()
                except Exception:
                    logger.exception("Timed flush failed")

        self._timer = asyncio.create_task(timer_loop())

    def _known_offline(self) -> bool:
        """Offline as reported by a monitor that probes the backend itself."""
        monitor = self.connectivity
        return monitor is not None and monitor.is_probing and not monitor.is_online

    async def stop(self) -> None:
        """Stop the timer and let a running pass finish."""
        if self._timer is not None:
            self._timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer
            self._timer = None

        if self._pass is not None and not self._pass.done():
            await asyncio.gather(self._pass, return_exceptions=True)

    # =========================================================================
    # Pass
    # =========================================================================

    async def _run_pass(self) -> FlushResult:
        result = FlushResult()
        try:
            await self.queue.load()
            pending = self.queue.list()
            if pending:
                logger.info(
                    f"Flushing {len(pending)} queued writes", extra={"queue_size": len(pending)}
                )

            # Writes enqueued during the pass wait for the next trigger
            for write in pending:
                if self.queue.get(write.temp_id) is None:
                    continue
                await self._attempt(write, result)

            result.remaining = len(self.queue)
        finally:
            self._transition(FlushState.FLUSHING, FlushState.IDLE)

        if result.synced:
            self.channel.publish(WritesSynced(count=result.synced))
        if result.remaining:
            logger.info(f"{result.remaining} writes still queued")
        return result

    async def _attempt(self, write: QueuedWrite, result: FlushResult) -> None:
        try:
            async with asyncio.timeout(self.write_timeout):
                entry = await self.remote.write(write.payload)
        except PermanentWriteError as e:
            logger.warning(
                f"Queued write {write.temp_id} rejected: {e.reason}",
                extra={"temp_id": write.temp_id},
            )
            await self._remove(write.temp_id)
            self.channel.publish(
                WriteDiscarded(
                    temp_id=write.temp_id,
                    reason=DiscardReason.REJECTED,
                    content=write.payload.content,
                    error=e.reason,
                )
            )
            result.rejected += 1
            return
        except Exception as e:
            await self._record_failure(write, str(e) or type(e).__name__, result)
            return

        self.channel.publish(WriteConfirmed(temp_id=write.temp_id, entry=entry, from_queue=True))
        await self._remove(write.temp_id)
        result.synced += 1
        logger.info(
            f"Synced queued write {write.temp_id} as {entry.id}",
            extra={"temp_id": write.temp_id, "entry_id": entry.id},
        )

    async def _record_failure(self, write: QueuedWrite, error: str, result: FlushResult) -> None:
        retry_count = write.retry_count + 1

        if retry_count >= self.max_retries:
            logger.warning(
                f"Dropping write {write.temp_id} after {retry_count} failed attempts: {error}",
                extra={"temp_id": write.temp_id, "retry_count": retry_count},
            )
            await self._remove(write.temp_id)
            self.channel.publish(
                WriteDiscarded(
                    temp_id=write.temp_id,
                    reason=DiscardReason.RETRIES_EXHAUSTED,
                    content=write.payload.content,
                    error=error,
                )
            )
            result.dropped += 1
            return

        logger.info(
            f"Write {write.temp_id} failed (attempt {retry_count}/{self.max_retries}): {error}",
            extra={"temp_id": write.temp_id, "retry_count": retry_count},
        )
        try:
            await self.queue.update(write.temp_id, retry_count=retry_count)
        except StorageIOError:
            logger.exception(f"Could not persist retry count for {write.temp_id}")
        result.failed += 1

    async def _remove(self, temp_id: str) -> None:
        try:
            await self.queue.remove(temp_id)
        except StorageIOError:
            # Removed in memory; a restart may retry it once more
            logger.exception(f"Could not persist removal of {temp_id}")
