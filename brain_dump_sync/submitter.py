"""
Write submitter.

Turns a user's dump into an optimistic placeholder immediately, then
delivers it to the remote write operation in the background. Failures
never remove content from view: transient ones go to the durable queue,
permanent rejections are discarded with the original text handed back.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from .exceptions import (
    PermanentWriteError,
    StorageIOError,
    TransientWriteError,
    ValidationError,
)
from .models import Entry, QueuedWrite, WriteRequest, new_temp_id
from .offline_queue import DurableQueueStore
from .reconcile import (
    DiscardReason,
    PendingCreated,
    ReconcileChannel,
    WriteConfirmed,
    WriteDiscarded,
    WriteQueued,
)
from .remote import RemoteWriter

logger = logging.getLogger(__name__)


class SubmitOutcome(Enum):
    """How a submission ended."""

    CONFIRMED = "confirmed"
    QUEUED = "queued"
    REJECTED = "rejected"


@dataclass
class SubmitResult:
    """Result of delivering one submission."""

    temp_id: str
    outcome: SubmitOutcome
    entry: Entry | None = None
    error: str | None = None


class WriteSubmitter:
    """Accepts user writes and drives their first delivery attempt.

    The submitter only ever appends to the durable queue; retrying and
    removing queued writes belongs to the RetryFlusher.
    """

    def __init__(
        self,
        user_id: str,
        remote: RemoteWriter,
        queue: DurableQueueStore,
        channel: ReconcileChannel,
        write_timeout: float = 30.0,
    ):
        """Initialize the submitter.

        Args:
            user_id: Authenticated user the writes belong to
            remote: Remote write operation
            queue: Durable queue for writes that fail transiently
            channel: Channel to the Reconciler
            write_timeout: Seconds before an attempt counts as a transient failure
        """
        self.user_id = user_id
        self.remote = remote
        self.queue = queue
        self.channel = channel
        self.write_timeout = write_timeout
        self._in_flight: set[asyncio.Task[SubmitResult]] = set()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def _prepare(
        self,
        content: str,
        source: str,
        attachment_ref: str | None,
    ) -> tuple[str, WriteRequest]:
        text = content.strip()
        if not text and not attachment_ref:
            raise ValidationError("content", "content or an attachment is required")

        request = WriteRequest(
            content=text,
            user_id=self.user_id,
            source=source,
            attachment_ref=attachment_ref,
        )
        temp_id = new_temp_id()
        self.channel.publish(PendingCreated(Entry.pending_from(request, temp_id)))
        return temp_id, request

    def submit(
        self,
        content: str,
        *,
        source: str = "manual",
        attachment_ref: str | None = None,
    ) -> str:
        """Show the write as pending and start delivering it.

        Must be called from a running event loop. Returns before any
        network round-trip.

        Returns:
            The temp_id of the placeholder entry

        Raises:
            ValidationError: If there is neither content nor an attachment
        """
        temp_id, request = self._prepare(content, source, attachment_ref)
        task = asyncio.create_task(self._deliver(temp_id, request))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return temp_id

    async def submit_and_wait(
        self,
        content: str,
        *,
        source: str = "manual",
        attachment_ref: str | None = None,
    ) -> SubmitResult:
        """Like ``submit`` but waits for the first delivery attempt to settle."""
        temp_id, request = self._prepare(content, source, attachment_ref)
        return await self._deliver(temp_id, request)

    async def drain(self) -> None:
        """Wait for every in-flight delivery. Deliveries are never cancelled."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def _deliver(self, temp_id: str, request: WriteRequest) -> SubmitResult:
        try:
            async with asyncio.timeout(self.write_timeout):
                entry = await self.remote.write(request)
        except PermanentWriteError as e:
            logger.warning(f"Write {temp_id} rejected: {e.reason}", extra={"temp_id": temp_id})
            self.channel.publish(
                WriteDiscarded(
                    temp_id=temp_id,
                    reason=DiscardReason.REJECTED,
                    content=request.content,
                    error=e.reason,
                )
            )
            return SubmitResult(temp_id, SubmitOutcome.REJECTED, error=e.reason)
        except (TransientWriteError, TimeoutError) as e:
            error = str(e) or "write timed out"
            logger.info(
                f"Write {temp_id} failed transiently, queueing: {error}",
                extra={"temp_id": temp_id},
            )
            return await self._queue(temp_id, request, error)
        except Exception as e:
            logger.exception(
                f"Unexpected error submitting {temp_id}, queueing", extra={"temp_id": temp_id}
            )
            return await self._queue(temp_id, request, str(e))

        self.channel.publish(WriteConfirmed(temp_id=temp_id, entry=entry))
        return SubmitResult(temp_id, SubmitOutcome.CONFIRMED, entry=entry)

    async def _queue(self, temp_id: str, request: WriteRequest, error: str) -> SubmitResult:
        try:
            await self.queue.enqueue(QueuedWrite(temp_id=temp_id, payload=request))
        except StorageIOError:
            # Still held in memory and retried this session, just not durable
            logger.exception(
                f"Could not persist queued write {temp_id}", extra={"temp_id": temp_id}
            )
        self.channel.publish(WriteQueued(temp_id=temp_id, error=error))
        return SubmitResult(temp_id, SubmitOutcome.QUEUED, error=error)
