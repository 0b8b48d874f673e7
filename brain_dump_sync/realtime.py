"""
Realtime ingestor.

Keeps one change subscription open for the user's entries and forwards
every change to the Reconciler in arrival order. Drops are repaired by
reconnecting; changes missed while disconnected are picked up by the
``on_reconnect`` hook, which the client uses for a full refresh.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .models import RealtimeEvent
from .reconcile import RealtimeReceived, ReconcileChannel
from .remote import RealtimeTransport

logger = logging.getLogger(__name__)

ReconnectHook = Callable[[], Awaitable[None]]


def realtime_topic(table: str, user_id: str) -> str:
    return f"{table}-realtime-{user_id}"


class RealtimeIngestor:
    """Single realtime subscription with auto-reconnect.

    Example:
        >>> ingestor = RealtimeIngestor(transport, channel, user_id="u1")
        >>> await ingestor.start()
        >>> ...
        >>> await ingestor.stop()
    """

    def __init__(
        self,
        transport: RealtimeTransport,
        channel: ReconcileChannel,
        user_id: str,
        table: str = "entries",
        reconnect_delay: float = 5.0,
        on_reconnect: ReconnectHook | None = None,
    ):
        """Initialize the ingestor.

        Args:
            transport: Change feed connection
            channel: Channel to the Reconciler
            user_id: Only this user's changes are subscribed to
            table: Table the subscription watches
            reconnect_delay: Seconds to wait before reconnecting
            on_reconnect: Coroutine run after every reconnection
        """
        self.transport = transport
        self.channel = channel
        self.user_id = user_id
        self.table = table
        self.reconnect_delay = reconnect_delay
        self.on_reconnect = on_reconnect

        self._running = False
        self._connected = False
        self._connection_count = 0
        self._received = 0
        self._connection_task: asyncio.Task[None] | None = None
        self._hook_task: asyncio.Task[None] | None = None

    @property
    def topic(self) -> str:
        return realtime_topic(self.table, self.user_id)

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def connection_count(self) -> int:
        return self._connection_count

    @property
    def received_count(self) -> int:
        return self._received

    async def start(self) -> None:
        """Open the subscription. Calling it again is a no-op."""
        if self._running:
            return

        self._running = True
        self._connection_task = asyncio.create_task(self._connection_loop())
        logger.info(f"Realtime ingestor started: {self.topic}")

    async def stop(self) -> None:
        """Tear down the subscription."""
        self._running = False

        for task in (self._hook_task, self._connection_task):
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._hook_task = None
        self._connection_task = None
        self._connected = False

        await self.transport.close()
        logger.info("Realtime ingestor stopped")

    async def _connection_loop(self) -> None:
        while self._running:
            try:
                await self._consume()
                logger.info("Realtime stream ended")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Realtime connection error: {e}")
            finally:
                self._connected = False

            if not self._running:
                break
            logger.info(f"Reconnecting in {self.reconnect_delay}s...")
            await asyncio.sleep(self.reconnect_delay)

    async def _consume(self) -> None:
        self._connection_count += 1
        self._connected = True
        if self._connection_count > 1:
            self._run_reconnect_hook()

        async for payload in self.transport.stream(self.topic, self.user_id, self.table):
            self._handle_payload(payload)

    def _run_reconnect_hook(self) -> None:
        if self.on_reconnect is None:
            return
        if self._hook_task is not None and not self._hook_task.done():
            return

        async def run() -> None:
            try:
                await self.on_reconnect()
            except Exception:
                logger.exception("Reconnect hook failed")

        self._hook_task = asyncio.create_task(run())

    def _handle_payload(self, payload: dict[str, Any]) -> None:
        try:
            event = RealtimeEvent.from_payload(payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping unparseable realtime payload: {e}")
            return

        self._received += 1
        self.channel.publish(RealtimeReceived(event))
