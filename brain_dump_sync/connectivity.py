"""
Connectivity monitor.

Tracks whether the backend is reachable and tells listeners when the
client comes back online. Hosts with a native online/offline signal feed
it through ``set_online``; otherwise ``start`` polls with a DNS lookup of
the backend host.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from collections.abc import Callable
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

OnlineListener = Callable[[], None]


class ConnectivityMonitor:
    """Online/offline state with offline→online notifications."""

    def __init__(
        self,
        host: str | None = None,
        interval: float = 10.0,
        timeout: float = 5.0,
        initially_online: bool = True,
    ):
        """Initialize the monitor.

        Args:
            host: Hostname or URL probed by ``probe``; None disables probing
            interval: Seconds between probes when started
            timeout: Seconds before a probe counts as offline
            initially_online: Assumed state before the first signal
        """
        if host and "://" in host:
            host = urlparse(host).hostname
        self.host = host
        self.interval = interval
        self.timeout = timeout
        self._online = initially_online
        self._listeners: list[OnlineListener] = []
        self._task: asyncio.Task[None] | None = None

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_probing(self) -> bool:
        """True while the periodic probe loop is running."""
        return self._task is not None

    def on_online(self, listener: OnlineListener) -> None:
        """Call ``listener`` whenever connectivity is restored."""
        self._listeners.append(listener)

    def set_online(self, online: bool) -> None:
        """Record a connectivity signal from the host environment."""
        was_online = self._online
        self._online = online

        if online and not was_online:
            logger.info("Connection restored")
            for listener in list(self._listeners):
                try:
                    listener()
                except Exception:
                    logger.exception("Connectivity listener failed")
        elif was_online and not online:
            logger.info("Connection lost")

    async def probe(self) -> bool:
        """Check reachability of the backend host and record the result.

        Returns:
            True if online
        """
        if not self.host:
            return self._online

        try:
            loop = asyncio.get_running_loop()
            async with asyncio.timeout(self.timeout):
                await loop.getaddrinfo(self.host, None, type=socket.SOCK_STREAM)
            online = True
        except (OSError, TimeoutError):
            online = False

        self.set_online(online)
        return online

    async def start(self) -> None:
        """Start periodic probing. No-op without a host."""
        if self._task is not None or not self.host:
            return

        async def probe_loop() -> None:
            while True:
                await asyncio.sleep(self.interval)
                await self.probe()

        self._task = asyncio.create_task(probe_loop())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
