"""Tests for the connectivity monitor."""

from __future__ import annotations

import asyncio
import socket
from unittest.mock import AsyncMock, patch

from brain_dump_sync.connectivity import ConnectivityMonitor


class TestConnectivityMonitor:
    """Tests for ConnectivityMonitor."""

    def test_url_host_is_reduced_to_hostname(self) -> None:
        monitor = ConnectivityMonitor("https://project.example.co/rest/v1")
        assert monitor.host == "project.example.co"

    def test_listeners_fire_on_restore_only(self) -> None:
        calls: list[int] = []
        monitor = ConnectivityMonitor(initially_online=True)
        monitor.on_online(lambda: calls.append(1))

        monitor.set_online(True)
        assert calls == []

        monitor.set_online(False)
        assert monitor.is_online is False
        assert calls == []

        monitor.set_online(True)
        monitor.set_online(True)
        assert calls == [1]

    def test_listener_failure_is_contained(self) -> None:
        calls: list[int] = []

        def broken() -> None:
            raise RuntimeError("listener bug")

        monitor = ConnectivityMonitor(initially_online=False)
        monitor.on_online(broken)
        monitor.on_online(lambda: calls.append(1))

        monitor.set_online(True)

        assert calls == [1]

    async def test_probe_without_host(self) -> None:
        monitor = ConnectivityMonitor(initially_online=False)
        assert await monitor.probe() is False

    async def test_probe_failure_goes_offline(self) -> None:
        monitor = ConnectivityMonitor("project.example.co")
        loop = asyncio.get_running_loop()

        with patch.object(loop, "getaddrinfo", AsyncMock(side_effect=socket.gaierror("no dns"))):
            assert await monitor.probe() is False
        assert monitor.is_online is False

    async def test_probe_success_restores(self) -> None:
        calls: list[int] = []
        monitor = ConnectivityMonitor("project.example.co", initially_online=False)
        monitor.on_online(lambda: calls.append(1))
        loop = asyncio.get_running_loop()

        with patch.object(loop, "getaddrinfo", AsyncMock(return_value=[])):
            assert await monitor.probe() is True
        assert calls == [1]

    async def test_start_without_host_is_noop(self) -> None:
        monitor = ConnectivityMonitor()
        await monitor.start()
        await monitor.stop()

    async def test_is_probing_while_started(self) -> None:
        monitor = ConnectivityMonitor("project.example.co", interval=60)
        assert monitor.is_probing is False

        await monitor.start()
        assert monitor.is_probing is True

        await monitor.stop()
        assert monitor.is_probing is False
