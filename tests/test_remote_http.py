"""Tests for the HTTP save function client and entry listing."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

import pytest
from aiohttp import test_utils, web
from conftest import make_record

from brain_dump_sync.exceptions import (
    PermanentWriteError,
    StorageConnectionError,
    TransientWriteError,
)
from brain_dump_sync.models import WriteRequest
from brain_dump_sync.remote import HttpEntrySource, HttpRemoteWriter, is_transient_status


class Backend:
    """Local stand-in for the hosted backend."""

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.save_response: tuple[int, Any] = (200, {"entry": make_record("e1", "Buy milk")})
        self.list_response: tuple[int, Any] = (200, [])

    async def save(self, request: web.Request) -> web.Response:
        self.requests.append(
            {"headers": dict(request.headers), "body": await request.json()}
        )
        status, body = self.save_response
        return web.json_response(body, status=status)

    async def list_entries(self, request: web.Request) -> web.Response:
        self.requests.append({"headers": dict(request.headers), "query": list(request.query.items())})
        status, body = self.list_response
        return web.json_response(body, status=status)

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/functions/v1/smart-save", self.save)
        app.router.add_get("/rest/v1/entries", self.list_entries)
        return app


@pytest.fixture
def backend() -> Backend:
    return Backend()


@pytest.fixture
async def base_url(backend: Backend) -> AsyncIterator[str]:
    async with test_utils.TestServer(backend.app()) as server:
        yield str(server.make_url("/")).rstrip("/")


class TestTransientStatus:
    """Tests for status classification."""

    @pytest.mark.parametrize("status", [408, 425, 429, 500, 502, 503, 504])
    def test_transient(self, status: int) -> None:
        assert is_transient_status(status) is True

    @pytest.mark.parametrize("status", [200, 400, 401, 403, 404, 409, 422])
    def test_not_transient(self, status: int) -> None:
        assert is_transient_status(status) is False


class TestHttpRemoteWriter:
    """Tests for HttpRemoteWriter."""

    @pytest.fixture
    async def writer(self, base_url: str) -> AsyncIterator[HttpRemoteWriter]:
        writer = HttpRemoteWriter(base_url, api_key="anon", access_token="jwt", timeout=5)
        yield writer
        await writer.close()

    async def test_success(self, writer: HttpRemoteWriter, backend: Backend) -> None:
        entry = await writer.write(WriteRequest("Buy milk", "user-1", source="voice"))

        assert entry.id == "e1"
        assert entry.pending is False

        sent = backend.requests[0]
        assert sent["body"] == {
            "content": "Buy milk",
            "userId": "user-1",
            "source": "voice",
            "imageUrl": None,
        }
        assert sent["headers"]["apikey"] == "anon"
        assert sent["headers"]["Authorization"] == "Bearer jwt"

    async def test_server_error_is_transient(
        self, writer: HttpRemoteWriter, backend: Backend
    ) -> None:
        backend.save_response = (503, {"error": "overloaded"})

        with pytest.raises(TransientWriteError) as exc_info:
            await writer.write(WriteRequest("x", "user-1"))
        assert exc_info.value.status == 503

    async def test_rate_limit_is_transient(
        self, writer: HttpRemoteWriter, backend: Backend
    ) -> None:
        backend.save_response = (429, {"message": "slow down"})

        with pytest.raises(TransientWriteError):
            await writer.write(WriteRequest("x", "user-1"))

    async def test_client_error_is_permanent(
        self, writer: HttpRemoteWriter, backend: Backend
    ) -> None:
        backend.save_response = (400, {"error": "Content is required"})

        with pytest.raises(PermanentWriteError) as exc_info:
            await writer.write(WriteRequest("x", "user-1"))
        assert exc_info.value.reason == "Content is required"
        assert exc_info.value.status == 400

    async def test_error_body_is_permanent(
        self, writer: HttpRemoteWriter, backend: Backend
    ) -> None:
        backend.save_response = (200, {"error": "classification failed"})

        with pytest.raises(PermanentWriteError):
            await writer.write(WriteRequest("x", "user-1"))

    async def test_missing_entry_is_permanent(
        self, writer: HttpRemoteWriter, backend: Backend
    ) -> None:
        backend.save_response = (200, {"action": "created"})

        with pytest.raises(PermanentWriteError):
            await writer.write(WriteRequest("x", "user-1"))

    async def test_network_error_is_transient(self) -> None:
        writer = HttpRemoteWriter("http://127.0.0.1:1", timeout=5)
        try:
            with pytest.raises(TransientWriteError):
                await writer.write(WriteRequest("x", "user-1"))
        finally:
            await writer.close()

    def test_endpoint(self) -> None:
        writer = HttpRemoteWriter("https://project.example.co/")
        assert writer.endpoint == "https://project.example.co/functions/v1/smart-save"


class TestHttpEntrySource:
    """Tests for HttpEntrySource."""

    @pytest.fixture
    async def source(self, base_url: str) -> AsyncIterator[HttpEntrySource]:
        source = HttpEntrySource(base_url, api_key="anon", timeout=5)
        yield source
        await source.close()

    def test_build_params(self) -> None:
        before = datetime(2026, 3, 1, tzinfo=UTC)
        params = HttpEntrySource.build_params("user-1", 50, before)

        assert params == [
            ("select", "*"),
            ("user_id", "eq.user-1"),
            ("archived", "eq.false"),
            ("order", "created_at.desc"),
            ("limit", "50"),
            ("created_at", "lt.2026-03-01T00:00:00+00:00"),
        ]

    async def test_list_entries(self, source: HttpEntrySource, backend: Backend) -> None:
        backend.list_response = (
            200,
            [make_record("e2", created=10), {"content": "no id"}, make_record("e1")],
        )

        entries = await source.list_entries("user-1", limit=20)

        assert [e.id for e in entries] == ["e2", "e1"]
        query = dict(backend.requests[0]["query"])
        assert query["user_id"] == "eq.user-1"
        assert query["limit"] == "20"
        assert "created_at" not in query

    async def test_list_entries_failure(self, source: HttpEntrySource, backend: Backend) -> None:
        backend.list_response = (500, {"message": "down"})

        with pytest.raises(StorageConnectionError):
            await source.list_entries("user-1")
