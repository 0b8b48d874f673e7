"""
HTTP clients for the hosted backend.

HttpRemoteWriter calls the save function that classifies and stores a
dump; HttpEntrySource lists stored entries through the REST endpoint.
Both share one aiohttp session per instance.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

import aiohttp

from ..exceptions import PermanentWriteError, StorageConnectionError, TransientWriteError
from ..models import Entry, WriteRequest
from .base import EntrySource, RemoteWriter

logger = logging.getLogger(__name__)

# Statuses worth retrying; every other 4xx is a definitive rejection
TRANSIENT_STATUS_CODES = frozenset({408, 425, 429})

DEFAULT_SAVE_FUNCTION = "smart-save"


def is_transient_status(status: int) -> bool:
    return status in TRANSIENT_STATUS_CODES or status >= 500


class _HttpClient:
    """Session and header handling shared by the backend clients."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        access_token: str | None = None,
        session: aiohttp.ClientSession | None = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        token = self.access_token or self.api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


def _error_message(body: Any, status: int) -> str:
    if isinstance(body, dict):
        for key in ("error", "message", "msg"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {status}"


class HttpRemoteWriter(_HttpClient, RemoteWriter):
    """Submits dumps to the backend save function.

    Example:
        >>> writer = HttpRemoteWriter("https://project.example.co", api_key="anon")
        >>> entry = await writer.write(WriteRequest(content="Buy milk", user_id="u1"))
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        access_token: str | None = None,
        session: aiohttp.ClientSession | None = None,
        timeout: float = 30.0,
        function_name: str = DEFAULT_SAVE_FUNCTION,
    ):
        super().__init__(base_url, api_key, access_token, session, timeout)
        self.function_name = function_name

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/functions/v1/{self.function_name}"

    async def write(self, request: WriteRequest) -> Entry:
        session = self._ensure_session()

        try:
            async with session.post(
                self.endpoint, json=request.to_wire(), headers=self._headers()
            ) as response:
                status = response.status
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = None
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise TransientWriteError("Save request timed out", cause=e) from e
        except aiohttp.ClientError as e:
            raise TransientWriteError(f"Network error during save: {e}", cause=e) from e

        if is_transient_status(status):
            raise TransientWriteError(_error_message(body, status), status=status)
        if status >= 400:
            raise PermanentWriteError(_error_message(body, status), status=status)
        if not isinstance(body, dict):
            raise PermanentWriteError("Save response was not a JSON object", status=status)
        if body.get("error"):
            raise PermanentWriteError(str(body["error"]), status=status)

        record = body.get("entry")
        if not isinstance(record, dict) or not record.get("id"):
            raise PermanentWriteError("Save response carried no entry", status=status)

        logger.debug(f"Saved entry {record['id']} ({body.get('action', 'created')})")
        return Entry.from_record(record)


class HttpEntrySource(_HttpClient, EntrySource):
    """Lists entries through the REST endpoint of the entries table."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        access_token: str | None = None,
        session: aiohttp.ClientSession | None = None,
        timeout: float = 30.0,
        table: str = "entries",
    ):
        super().__init__(base_url, api_key, access_token, session, timeout)
        self.table = table

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    @staticmethod
    def build_params(user_id: str, limit: int, before: datetime | None) -> list[tuple[str, str]]:
        params = [
            ("select", "*"),
            ("user_id", f"eq.{user_id}"),
            ("archived", "eq.false"),
            ("order", "created_at.desc"),
            ("limit", str(limit)),
        ]
        if before is not None:
            params.append(("created_at", f"lt.{before.isoformat()}"))
        return params

    async def list_entries(
        self,
        user_id: str,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[Entry]:
        session = self._ensure_session()
        params = self.build_params(user_id, limit, before)

        try:
            async with session.get(self.endpoint, params=params, headers=self._headers()) as response:
                if response.status != 200:
                    raise StorageConnectionError(
                        self.endpoint, RuntimeError(f"HTTP {response.status}")
                    )
                rows = await response.json(content_type=None)
        except (asyncio.TimeoutError, TimeoutError, aiohttp.ClientError, ValueError) as e:
            raise StorageConnectionError(self.endpoint, e) from e

        entries = []
        for row in rows or []:
            try:
                entries.append(Entry.from_record(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed entry row: {e}")
        return entries
