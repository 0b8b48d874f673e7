"""
Websocket realtime transport.

Speaks the Phoenix channel protocol used by the hosted realtime service:
join a topic with a ``postgres_changes`` filter, keep the socket alive
with heartbeats, and translate ``postgres_changes`` messages into change
payloads.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import aiohttp

from ..exceptions import StorageConnectionError
from .base import RealtimeTransport

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "1.0.0"


def build_join_message(
    topic: str,
    user_id: str,
    table: str,
    access_token: str | None = None,
    ref: str = "1",
) -> dict[str, Any]:
    """Join request for a user-filtered change subscription."""
    payload: dict[str, Any] = {
        "config": {
            "broadcast": {"self": False},
            "presence": {"key": ""},
            "postgres_changes": [
                {
                    "event": "*",
                    "schema": "public",
                    "table": table,
                    "filter": f"user_id=eq.{user_id}",
                }
            ],
        }
    }
    if access_token:
        payload["access_token"] = access_token

    return {
        "topic": f"realtime:{topic}",
        "event": "phx_join",
        "payload": payload,
        "ref": ref,
        "join_ref": ref,
    }


def change_from_message(message: dict[str, Any]) -> dict[str, Any] | None:
    """Translate a ``postgres_changes`` message into a change payload.

    Returns:
        ``{"operation", "new_record", "old_record", "server_timestamp"}``,
        or None for control messages (replies, presence, heartbeats)
    """
    if message.get("event") != "postgres_changes":
        return None

    data = (message.get("payload") or {}).get("data") or {}
    change_type = str(data.get("type") or data.get("eventType") or "").lower()
    if not change_type:
        return None

    return {
        "operation": change_type,
        "new_record": data.get("record") or data.get("new") or None,
        "old_record": data.get("old_record") or data.get("old") or None,
        "server_timestamp": data.get("commit_timestamp"),
    }


class PhoenixRealtimeTransport(RealtimeTransport):
    """Change feed over an aiohttp websocket.

    Example:
        >>> transport = PhoenixRealtimeTransport(
        ...     "wss://project.example.co/realtime/v1/websocket", api_key="anon"
        ... )
        >>> async for change in transport.stream("entries-realtime-u1", "u1", "entries"):
        ...     print(change["operation"])
    """

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        access_token: str | None = None,
        heartbeat_interval: float = 30.0,
    ):
        self.url = url
        self.api_key = api_key
        self.access_token = access_token
        self.heartbeat_interval = heartbeat_interval
        self._ref = 0

    def _next_ref(self) -> str:
        self._ref += 1
        return str(self._ref)

    def _connect_params(self) -> dict[str, str]:
        params = {"vsn": PROTOCOL_VERSION}
        if self.api_key:
            params["apikey"] = self.api_key
        return params

    async def _heartbeat(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while not ws.closed:
            await asyncio.sleep(self.heartbeat_interval)
            await ws.send_json(
                {"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": self._next_ref()}
            )

    async def stream(self, topic: str, user_id: str, table: str) -> AsyncIterator[dict[str, Any]]:
        async with aiohttp.ClientSession() as session:
            try:
                ws = await session.ws_connect(self.url, params=self._connect_params())
            except aiohttp.ClientError as e:
                raise StorageConnectionError(self.url, e) from e

            async with ws:
                join = build_join_message(
                    topic, user_id, table, self.access_token or self.api_key, self._next_ref()
                )
                await ws.send_json(join)
                heartbeat = asyncio.create_task(self._heartbeat(ws))

                try:
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            try:
                                message = json.loads(msg.data)
                            except json.JSONDecodeError:
                                logger.warning(f"Failed to parse realtime frame: {msg.data[:200]}")
                                continue

                            event = message.get("event")
                            if event in ("phx_error", "phx_close"):
                                raise StorageConnectionError(
                                    self.url, RuntimeError(f"channel {event}")
                                )
                            if event == "phx_reply" and message.get("ref") == join["ref"]:
                                status = (message.get("payload") or {}).get("status")
                                if status != "ok":
                                    raise StorageConnectionError(
                                        self.url, RuntimeError(f"join rejected: {message.get('payload')}")
                                    )
                                logger.info(f"Realtime subscription joined: {topic}")
                                continue

                            change = change_from_message(message)
                            if change is not None:
                                yield change
                        elif msg.type == aiohttp.WSMsgType.ERROR:
                            raise StorageConnectionError(self.url, ws.exception())
                finally:
                    heartbeat.cancel()
                    with contextlib.suppress(asyncio.CancelledError, ConnectionError, aiohttp.ClientError):
                        await heartbeat
