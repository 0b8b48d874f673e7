"""
Abstract interfaces for the remote collaborators.

The classifier-backed write operation, the entry listing and the realtime
change feed are external services; the sync components only talk to them
through these interfaces so tests can substitute fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from ..models import Entry, WriteRequest


class RemoteWriter(ABC):
    """The remote write operation."""

    @abstractmethod
    async def write(self, request: WriteRequest) -> Entry:
        """Submit a write and return the canonical entry.

        Raises:
            TransientWriteError: Network failure, timeout or 5xx; retry later
            PermanentWriteError: The server rejected the payload
        """
        pass

    async def close(self) -> None:
        pass


class EntrySource(ABC):
    """Read access to the user's stored entries."""

    @abstractmethod
    async def list_entries(
        self,
        user_id: str,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[Entry]:
        """Return unarchived entries newest first.

        Args:
            user_id: Owner of the entries
            limit: Page size
            before: Only entries created strictly before this instant
        """
        pass

    async def close(self) -> None:
        pass


class RealtimeTransport(ABC):
    """A server-pushed change feed for one table, filtered to one user."""

    @abstractmethod
    def stream(self, topic: str, user_id: str, table: str) -> AsyncIterator[dict[str, Any]]:
        """Open the subscription and yield change payloads.

        Each payload has the shape
        ``{"operation", "new_record", "old_record", "server_timestamp"}``.
        The iterator ends or raises when the connection drops.
        """
        pass

    async def close(self) -> None:
        pass
