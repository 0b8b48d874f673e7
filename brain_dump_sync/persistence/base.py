"""
Persistence port for local durable slots.

The durable queue only needs a handful of named text slots that survive
restarts, so every backend exposes the same read/write/clear contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class KeyValueStore(ABC):
    """Abstract text slot storage keyed by name."""

    @abstractmethod
    async def read(self, key: str) -> str | None:
        """Return the stored text, or None if the slot is empty."""
        pass

    @abstractmethod
    async def write(self, key: str, value: str) -> None:
        """Replace the slot's contents."""
        pass

    @abstractmethod
    async def clear(self, key: str) -> None:
        """Empty the slot. Clearing an empty slot is not an error."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        pass

    async def __aenter__(self) -> KeyValueStore:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
