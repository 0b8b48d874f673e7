"""In-process slot storage, for tests and ephemeral sessions."""

from __future__ import annotations

from .base import KeyValueStore


class MemoryKeyValueStore(KeyValueStore):
    """Keeps slots in a dict. Nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})

    async def read(self, key: str) -> str | None:
        return self.data.get(key)

    async def write(self, key: str, value: str) -> None:
        self.data[key] = value

    async def clear(self, key: str) -> None:
        self.data.pop(key, None)
