"""
File-backed slot storage.

Each slot is one file under the base directory. Writes are atomic:
the value goes to a temp file which is then renamed over the target,
so a crash mid-write leaves the previous value intact.
"""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path

import aiofiles
import aiofiles.os

from ..exceptions import StorageIOError
from .base import KeyValueStore

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class FileKeyValueStore(KeyValueStore):
    """Stores each slot as ``<base_dir>/<key>.json``."""

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)

    def path_for(self, key: str) -> Path:
        """Map a slot name to its file, replacing characters unsafe in filenames."""
        return self.base_dir / f"{_UNSAFE_CHARS.sub('_', key)}.json"

    async def read(self, key: str) -> str | None:
        path = self.path_for(key)
        try:
            if not await aiofiles.os.path.exists(path):
                return None
            async with aiofiles.open(path, encoding="utf-8") as f:
                return await f.read()
        except OSError as e:
            raise StorageIOError("read", str(path), e) from e

    async def write(self, key: str, value: str) -> None:
        path = self.path_for(key)
        try:
            await aiofiles.os.makedirs(self.base_dir, exist_ok=True)
        except OSError as e:
            raise StorageIOError("create_directory", str(self.base_dir), e) from e

        fd, temp_path = tempfile.mkstemp(dir=self.base_dir, prefix=".tmp_", suffix=".json")
        try:
            os.close(fd)
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(value)
                await f.flush()
                os.fsync(f.fileno())

            await aiofiles.os.replace(temp_path, path)
        except Exception as e:
            try:
                await aiofiles.os.remove(temp_path)
            except OSError:
                pass
            raise StorageIOError("write", str(path), e) from e

    async def clear(self, key: str) -> None:
        path = self.path_for(key)
        try:
            if await aiofiles.os.path.exists(path):
                await aiofiles.os.remove(path)
        except OSError as e:
            raise StorageIOError("remove", str(path), e) from e
