"""
Client configuration.

Settings can come from ``~/.brain-dump/settings.yaml``:

```yaml
sync:
  base_url: "https://project.example.co"
  api_key: "public-anon-key"
  user_id: "user-abc123"
  storage_backend: file      # file | sqlite | memory
  max_retries: 5
  flush_interval: 30
  log_format: json           # none | text | json
  log_level: INFO
```

or from ``BRAIN_DUMP_*`` environment variables.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError
from .logging_utils import LOG_FORMATS

DEFAULT_QUEUE_KEY = "brain-dump-offline-queue"

# Keys written by earlier releases; their contents are discarded on load
LEGACY_QUEUE_KEYS = ("brain-dump-queue", "offline-queue")

STORAGE_BACKENDS = ("file", "sqlite", "memory")


def default_settings_path() -> Path:
    return Path.home() / ".brain-dump" / "settings.yaml"


@dataclass
class SyncConfig:
    """Configuration for the dump sync client."""

    # Backend endpoints
    base_url: str = ""
    api_key: str | None = None
    access_token: str | None = None
    user_id: str = ""

    # Local durable storage
    storage_backend: str = "file"
    storage_path: Path = field(default_factory=lambda: Path.home() / ".brain-dump" / "storage")
    queue_key: str = DEFAULT_QUEUE_KEY
    legacy_queue_keys: tuple[str, ...] = LEGACY_QUEUE_KEYS

    # Retry settings
    max_retries: int = 5
    flush_interval: float = 30.0  # seconds
    write_timeout: float = 30.0  # seconds

    # Realtime
    realtime_table: str = "entries"
    reconnect_delay: float = 5.0  # seconds
    heartbeat_interval: float = 30.0  # seconds

    # Connectivity probing
    connectivity_interval: float = 10.0  # seconds
    connectivity_timeout: float = 5.0  # seconds

    # Snapshot fetch
    page_size: int = 50

    # Logging; "none" leaves handlers to the host application
    log_format: str = "none"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if isinstance(self.storage_path, str):
            self.storage_path = Path(self.storage_path).expanduser()
        if isinstance(self.legacy_queue_keys, list):
            self.legacy_queue_keys = tuple(self.legacy_queue_keys)
        self.validate()

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigError: If any value is out of range
        """
        if self.storage_backend not in STORAGE_BACKENDS:
            raise ConfigError(
                "storage_backend", f"must be one of {', '.join(STORAGE_BACKENDS)}"
            )
        if self.max_retries < 1:
            raise ConfigError("max_retries", "must be at least 1")
        for name in ("flush_interval", "write_timeout", "reconnect_delay", "heartbeat_interval"):
            if getattr(self, name) <= 0:
                raise ConfigError(name, "must be positive")
        if self.page_size < 1:
            raise ConfigError("page_size", "must be at least 1")
        if not self.queue_key:
            raise ConfigError("queue_key", "must not be empty")
        if self.queue_key in self.legacy_queue_keys:
            raise ConfigError("queue_key", "must differ from the legacy queue keys")
        if self.log_format not in LOG_FORMATS:
            raise ConfigError("log_format", f"must be one of {', '.join(LOG_FORMATS)}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError("log_level", f"unknown level {self.log_level!r}")

    @property
    def realtime_url(self) -> str:
        """Websocket endpoint derived from ``base_url``."""
        base = self.base_url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return f"{base}/realtime/v1/websocket"

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> SyncConfig:
        """Create from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        try:
            return cls(**values)
        except (TypeError, ValueError) as e:
            raise ConfigError("sync", str(e)) from e

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> SyncConfig:
        """Load the ``sync`` section of a settings file.

        A missing file yields defaults.
        """
        path = path or default_settings_path()
        if not path.exists():
            return cls()

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(str(path), f"cannot read settings: {e}") from e

        section = data.get("sync", {})
        if not isinstance(section, dict):
            raise ConfigError("sync", "section must be a mapping")
        return cls.from_mapping(section)

    @classmethod
    def from_env(cls) -> SyncConfig:
        """Create config from environment variables."""
        values: dict[str, Any] = {
            "base_url": os.environ.get("BRAIN_DUMP_URL", ""),
            "api_key": os.environ.get("BRAIN_DUMP_API_KEY"),
            "access_token": os.environ.get("BRAIN_DUMP_ACCESS_TOKEN"),
            "user_id": os.environ.get("BRAIN_DUMP_USER_ID", ""),
            "storage_backend": os.environ.get("BRAIN_DUMP_STORAGE_BACKEND", "file"),
            "log_format": os.environ.get("BRAIN_DUMP_LOG_FORMAT", "none"),
            "log_level": os.environ.get("BRAIN_DUMP_LOG_LEVEL", "INFO"),
        }
        if path := os.environ.get("BRAIN_DUMP_STORAGE_PATH"):
            values["storage_path"] = Path(path)

        numeric = {
            "max_retries": ("BRAIN_DUMP_MAX_RETRIES", int),
            "flush_interval": ("BRAIN_DUMP_FLUSH_INTERVAL", float),
            "write_timeout": ("BRAIN_DUMP_WRITE_TIMEOUT", float),
            "reconnect_delay": ("BRAIN_DUMP_RECONNECT_DELAY", float),
        }
        for name, (env_var, cast) in numeric.items():
            raw = os.environ.get(env_var)
            if raw is None:
                continue
            try:
                values[name] = cast(raw)
            except ValueError as e:
                raise ConfigError(name, f"{env_var}={raw!r} is not a number") from e

        return cls(**values)
