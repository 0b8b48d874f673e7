"""
Logging setup for the sync client.

Components log through ``logging.getLogger(__name__)``. Records about one
write carry ``temp_id`` (plus ``retry_count`` or ``entry_id`` where known)
as extra fields, and the client tags its own records with ``user_id``.
``configure_logging`` installs a handler on the package logger that renders
those fields, as ``key=value`` text or as one JSON object per line.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .config import SyncConfig

PACKAGE_LOGGER = "brain_dump_sync"

# Extra fields rendered by the formatters, in output order
SYNC_FIELDS = ("user_id", "temp_id", "entry_id", "retry_count", "queue_size")

LOG_FORMATS = ("none", "text", "json")

_HANDLER_MARK = "_brain_dump_sync_handler"


def sync_context(record: logging.LogRecord) -> dict[str, Any]:
    """Sync fields set on ``record``, skipping unset ones."""
    context = {}
    for name in SYNC_FIELDS:
        value = getattr(record, name, None)
        if value is not None:
            context[name] = value
    return context


class SyncJsonFormatter(logging.Formatter):
    """
    JSON formatter for log collectors.

    One object per line with timestamp (UTC, ISO 8601), level, logger,
    message, any sync fields and the formatted exception if present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_obj.update(sync_context(record))

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


class SyncTextFormatter(logging.Formatter):
    """Plain text with sync fields appended to the first line."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        context = sync_context(record)
        if not context:
            return text

        first, newline, rest = text.partition("\n")
        fields = " ".join(f"{key}={value}" for key, value in context.items())
        return f"{first} [{fields}]{newline}{rest}"


def configure_logging(config: SyncConfig, stream: Any = None) -> logging.Logger:
    """
    Install the package log handler described by ``config``.

    A handler installed by an earlier call is replaced; handlers added by
    the host application are left alone. With ``log_format == "none"``
    only the earlier handler is removed.

    Args:
        config: Source of ``log_level`` and ``log_format``
        stream: Output stream (default: stderr)

    Returns:
        The package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            logger.removeHandler(handler)

    if config.log_format == "none":
        return logger

    handler = logging.StreamHandler(stream or sys.stderr)
    setattr(handler, _HANDLER_MARK, True)
    if config.log_format == "json":
        handler.setFormatter(SyncJsonFormatter())
    else:
        handler.setFormatter(SyncTextFormatter())

    logger.addHandler(handler)
    logger.setLevel(config.log_level.upper())
    return logger


class SyncLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds fixed sync fields (such as user_id) to every record."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**kwargs.get("extra", {}), **self.extra}
        return msg, kwargs
