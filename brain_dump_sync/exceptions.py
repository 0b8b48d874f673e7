"""
Custom exceptions for the dump sync client.

Remote collaborators raise these so the submitter and flusher can decide
between queueing a write and reporting it as rejected.
"""


class DumpSyncError(Exception):
    """Base exception for all dump sync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(DumpSyncError):
    """Raised when data validation fails."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


class WriteError(DumpSyncError):
    """Base for failures of the remote write operation."""

    def __init__(self, message: str, status: int | None = None, details: dict | None = None):
        details = dict(details or {})
        if status is not None:
            details["status"] = status
        super().__init__(message, details)
        self.status = status


class TransientWriteError(WriteError):
    """Write failed for a reason that may go away (network, timeout, 5xx).

    The write should be queued and retried.
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        cause: Exception | None = None,
    ):
        details: dict = {}
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, status, details)
        self.cause = cause


class PermanentWriteError(WriteError):
    """Write was definitively rejected by the server (validation, 4xx).

    Retrying the same payload cannot succeed, so it is never queued.
    """

    def __init__(self, reason: str, status: int | None = None):
        super().__init__(f"Write rejected: {reason}", status, {"reason": reason})
        self.reason = reason


class StorageIOError(DumpSyncError):
    """Raised when a local storage I/O operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class StorageConnectionError(DumpSyncError):
    """Raised when a connection to a remote endpoint fails.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class ConfigError(DumpSyncError):
    """Raised when client configuration is missing or invalid."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"Invalid configuration for {key}: {reason}", {"key": key, "reason": reason})
        self.key = key
        self.reason = reason
