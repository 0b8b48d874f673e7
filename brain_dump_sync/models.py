"""
Core data types for the dump sync client.

Defines the entries held in the optimistic view, the durable record of a
write awaiting confirmation, and the change notifications pushed by the
realtime service.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

# Importance at or above this counts as "important" in view stats
IMPORTANT_SCORE = 7

TEMP_ID_PREFIX = "temp-"


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_temp_id() -> str:
    """Generate a locally-unique placeholder id for an unconfirmed entry."""
    return f"{TEMP_ID_PREFIX}{uuid.uuid4()}"


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a timestamp from the forms the server and older queues use.

    Accepts ISO 8601 strings (including a trailing ``Z``), datetimes and
    epoch milliseconds. Naive values are taken to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value / 1000, UTC)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value).__name__}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def parse_list_items(raw: Any) -> list[dict[str, Any]]:
    """Normalise list items, which may arrive as a list or as JSON text."""
    if not raw:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return []
    if not isinstance(raw, list):
        return []

    items = []
    for item in raw:
        if isinstance(item, dict) and "text" in item:
            items.append({"text": str(item["text"]), "checked": bool(item.get("checked", False))})
        elif isinstance(item, str):
            items.append({"text": item, "checked": False})
    return items


# =============================================================================
# Entry
# =============================================================================


@dataclass
class Entry:
    """A classified record in the user's collection.

    ``pending`` and ``temp_id`` are client-only: a pending entry has no
    canonical ``id`` yet and is addressed by its ``temp_id``.
    """

    id: str | None
    user_id: str
    content: str
    created_at: datetime
    updated_at: datetime
    title: str | None = None
    content_type: str = "note"
    content_subtype: str | None = None
    tags: list[str] = field(default_factory=list)
    extracted_data: dict[str, Any] = field(default_factory=dict)
    importance_score: int | None = None
    list_items: list[dict[str, Any]] = field(default_factory=list)
    source: str = "manual"
    starred: bool = False
    archived: bool = False
    image_url: str | None = None
    pending: bool = False
    temp_id: str | None = None

    @property
    def key(self) -> str:
        """Identity in the view store: temp_id while pending, id once confirmed."""
        if self.pending and self.temp_id:
            return self.temp_id
        return self.id or self.temp_id or ""

    @classmethod
    def pending_from(cls, request: WriteRequest, temp_id: str) -> Entry:
        """Build the optimistic placeholder shown while a write is in flight."""
        now = utc_now()
        content = request.content
        if not content and request.attachment_ref:
            content = "[Processing attachment...]"
        return cls(
            id=None,
            user_id=request.user_id,
            content=content,
            title=request.content[:50] if request.content else "Attachment",
            content_type="image" if request.attachment_ref and not request.content else "note",
            source=request.source,
            image_url=request.attachment_ref,
            created_at=now,
            updated_at=now,
            pending=True,
            temp_id=temp_id,
        )

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Entry:
        """Create from a server row, normalising optional columns."""
        created_at = parse_timestamp(record.get("created_at")) or utc_now()
        updated_at = parse_timestamp(record.get("updated_at")) or created_at
        extracted = record.get("extracted_data")

        return cls(
            id=record["id"],
            user_id=record.get("user_id", ""),
            content=record.get("content") or "",
            title=record.get("title"),
            content_type=record.get("content_type") or "note",
            content_subtype=record.get("content_subtype"),
            tags=list(record.get("tags") or []),
            extracted_data=extracted if isinstance(extracted, dict) else {},
            importance_score=record.get("importance_score"),
            list_items=parse_list_items(record.get("list_items")),
            source=record.get("source") or "manual",
            starred=bool(record.get("starred", False)),
            archived=bool(record.get("archived", False)),
            image_url=record.get("image_url"),
            created_at=created_at,
            updated_at=updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "content": self.content,
            "title": self.title,
            "content_type": self.content_type,
            "content_subtype": self.content_subtype,
            "tags": list(self.tags),
            "extracted_data": dict(self.extracted_data),
            "importance_score": self.importance_score,
            "list_items": [dict(item) for item in self.list_items],
            "source": self.source,
            "starred": self.starred,
            "archived": self.archived,
            "image_url": self.image_url,
            "created_at": _format_timestamp(self.created_at),
            "updated_at": _format_timestamp(self.updated_at),
            "_pending": self.pending,
            "_temp_id": self.temp_id,
        }

    def merged_with(self, record: dict[str, Any]) -> Entry:
        """Overlay a full or partial server payload on this entry."""
        base = self.to_dict()
        base.update({k: v for k, v in record.items() if not k.startswith("_")})
        if base.get("id") is None:
            base["id"] = self.id
        merged = Entry.from_record(base)
        return replace(merged, pending=False, temp_id=self.temp_id)

    def confirmed(self) -> Entry:
        return replace(self, pending=False)


# =============================================================================
# Writes
# =============================================================================


@dataclass
class WriteRequest:
    """Payload of the remote write operation."""

    content: str
    user_id: str
    source: str = "manual"
    attachment_ref: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "user_id": self.user_id,
            "source": self.source,
            "attachment_ref": self.attachment_ref,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WriteRequest:
        # Older queues used the wire field names
        return cls(
            content=data.get("content") or "",
            user_id=data.get("user_id") or data.get("userId") or "",
            source=data.get("source") or "manual",
            attachment_ref=data.get("attachment_ref") or data.get("imageUrl"),
        )

    def to_wire(self) -> dict[str, Any]:
        """Body sent to the save function."""
        return {
            "content": self.content,
            "userId": self.user_id,
            "source": self.source,
            "imageUrl": self.attachment_ref,
        }


@dataclass
class QueuedWrite:
    """Durable record of a write that has not been confirmed yet.

    Attributes:
        temp_id: Correlates the write to its optimistic entry
        payload: The original write request
        retry_count: Failed flush attempts so far
        enqueued_at: When the first attempt failed
    """

    temp_id: str
    payload: WriteRequest
    retry_count: int = 0
    enqueued_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "temp_id": self.temp_id,
            "payload": self.payload.to_dict(),
            "retry_count": self.retry_count,
            "enqueued_at": self.enqueued_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueuedWrite:
        return cls(
            temp_id=data["temp_id"],
            payload=WriteRequest.from_dict(data["payload"]),
            retry_count=int(data.get("retry_count", 0)),
            enqueued_at=parse_timestamp(data.get("enqueued_at")) or utc_now(),
        )

    def pending_entry(self) -> Entry:
        """Placeholder entry for re-hydrating the view after a restart."""
        entry = Entry.pending_from(self.payload, self.temp_id)
        return replace(entry, created_at=self.enqueued_at, updated_at=self.enqueued_at)


# =============================================================================
# Realtime
# =============================================================================


class RealtimeOperation(Enum):
    """Change operation reported by the realtime feed."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class RealtimeEvent:
    """A change notification for the user's entry table."""

    operation: RealtimeOperation
    new_record: dict[str, Any] | None = None
    old_record: dict[str, Any] | None = None
    server_timestamp: datetime | None = None

    @property
    def record_id(self) -> str | None:
        for record in (self.new_record, self.old_record):
            if record and record.get("id"):
                return str(record["id"])
        return None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RealtimeEvent:
        """Parse ``{operation, new_record?, old_record?, server_timestamp?}``.

        Raises:
            ValueError: If the operation is unknown or the record has no id
        """
        raw_op = str(payload.get("operation") or payload.get("type") or "").lower()
        operation = RealtimeOperation(raw_op)

        event = cls(
            operation=operation,
            new_record=payload.get("new_record") or None,
            old_record=payload.get("old_record") or None,
            server_timestamp=parse_timestamp(payload.get("server_timestamp")),
        )
        if event.record_id is None:
            raise ValueError(f"Realtime {raw_op} payload has no record id")
        return event


# =============================================================================
# Stats
# =============================================================================


@dataclass
class ViewStats:
    """Aggregate counters over the entries in view."""

    total: int = 0
    today: int = 0
    important: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
