"""Tests for the core data types."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from conftest import USER_ID, make_record

from brain_dump_sync.models import (
    TEMP_ID_PREFIX,
    Entry,
    QueuedWrite,
    RealtimeEvent,
    RealtimeOperation,
    WriteRequest,
    new_temp_id,
    parse_list_items,
    parse_timestamp,
)


class TestParseTimestamp:
    """Tests for timestamp parsing."""

    def test_iso_with_z_suffix(self) -> None:
        """Test a trailing Z is read as UTC."""
        parsed = parse_timestamp("2026-03-01T12:00:00Z")
        assert parsed == datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def test_naive_is_utc(self) -> None:
        """Test naive values are taken to be UTC."""
        parsed = parse_timestamp("2026-03-01T12:00:00")
        assert parsed is not None
        assert parsed.tzinfo is UTC

    def test_epoch_millis(self) -> None:
        """Test epoch milliseconds from older queues."""
        parsed = parse_timestamp(0)
        assert parsed == datetime(1970, 1, 1, tzinfo=UTC)

    def test_empty(self) -> None:
        """Test empty values parse to None."""
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None

    def test_invalid(self) -> None:
        """Test garbage raises."""
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")
        with pytest.raises(TypeError):
            parse_timestamp(["2026"])


class TestParseListItems:
    """Tests for list item normalisation."""

    def test_json_text(self) -> None:
        items = parse_list_items('[{"text": "eggs", "checked": true}, "milk"]')
        assert items == [
            {"text": "eggs", "checked": True},
            {"text": "milk", "checked": False},
        ]

    def test_invalid_inputs(self) -> None:
        assert parse_list_items(None) == []
        assert parse_list_items("not json") == []
        assert parse_list_items({"text": "x"}) == []


class TestEntry:
    """Tests for Entry."""

    def test_from_record(self) -> None:
        """Test a server row becomes a confirmed entry."""
        entry = Entry.from_record(
            make_record("e1", "Buy milk", tags=["shopping"], importance_score=8)
        )

        assert entry.id == "e1"
        assert entry.user_id == USER_ID
        assert entry.tags == ["shopping"]
        assert entry.importance_score == 8
        assert entry.pending is False
        assert entry.key == "e1"

    def test_from_record_requires_id(self) -> None:
        """Test rows without an id are rejected."""
        with pytest.raises(KeyError):
            Entry.from_record({"content": "x"})

    def test_pending_from_request(self) -> None:
        """Test the optimistic placeholder built for a write."""
        request = WriteRequest(content="Call mom", user_id=USER_ID)
        entry = Entry.pending_from(request, "temp-1")

        assert entry.pending is True
        assert entry.id is None
        assert entry.key == "temp-1"
        assert entry.content == "Call mom"
        assert entry.title == "Call mom"

    def test_pending_attachment_only(self) -> None:
        """Test a placeholder for an attachment without text."""
        request = WriteRequest(content="", user_id=USER_ID, attachment_ref="https://img/1.png")
        entry = Entry.pending_from(request, "temp-2")

        assert entry.content_type == "image"
        assert entry.image_url == "https://img/1.png"
        assert entry.title == "Attachment"

    def test_merged_with_partial_record(self) -> None:
        """Test a partial update overlays only the given fields."""
        entry = Entry.from_record(make_record("e1", "Buy milk", tags=["shopping"]))
        merged = entry.merged_with({"id": "e1", "starred": True})

        assert merged.starred is True
        assert merged.content == "Buy milk"
        assert merged.tags == ["shopping"]

    def test_to_dict_marks_client_fields(self) -> None:
        request = WriteRequest(content="x", user_id=USER_ID)
        data = Entry.pending_from(request, "temp-9").to_dict()

        assert data["_pending"] is True
        assert data["_temp_id"] == "temp-9"


class TestWriteRequest:
    """Tests for WriteRequest."""

    def test_wire_format(self) -> None:
        """Test the body sent to the save function."""
        request = WriteRequest(content="x", user_id="u", source="voice", attachment_ref="img")
        assert request.to_wire() == {
            "content": "x",
            "userId": "u",
            "source": "voice",
            "imageUrl": "img",
        }

    def test_from_dict_accepts_wire_names(self) -> None:
        """Test payloads stored with wire field names still load."""
        request = WriteRequest.from_dict({"content": "x", "userId": "u", "imageUrl": "img"})
        assert request.user_id == "u"
        assert request.attachment_ref == "img"


class TestQueuedWrite:
    """Tests for QueuedWrite."""

    def test_new_write_has_no_retries(self) -> None:
        write = QueuedWrite(temp_id=new_temp_id(), payload=WriteRequest("x", USER_ID))
        assert write.retry_count == 0
        assert write.temp_id.startswith(TEMP_ID_PREFIX)

    def test_from_dict_defaults(self) -> None:
        """Test missing optional fields fall back to defaults."""
        write = QueuedWrite.from_dict(
            {"temp_id": "temp-1", "payload": {"content": "x", "user_id": USER_ID}}
        )
        assert write.retry_count == 0
        assert write.payload.content == "x"

    def test_pending_entry_keeps_enqueue_time(self) -> None:
        """Test re-hydrated placeholders keep their original position in time."""
        enqueued = datetime(2026, 1, 1, tzinfo=UTC)
        write = QueuedWrite("temp-1", WriteRequest("x", USER_ID), enqueued_at=enqueued)
        entry = write.pending_entry()

        assert entry.pending is True
        assert entry.key == "temp-1"
        assert entry.created_at == enqueued


class TestRealtimeEvent:
    """Tests for RealtimeEvent parsing."""

    def test_insert(self) -> None:
        event = RealtimeEvent.from_payload(
            {
                "operation": "INSERT",
                "new_record": make_record("e1"),
                "server_timestamp": "2026-03-01T12:00:00Z",
            }
        )
        assert event.operation == RealtimeOperation.INSERT
        assert event.record_id == "e1"
        assert event.server_timestamp == datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def test_delete_uses_old_record(self) -> None:
        event = RealtimeEvent.from_payload({"type": "delete", "old_record": {"id": "e1"}})
        assert event.operation == RealtimeOperation.DELETE
        assert event.record_id == "e1"

    def test_unknown_operation(self) -> None:
        with pytest.raises(ValueError):
            RealtimeEvent.from_payload({"operation": "truncate", "new_record": {"id": "e1"}})

    def test_missing_id(self) -> None:
        with pytest.raises(ValueError):
            RealtimeEvent.from_payload({"operation": "insert", "new_record": {"content": "x"}})
