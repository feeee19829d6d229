"""Tests for sync events and sinks."""

from unittest.mock import Mock

import pytest

from ..events import (
    FetchCompleted,
    FullMirrorDeletion,
    NullEventSink,
    RecordingEventSink,
    RowSkipped,
    RunAborted,
    StructlogEventSink,
)


class TestSyncEvents:
    """Tests for event payloads."""

    def test_to_dict(self):
        event = FetchCompleted(strategy="csv_export", raw_rows=3)

        assert event.to_dict() == {"strategy": "csv_export", "raw_rows": 3}
        assert event.name == "fetch_completed"
        assert event.level == "info"

    def test_event_without_fields(self):
        event = FullMirrorDeletion()

        assert event.to_dict() == {}
        assert event.level == "warning"

    def test_frozen(self):
        event = RowSkipped(row_number=3, reason="register_no missing")

        with pytest.raises(AttributeError):
            event.row_number = 4


class TestStructlogEventSink:
    """Tests for the log-rendering sink."""

    def test_emits_at_event_level(self):
        log = Mock()
        sink = StructlogEventSink(log)

        sink.emit(RowSkipped(row_number=3, reason="register_no missing"))
        sink.emit(RunAborted(state="fetching", error_kind="source", error="boom"))

        log.warning.assert_called_once_with("row_skipped", row_number=3, reason="register_no missing")
        log.error.assert_called_once_with("run_aborted", state="fetching", error_kind="source", error="boom")


class TestRecordingEventSink:
    """Tests for the recording sink."""

    def test_records_in_order(self):
        sink = RecordingEventSink()
        first = FetchCompleted(strategy="api_key", raw_rows=1)
        second = RowSkipped(row_number=2, reason="register_no missing")

        sink.emit(first)
        sink.emit(second)

        assert sink.events == [first, second]
        assert sink.of_type(RowSkipped) == [second]

    def test_forwards(self):
        downstream = RecordingEventSink()
        sink = RecordingEventSink(forward_to=downstream)

        sink.emit(FullMirrorDeletion())

        assert len(downstream.events) == 1

    def test_null_sink(self):
        assert NullEventSink().emit(FullMirrorDeletion()) is None
