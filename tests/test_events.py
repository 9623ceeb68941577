"""
Event recorder tests: validation, append-only storage and best-effort intake.
"""

import sqlite3
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from fleetfit.core import events as event_log
from fleetfit.core.db import get_db
from fleetfit.core.errors import StorageError, ValidationError
from fleetfit.core.schema import EventType


def test_record_returns_event_id_and_appends():
    event_id = event_log.record({"event_type": "offer_shown", "driver_id": "D1", "load_id": "L1"})

    events = event_log.list_events()
    assert len(events) == 1
    assert events[0].event_id == event_id
    assert events[0].event_type == EventType.OFFER_SHOWN
    assert events[0].load_id == "L1"
    assert events[0].recorded_at is not None


def test_record_without_event_type_writes_nothing():
    with pytest.raises(ValidationError) as excinfo:
        event_log.record({"driver_id": "D1"})

    assert excinfo.value.details["field"] == "event_type"
    assert event_log.count_events() == 0


def test_unknown_event_type_rejected():
    with pytest.raises(ValidationError, match="Unknown event_type"):
        event_log.record({"event_type": "teleported", "driver_id": "D1"})
    assert event_log.count_events() == 0


@pytest.mark.parametrize("driver_id", [None, "", "   ", 42])
def test_driver_id_required(driver_id):
    with pytest.raises(ValidationError):
        event_log.record({"event_type": "thumb_up", "driver_id": driver_id})


@pytest.mark.parametrize("field,value", [
    ("miles", -1),
    ("miles", float("nan")),
    ("miles", True),
    ("pay_total_usd", "lots"),
    ("max_distance", float("inf")),
])
def test_numeric_fields_validated(field, value):
    with pytest.raises(ValidationError) as excinfo:
        event_log.record({"event_type": "delivered", "driver_id": "D1", field: value})
    assert excinfo.value.details["field"] == field


def test_bad_timestamp_rejected():
    with pytest.raises(ValidationError, match="occurred_at"):
        event_log.record({"event_type": "late", "driver_id": "D1", "occurred_at": "yesterday"})


def test_payload_must_be_object():
    with pytest.raises(ValidationError, match="payload"):
        event_log.record({"event_type": "thumb_up", "driver_id": "D1", "payload": ["not", "a", "dict"]})


def test_occurred_at_normalized_to_utc():
    event_log.record({"event_type": "delivered", "driver_id": "D1",
                      "occurred_at": "2024-03-01T12:00:00-05:00"})

    event = event_log.list_events()[0]
    assert event.occurred_at == datetime(2024, 3, 1, 17, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("stamp", ["2024-03-01T12:00:00.5Z", "2024-03-01T12:00:00.5+00:00"])
def test_short_fractional_seconds_accepted(stamp):
    assert event_log.parse_timestamp(stamp) == datetime(2024, 3, 1, 12, 0, 0, 500000, tzinfo=timezone.utc)


def test_occurred_at_defaults_to_receipt_time():
    before = event_log.utcnow()
    event_log.record({"event_type": "thumb_up", "driver_id": "D1"})
    after = event_log.utcnow()

    event = event_log.list_events()[0]
    assert before <= event.occurred_at <= after


def test_lane_fields_and_payload_round_trip(lane):
    event_log.record({"event_type": "offer_shown", "driver_id": " D1 ", "payload": {"source": "board"}, **lane})

    event = event_log.list_events()[0]
    assert event.driver_id == "D1"
    assert event.lane_key == "dallas, tx → houston, tx"
    assert event.payload == {"source": "board"}


def test_events_table_is_append_only():
    event_log.record({"event_type": "thumb_down", "driver_id": "D1"})

    with get_db() as conn:
        with pytest.raises(sqlite3.DatabaseError, match="append-only"):
            conn.execute("UPDATE events SET event_type = 'thumb_up'")
        with pytest.raises(sqlite3.DatabaseError, match="append-only"):
            conn.execute("DELETE FROM events")

    assert event_log.list_events()[0].event_type == EventType.THUMB_DOWN


def test_list_events_filters_by_driver_and_since():
    event_log.record({"event_type": "thumb_up", "driver_id": "D1", "occurred_at": "2024-01-01T00:00:00Z"})
    event_log.record({"event_type": "thumb_up", "driver_id": "D1", "occurred_at": "2024-02-01T00:00:00Z"})
    event_log.record({"event_type": "thumb_up", "driver_id": "D2", "occurred_at": "2024-02-01T00:00:00Z"})

    assert len(event_log.list_events(driver_id="D1")) == 2
    since = datetime(2024, 1, 15, tzinfo=timezone.utc)
    assert [e.driver_id for e in event_log.list_events(since=since)] == ["D1", "D2"]
    assert len(event_log.list_events(limit=1)) == 1


def test_events_listed_in_append_order():
    for kind in ("offer_shown", "offer_accepted", "delivered"):
        event_log.record({"event_type": kind, "driver_id": "D1"})

    seqs = [e.seq for e in event_log.list_events()]
    assert seqs == sorted(seqs)


def test_storage_failure_raises_storage_error():
    with patch("fleetfit.core.events.get_db", side_effect=sqlite3.OperationalError("disk I/O error")):
        with pytest.raises(StorageError) as excinfo:
            event_log.record({"event_type": "thumb_up", "driver_id": "D1"})

    assert excinfo.value.retryable is False
    assert excinfo.value.details["operation"] == "write"


def test_best_effort_swallows_validation_error():
    assert event_log.record_best_effort({"driver_id": "D1"}) is None
    assert event_log.count_events() == 0


def test_best_effort_swallows_storage_error():
    with patch("fleetfit.core.events.get_db", side_effect=sqlite3.OperationalError("locked")):
        assert event_log.record_best_effort({"event_type": "thumb_up", "driver_id": "D1"}) is None


def test_best_effort_records_valid_event():
    event_id = event_log.record_best_effort({"event_type": "pickup_scanned", "driver_id": "D1"})
    assert event_id is not None
    assert event_log.count_events() == 1
