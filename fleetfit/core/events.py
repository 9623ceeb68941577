"""
Event recorder: validates and appends feedback events to the log.

Events are immutable once accepted. The table refuses UPDATE and DELETE,
and nothing in this module issues either.
"""

import json
import math
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Union

from .db import get_db, transaction
from .errors import StorageError, ValidationError
from .schema import Event, EventType
from ..util.logging import logger

NUMERIC_FIELDS = ("miles", "pay_total_usd", "max_distance")
TEXT_FIELDS = ("load_id", "lane_origin", "lane_dest", "region", "equipment")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_storage_ts(value: datetime) -> str:
    """Fixed-width UTC ISO string so lexical order matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: Union[str, datetime], field_name: str = "occurred_at") -> datetime:
    """Parse an ISO-8601 string or datetime; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"{field_name} must be an ISO-8601 timestamp",
                                  {"field": field_name, "value": value})
    else:
        raise ValidationError(f"{field_name} must be an ISO-8601 timestamp",
                              {"field": field_name, "value": value})

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _validate_number(name: str, value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number", {"field": name, "value": value})
    number = float(value)
    if not math.isfinite(number) or number < 0:
        raise ValidationError(f"{name} must be finite and non-negative", {"field": name, "value": value})
    return number


def _validate_text(name: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string", {"field": name, "value": value})
    value = value.strip()
    return value or None


def build_event(data: Union[Event, Mapping[str, Any]], received_at: Optional[datetime] = None) -> Event:
    """Validate raw input and return an Event ready to append.

    Raises ValidationError naming the first offending field.
    """
    if isinstance(data, Event):
        data = {
            "event_type": data.event_type, "driver_id": data.driver_id, "load_id": data.load_id,
            "occurred_at": data.occurred_at, "lane_origin": data.lane_origin, "lane_dest": data.lane_dest,
            "region": data.region, "equipment": data.equipment, "miles": data.miles,
            "pay_total_usd": data.pay_total_usd, "max_distance": data.max_distance, "payload": data.payload,
        }
    elif not isinstance(data, Mapping):
        raise ValidationError("event must be an object", {"type": type(data).__name__})

    raw_type = data.get("event_type")
    if raw_type is None or raw_type == "":
        raise ValidationError("event_type is required", {"field": "event_type"})
    try:
        event_type = EventType(raw_type)
    except ValueError:
        raise ValidationError(f"Unknown event_type '{raw_type}'",
                              {"field": "event_type", "allowed": EventType.values()})

    driver_id = data.get("driver_id")
    if not isinstance(driver_id, str) or not driver_id.strip():
        raise ValidationError("driver_id is required", {"field": "driver_id"})

    occurred_raw = data.get("occurred_at")
    if occurred_raw is None or occurred_raw == "":
        occurred_at = received_at or utcnow()
    else:
        occurred_at = parse_timestamp(occurred_raw)

    payload = data.get("payload")
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValidationError("payload must be an object", {"field": "payload"})
    try:
        json.dumps(payload)
    except (TypeError, ValueError):
        raise ValidationError("payload must be JSON serializable", {"field": "payload"})

    text = {name: _validate_text(name, data.get(name)) for name in TEXT_FIELDS}
    numbers = {name: _validate_number(name, data.get(name)) for name in NUMERIC_FIELDS}

    return Event(
        event_type=event_type,
        driver_id=driver_id.strip(),
        occurred_at=occurred_at,
        payload=dict(payload),
        **text,
        **numbers,
    )


def record(data: Union[Event, Mapping[str, Any]]) -> str:
    """Validate and durably append one event. Returns the new event_id.

    Raises ValidationError (nothing written) or StorageError (the caller
    must not assume the event was recorded).
    """
    received_at = utcnow()
    event = build_event(data, received_at=received_at)
    event_id = str(uuid.uuid4())

    try:
        with get_db() as conn:
            with transaction(conn) as cursor:
                cursor.execute(
                    '''INSERT INTO events (event_id, event_type, driver_id, load_id, occurred_at, recorded_at,
                                           lane_origin, lane_dest, region, equipment, miles, pay_total_usd,
                                           max_distance, payload)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)''',
                    (event_id, event.event_type.value, event.driver_id, event.load_id,
                     to_storage_ts(event.occurred_at), to_storage_ts(received_at),
                     event.lane_origin, event.lane_dest, event.region, event.equipment,
                     event.miles, event.pay_total_usd, event.max_distance, json.dumps(event.payload))
                )
    except sqlite3.Error as e:
        logger.log_event_recorded("-", event.event_type.value, event.driver_id, status="failed",
                                  details={"error": str(e)})
        raise StorageError(f"Failed to record {event.event_type.value} event: {e}")

    logger.log_event_recorded(event_id, event.event_type.value, event.driver_id,
                              details={"load_id": event.load_id} if event.load_id else None)
    return event_id


def record_best_effort(data: Union[Event, Mapping[str, Any]]) -> Optional[str]:
    """Record an instrumentation event without ever raising.

    Returns the event_id, or None when the sample was dropped.
    """
    try:
        return record(data)
    except Exception as e:
        event_type = data.get("event_type") if isinstance(data, Mapping) else getattr(data, "event_type", None)
        logger.warning(f"Dropped best-effort event {event_type!r}: {e}")
        return None


def _row_to_event(row: sqlite3.Row) -> Event:
    try:
        payload = json.loads(row["payload"]) if row["payload"] else {}
    except (json.JSONDecodeError, ValueError):
        payload = {"raw_data": row["payload"]}

    return Event(
        event_type=EventType(row["event_type"]),
        driver_id=row["driver_id"],
        load_id=row["load_id"],
        occurred_at=parse_timestamp(row["occurred_at"]),
        recorded_at=parse_timestamp(row["recorded_at"]),
        lane_origin=row["lane_origin"],
        lane_dest=row["lane_dest"],
        region=row["region"],
        equipment=row["equipment"],
        miles=row["miles"],
        pay_total_usd=row["pay_total_usd"],
        max_distance=row["max_distance"],
        payload=payload,
        event_id=row["event_id"],
        seq=row["seq"],
    )


def list_events(driver_id: Optional[str] = None, since: Optional[datetime] = None,
                limit: Optional[int] = None) -> List[Event]:
    """Events in append order, optionally filtered by driver and occurred_at >= since."""
    clauses = []
    params: List[Any] = []
    if driver_id:
        clauses.append("driver_id = ?")
        params.append(driver_id)
    if since is not None:
        clauses.append("occurred_at >= ?")
        params.append(to_storage_ts(since))

    query = "SELECT * FROM events"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY seq ASC"
    if limit is not None:
        query += " LIMIT ?"
        params.append(max(0, int(limit)))

    try:
        with get_db() as conn:
            rows = conn.execute(query, params).fetchall()
    except sqlite3.Error as e:
        raise StorageError(f"Failed to list events: {e}", operation="read")

    return [_row_to_event(row) for row in rows]


def count_events() -> int:
    try:
        with get_db() as conn:
            row = conn.execute("SELECT COUNT(*) FROM events").fetchone()
            return row[0] if row else 0
    except sqlite3.Error as e:
        raise StorageError(f"Failed to count events: {e}", operation="read")
