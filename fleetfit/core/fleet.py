"""
Read access to driver and load records.

Driver rows come from an upstream store whose schema is not guaranteed, so
each record is kept as JSON and its activity signal is resolved into a
typed variant here, once, in a fixed order:

    1. a boolean-like "active" field
    2. a recognised "status" string
    3. unknown -> eligible
"""

import json
import math
import sqlite3
from typing import Any, Dict, List, Optional

from .db import get_db
from .errors import StorageError, ValidationError
from .schema import Activity, BooleanActive, StatusActive, UnknownActive, DriverRecord, LoadRecord

ACTIVE_STATUSES = frozenset({"active", "available", "ready"})
INACTIVE_STATUSES = frozenset({"inactive", "disabled", "terminated", "suspended"})

_TRUE_STRINGS = frozenset({"true", "1"})
_FALSE_STRINGS = frozenset({"false", "0"})


def _boolean_like(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def resolve_activity(record: Dict[str, Any]) -> Activity:
    """Resolve a raw driver record's activity signal."""
    active = _boolean_like(record.get("active"))
    if active is not None:
        return BooleanActive(active)

    status = record.get("status")
    if isinstance(status, str):
        lowered = status.strip().lower()
        if lowered in ACTIVE_STATUSES:
            return StatusActive(lowered, True)
        if lowered in INACTIVE_STATUSES:
            return StatusActive(lowered, False)

    return UnknownActive()


def _optional_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def driver_from_record(driver_id: str, full_name: Optional[str], record: Dict[str, Any]) -> DriverRecord:
    """Build a typed DriverRecord from a raw row."""
    regions = record.get("preferred_regions") or ()
    if isinstance(regions, str):
        regions = (regions,)

    return DriverRecord(
        driver_id=driver_id,
        full_name=full_name or record.get("full_name") or driver_id,
        activity=resolve_activity(record),
        equipment=record.get("equipment"),
        home_region=record.get("home_region"),
        preferred_regions=tuple(r for r in regions if isinstance(r, str) and r.strip()),
        max_distance=_optional_number(record.get("max_distance")),
    )


def list_drivers() -> List[DriverRecord]:
    """All driver records, eligible or not."""
    try:
        with get_db() as conn:
            rows = conn.execute(
                "SELECT driver_id, full_name, record FROM drivers ORDER BY driver_id"
            ).fetchall()
    except sqlite3.Error as e:
        raise StorageError(f"Failed to list drivers: {e}", operation="read")

    return [driver_from_record(row["driver_id"], row["full_name"], json.loads(row["record"] or "{}"))
            for row in rows]


def get_driver(driver_id: str) -> Optional[DriverRecord]:
    try:
        with get_db() as conn:
            row = conn.execute(
                "SELECT driver_id, full_name, record FROM drivers WHERE driver_id = ?", (driver_id,)
            ).fetchone()
    except sqlite3.Error as e:
        raise StorageError(f"Failed to get driver '{driver_id}': {e}", operation="read")

    if not row:
        return None
    return driver_from_record(row["driver_id"], row["full_name"], json.loads(row["record"] or "{}"))


def get_load(load_id: str) -> Optional[LoadRecord]:
    try:
        with get_db() as conn:
            row = conn.execute(
                "SELECT load_id, lane_origin, lane_dest, region, equipment, miles, pay_total_usd "
                "FROM loads WHERE load_id = ?", (load_id,)
            ).fetchone()
    except sqlite3.Error as e:
        raise StorageError(f"Failed to get load '{load_id}': {e}", operation="read")

    if not row:
        return None
    return LoadRecord(**dict(row))


# Seeding helpers. Driver/load administration belongs to the upstream
# system; these exist for scripts and tests.

def upsert_driver(driver_id: str, full_name: str, **record: Any) -> None:
    if not driver_id or not str(driver_id).strip():
        raise ValidationError("driver_id is required", {"field": "driver_id"})

    body = dict(record)
    body["full_name"] = full_name
    try:
        with get_db() as conn:
            conn.execute(
                "INSERT INTO drivers (driver_id, full_name, record) VALUES (?, ?, ?) "
                "ON CONFLICT(driver_id) DO UPDATE SET full_name = excluded.full_name, record = excluded.record",
                (driver_id, full_name, json.dumps(body))
            )
    except sqlite3.Error as e:
        raise StorageError(f"Failed to upsert driver '{driver_id}': {e}")


def upsert_load(load: LoadRecord) -> None:
    if not load.load_id or not load.load_id.strip():
        raise ValidationError("load_id is required", {"field": "load_id"})

    try:
        with get_db() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO loads (load_id, lane_origin, lane_dest, region, equipment, miles, pay_total_usd) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (load.load_id, load.lane_origin, load.lane_dest, load.region, load.equipment,
                 load.miles, load.pay_total_usd)
            )
    except sqlite3.Error as e:
        raise StorageError(f"Failed to upsert load '{load.load_id}': {e}")
