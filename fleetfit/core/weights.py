"""
Weight store: the current named weight vector.

`read()` returns a single committed vector. `replace_all()` swaps the whole
vector inside one write transaction. There is no per-weight update.
"""

import json
import math
import sqlite3
from typing import Callable, Dict, Mapping, Optional, Tuple, Union

from .db import get_db, transaction
from .errors import StorageError, ValidationError
from .events import parse_timestamp, to_storage_ts, utcnow
from .schema import DriverStat, StatsSnapshot, WeightVector
from ..util.logging import logger


def _read_weights(cursor: sqlite3.Cursor) -> WeightVector:
    rows = cursor.execute("SELECT name, value, run_id, updated_at FROM weights ORDER BY name").fetchall()
    if not rows:
        return WeightVector()

    return WeightVector(
        values={row["name"]: float(row["value"]) for row in rows},
        run_id=rows[0]["run_id"],
        updated_at=parse_timestamp(rows[0]["updated_at"]),
    )


def _read_stats(cursor: sqlite3.Cursor) -> StatsSnapshot:
    drivers = {}
    for row in cursor.execute("SELECT driver_id, stats FROM driver_stats").fetchall():
        drivers[row["driver_id"]] = DriverStat.from_dict(json.loads(row["stats"]))

    lanes = {}
    for row in cursor.execute("SELECT driver_id, lane_key, affinity FROM lane_stats").fetchall():
        lanes[(row["driver_id"], row["lane_key"])] = float(row["affinity"])

    return StatsSnapshot(drivers=drivers, lanes=lanes)


def read() -> WeightVector:
    """Current weight vector; empty when nothing has been learned yet."""
    try:
        with get_db() as conn:
            with transaction(conn, "DEFERRED") as cursor:
                return _read_weights(cursor)
    except sqlite3.Error as e:
        raise StorageError(f"Failed to read weights: {e}", operation="read")


def read_with_stats() -> Tuple[WeightVector, StatsSnapshot]:
    """Weights and the learner statistics cache from the same commit."""
    try:
        with get_db() as conn:
            with transaction(conn, "DEFERRED") as cursor:
                return _read_weights(cursor), _read_stats(cursor)
    except sqlite3.Error as e:
        raise StorageError(f"Failed to read weights and statistics: {e}", operation="read")


def validate_vector(vector: Union[WeightVector, Mapping[str, float]]) -> Dict[str, float]:
    values = vector.values if isinstance(vector, WeightVector) else vector
    if not isinstance(values, Mapping):
        raise ValidationError("weight vector must be a mapping of name to value")

    clean = {}
    for name, value in values.items():
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("weight names must be non-empty strings", {"name": name})
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ValidationError(f"weight '{name}' must be a finite number", {"name": name, "value": value})
        clean[name.strip()] = float(value)
    return clean


def replace_all(vector: Union[WeightVector, Mapping[str, float]], run_id: Optional[str] = None,
                extra: Optional[Callable[[sqlite3.Cursor], None]] = None) -> WeightVector:
    """Atomically replace the whole weight vector.

    `extra` runs inside the same transaction; if it raises, nothing is
    committed. Returns the vector as stored.
    """
    values = validate_vector(vector)
    if run_id is None and isinstance(vector, WeightVector):
        run_id = vector.run_id
    updated_at = utcnow()
    stamp = to_storage_ts(updated_at)

    try:
        with get_db() as conn:
            with transaction(conn, "IMMEDIATE") as cursor:
                cursor.execute("DELETE FROM weights")
                cursor.executemany(
                    "INSERT INTO weights (name, value, run_id, updated_at) VALUES (?, ?, ?, ?)",
                    [(name, value, run_id, stamp) for name, value in values.items()]
                )
                if extra is not None:
                    extra(cursor)
    except sqlite3.Error as e:
        logger.log_weights_replaced(run_id or "-", list(values), status="failed")
        raise StorageError(f"Failed to replace weight vector: {e}")

    logger.log_weights_replaced(run_id or "-", list(values))
    return WeightVector(values=values, run_id=run_id, updated_at=updated_at)
