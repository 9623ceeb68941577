"""
Learner: recomputes the named weight vector from the event log.

Each weight is a clamped linear rescale of its fleet-wide aggregate rate
into [WEIGHT_MIN, WEIGHT_MAX], blended toward a default prior while the
rate rests on fewer than LEARNER_MIN_SAMPLES samples:

    raw        = low + (high - low) * rate
    confidence = min(1, samples / LEARNER_MIN_SAMPLES)
    weight     = clip(prior + (raw - prior) * confidence, low, high)

A rate with no samples leaves the weight at its prior. Only one run may be
in flight; the weights and the statistics cache are committed together or
not at all.
"""

import json
import sqlite3
import threading
import time
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional

import numpy as np

from . import events as event_log
from . import weights as weight_store
from .aggregates import Aggregates, FleetRates, aggregate
from .config import (
    get_learner_window_days,
    get_learner_min_samples,
    get_offer_timeout_hours,
    get_weight_bounds,
)
from .db import get_db
from .errors import AlreadyRunningError, FleetFitError, LearnerCancelledError, StorageError
from .schema import DriverStat, LearnerRun, WeightVector
from ..util.logging import logger

# Weight name -> prior used before enough evidence has accumulated
DEFAULT_WEIGHTS = {
    "acceptance": 0.6,
    "on_time": 0.7,
    "detention": 0.4,
    "sentiment": 0.5,
    "lane_affinity": 0.8,
    "equipment_match": 0.5,
    "region_match": 0.3,
    "distance_fit": 0.4,
}

# Weight name -> fleet rate it is derived from
WEIGHT_SOURCES = {
    "acceptance": "acceptance",
    "on_time": "on_time",
    "detention": "detention",
    "sentiment": "sentiment",
    "lane_affinity": "lane_coverage",
    "equipment_match": "equipment_coverage",
    "region_match": "region_coverage",
    "distance_fit": "distance_coverage",
}


def _unit_rate(name: str, fleet: FleetRates) -> Optional[float]:
    rate = getattr(fleet, WEIGHT_SOURCES[name])
    if rate is None:
        return None
    if name == "sentiment":
        # sentiment lives in [-1, 1]
        rate = (rate + 1.0) / 2.0
    return rate


def derive_weights(fleet: FleetRates) -> Dict[str, float]:
    """Map fleet aggregate rates to the named weight vector."""
    low, high = get_weight_bounds()
    min_samples = max(1, get_learner_min_samples())

    names = sorted(DEFAULT_WEIGHTS)
    priors = np.clip(np.array([DEFAULT_WEIGHTS[n] for n in names], dtype=float), low, high)
    rates = [_unit_rate(n, fleet) for n in names]
    known = np.array([r is not None for r in rates])
    unit = np.clip(np.array([r if r is not None else 0.0 for r in rates], dtype=float), 0.0, 1.0)
    samples = np.array([fleet.samples.get(n, 0) for n in names], dtype=float)

    raw = low + (high - low) * unit
    confidence = np.where(known, np.minimum(1.0, samples / min_samples), 0.0)
    blended = np.clip(priors + (raw - priors) * confidence, low, high)

    return {name: round(float(value), 4) for name, value in zip(names, blended)}


class Learner:
    """Single-flight wrapper around one learning pass."""

    def __init__(self):
        self._lock = threading.Lock()
        self._cancel_event: Optional[threading.Event] = None

    def is_running(self) -> bool:
        return self._lock.locked()

    def cancel(self) -> bool:
        """Ask the in-flight run to stop. Returns False when nothing is running."""
        event = self._cancel_event
        if event is None:
            return False
        event.set()
        return True

    def run(self, trigger: str = "api", cancel_event: Optional[threading.Event] = None) -> WeightVector:
        """Recompute and commit the weight vector.

        Raises AlreadyRunningError when another run holds the lock,
        LearnerCancelledError when cancelled, StorageError when the log
        cannot be read or the vector cannot be written. In every failure
        case the previous vector stays in place.
        """
        if not self._lock.acquire(blocking=False):
            raise AlreadyRunningError("A learner run is already in progress")

        run = LearnerRun(run_id=str(uuid.uuid4()), trigger=trigger,
                         started_at=event_log.to_storage_ts(event_log.utcnow()))
        cancel = cancel_event or threading.Event()
        self._cancel_event = cancel
        start_time = time.monotonic()

        try:
            try:
                stored, agg, previous = self._run_once(run.run_id, cancel)
            except FleetFitError as e:
                run.notes = f"{e.code}: {e}"
                _finish_run(run)
                logger.log_learner_run(run.run_id, start_time, time.monotonic(), status="failed",
                                       details={"trigger": trigger, "error": str(e)})
                raise

            run.ok = True
            run.events_processed = agg.events_processed
            run.drivers = len(agg.drivers)
            run.notes = json.dumps(_weight_deltas(previous, stored))
            _finish_run(run)
            logger.log_learner_run(run.run_id, start_time, time.monotonic(), details={
                "trigger": trigger,
                "events": agg.events_processed,
                "drivers": len(agg.drivers),
            })
            return stored
        finally:
            self._cancel_event = None
            self._lock.release()

    def _run_once(self, run_id: str, cancel: threading.Event):
        previous = weight_store.read()

        now = event_log.utcnow()
        window_days = get_learner_window_days()
        since = now - timedelta(days=window_days) if window_days > 0 else None
        history = event_log.list_events(since=since)
        _check_cancelled(cancel)

        agg = aggregate(history, now, timedelta(hours=get_offer_timeout_hours()))
        _check_cancelled(cancel)

        values = derive_weights(agg.fleet)
        _check_cancelled(cancel)

        def write_cache(cursor: sqlite3.Cursor) -> None:
            _check_cancelled(cancel)
            _write_stats_cache(cursor, run_id, agg)

        stored = weight_store.replace_all(values, run_id=run_id, extra=write_cache)
        return stored, agg, previous


def _check_cancelled(cancel: threading.Event) -> None:
    if cancel.is_set():
        raise LearnerCancelledError("Learner run cancelled by caller")


def _write_stats_cache(cursor: sqlite3.Cursor, run_id: str, agg: Aggregates) -> None:
    cursor.execute("DELETE FROM driver_stats")
    cursor.executemany(
        "INSERT INTO driver_stats (driver_id, run_id, stats) VALUES (?, ?, ?)",
        [(driver_id, run_id, json.dumps(stat.to_dict())) for driver_id, stat in agg.drivers.items()]
    )
    cursor.execute("DELETE FROM lane_stats")
    cursor.executemany(
        "INSERT INTO lane_stats (driver_id, lane_key, positive, negative, affinity, run_id) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        [(s.driver_id, s.lane_key, s.positive, s.negative, s.affinity, run_id) for s in agg.lanes.values()]
    )


def _weight_deltas(previous: WeightVector, current: WeightVector) -> Dict[str, float]:
    return {
        name: round(value - previous.values.get(name, 0.0), 4)
        for name, value in current.values.items()
    }


def _finish_run(run: LearnerRun) -> None:
    """Append the audit row. Losing it must not fail the run."""
    run.finished_at = event_log.to_storage_ts(event_log.utcnow())
    try:
        with get_db() as conn:
            conn.execute(
                "INSERT INTO learner_runs (run_id, trigger, started_at, finished_at, ok, events_processed, drivers, notes) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (run.run_id, run.trigger, run.started_at, run.finished_at, run.ok,
                 run.events_processed, run.drivers, run.notes)
            )
    except sqlite3.Error as e:
        logger.warning(f"Failed to log learner run {run.run_id}: {e}")


# Process-wide learner used by the API, CLI and heartbeat
learner = Learner()


def run(trigger: str = "api", cancel_event: Optional[threading.Event] = None) -> WeightVector:
    return learner.run(trigger=trigger, cancel_event=cancel_event)


def run_on_cadence() -> None:
    """Heartbeat task: an overlapping run is skipped, not queued."""
    try:
        vector = learner.run(trigger="heartbeat")
    except AlreadyRunningError:
        logger.info("Learner already running; skipping scheduled run")
        return
    except LearnerCancelledError:
        logger.info("Scheduled learner run cancelled; previous weights kept")
        return
    logger.info(f"Scheduled learner run committed {len(vector)} weights (run {vector.run_id})")


def driver_stats_for(driver_id: str) -> Optional[DriverStat]:
    """Live aggregate for one driver, straight from the log."""
    history = event_log.list_events(driver_id=driver_id)
    if not history:
        return None
    agg = aggregate(history, event_log.utcnow(), timedelta(hours=get_offer_timeout_hours()))
    return agg.drivers.get(driver_id)


def list_runs(limit: int = 20) -> List[LearnerRun]:
    try:
        with get_db() as conn:
            rows = conn.execute(
                "SELECT * FROM learner_runs ORDER BY started_at DESC LIMIT ?", (max(1, int(limit)),)
            ).fetchall()
    except sqlite3.Error as e:
        raise StorageError(f"Failed to list learner runs: {e}", operation="read")

    return [LearnerRun(
        run_id=row["run_id"], trigger=row["trigger"], started_at=row["started_at"],
        finished_at=row["finished_at"], ok=bool(row["ok"]), events_processed=row["events_processed"] or 0,
        drivers=row["drivers"] or 0, notes=row["notes"]
    ) for row in rows]


def learning_summary() -> Dict[str, Any]:
    """Rolled-up view of what the learner has seen and when it last ran."""
    try:
        with get_db() as conn:
            stats_rows = conn.execute("SELECT stats FROM driver_stats").fetchall()
            total_events = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
            last = conn.execute(
                "SELECT started_at, ok, trigger FROM learner_runs ORDER BY started_at DESC LIMIT 1"
            ).fetchone()
    except sqlite3.Error as e:
        raise StorageError(f"Failed to build learning summary: {e}", operation="read")

    stats = [DriverStat.from_dict(json.loads(row["stats"])) for row in stats_rows]
    with_feedback = [s.fit_score for s in stats if s.thumbs_up + s.thumbs_down]

    return {
        "drivers_with_signals": len(stats),
        "total_events": total_events,
        "avg_fit_score": round(float(np.mean(with_feedback)), 4) if with_feedback else 0.0,
        "last_run_at": last["started_at"] if last else None,
        "last_run_ok": bool(last["ok"]) if last else False,
        "last_run_trigger": last["trigger"] if last else None,
    }
