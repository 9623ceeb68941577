"""
Shared fixtures: every test gets its own SQLite database.
"""

import pytest

from fleetfit.core import heartbeat
from fleetfit.core.db import init_db
from fleetfit.core.fleet import upsert_driver, upsert_load
from fleetfit.core.schema import LoadRecord

TUNING_VARS = (
    "LEARNER_WINDOW_DAYS", "LEARNER_MIN_SAMPLES", "OFFER_TIMEOUT_HOURS",
    "WEIGHT_MIN", "WEIGHT_MAX", "BASELINE_SCORE", "HEARTBEAT_ENABLED",
)


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    """Point DB_PATH at a fresh file and create the schema."""
    db_path = tmp_path / "fleetfit_test.db"
    monkeypatch.setenv("DB_PATH", str(db_path))
    for name in TUNING_VARS:
        monkeypatch.delenv(name, raising=False)
    init_db()
    yield db_path


@pytest.fixture(autouse=True)
def reset_heartbeat():
    """Reset heartbeat state between tests."""
    heartbeat.tasks.clear()
    heartbeat.running = False
    heartbeat.shutdown_event = None
    yield
    heartbeat.tasks.clear()
    heartbeat.running = False


LANE = {"lane_origin": "Dallas, TX", "lane_dest": "Houston, TX"}


@pytest.fixture
def lane():
    return dict(LANE)


@pytest.fixture
def demo_fleet():
    """Two active drivers and one load on the Dallas -> Houston lane."""
    upsert_driver("D1", "Alice Alvarez", active=True)
    upsert_driver("D2", "Bob Baker", status="available")
    load = LoadRecord(load_id="L1", **LANE)
    upsert_load(load)
    return load
