"""
Configuration validation and structured logging tests.
"""

import logging

from fleetfit.core.config import get_db_path, get_weight_bounds, validate_config, validate_heartbeat_config
from fleetfit.util.logging import logger, sanitize_payload


def test_db_path_follows_environment(monkeypatch, tmp_path):
    target = tmp_path / "other.db"
    monkeypatch.setenv("DB_PATH", str(target))
    assert get_db_path() == str(target)


def test_default_config_is_valid():
    assert validate_config() == []


def test_inverted_weight_bounds_reported(monkeypatch):
    monkeypatch.setenv("WEIGHT_MIN", "0.9")
    monkeypatch.setenv("WEIGHT_MAX", "0.1")

    assert get_weight_bounds() == (0.9, 0.1)
    assert any("WEIGHT_MIN" in issue for issue in validate_config())


def test_learner_settings_validated(monkeypatch):
    monkeypatch.setenv("LEARNER_MIN_SAMPLES", "0")
    monkeypatch.setenv("LEARNER_WINDOW_DAYS", "-3")
    monkeypatch.setenv("LEARNER_INTERVAL_SEC", "0")

    issues = validate_config()
    assert "LEARNER_MIN_SAMPLES must be >= 1" in issues
    assert "LEARNER_WINDOW_DAYS must be >= 0" in issues
    assert "LEARNER_INTERVAL_SEC must be >= 1" in validate_heartbeat_config()


def test_sanitize_payload_truncates_nested_strings():
    payload = {"note": "x" * 150, "tags": ["y" * 120], "count": 3}

    clean = sanitize_payload(payload)
    assert clean["note"] == "x" * 100 + "..."
    assert clean["tags"][0].endswith("...")
    assert clean["count"] == 3


def test_failed_operations_log_at_warning(caplog):
    with caplog.at_level(logging.INFO, logger="fleetfit"):
        logger.log_operation("learner.run", "failed", {"error": "disk full"})
        logger.log_operation("learner.run", "success")

    levels = [(r.levelno, r.getMessage()) for r in caplog.records]
    assert (logging.WARNING, "Operation: learner.run, Status: failed, Details: {'error': 'disk full'}") in levels
    assert (logging.INFO, "Operation: learner.run, Status: success") in levels
