"""
Configuration for the fit scoring core.
Values come from environment variables (a local .env is loaded first).
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/fleetfit.db")
DB_TIMEOUT_SEC = float(os.getenv("DB_TIMEOUT_SEC", "5"))

DEBUG = os.getenv("DEBUG", "true").lower() == "true"

# Learner configuration
LEARNER_WINDOW_DAYS = int(os.getenv("LEARNER_WINDOW_DAYS", "0"))  # 0 = full history
LEARNER_MIN_SAMPLES = int(os.getenv("LEARNER_MIN_SAMPLES", "20"))
OFFER_TIMEOUT_HOURS = float(os.getenv("OFFER_TIMEOUT_HOURS", "24"))
WEIGHT_MIN = float(os.getenv("WEIGHT_MIN", "0.1"))
WEIGHT_MAX = float(os.getenv("WEIGHT_MAX", "1.0"))

# Ranking configuration
BASELINE_SCORE = float(os.getenv("BASELINE_SCORE", "0.5"))
DEFAULT_RANK_LIMIT = int(os.getenv("DEFAULT_RANK_LIMIT", "5"))

# Heartbeat configuration (default disabled)
HEARTBEAT_ENABLED = os.getenv("HEARTBEAT_ENABLED", "false").lower() == "true"
LEARNER_INTERVAL_SEC = int(os.getenv("LEARNER_INTERVAL_SEC", "3600"))

CORS_ORIGINS = [o.strip() for o in os.getenv(
    "CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
).split(",") if o.strip()]

# Version string
VERSION = "0.3.0"


def get_db_path() -> str:
    """Database path, re-read on every call so tests can point at a temp file."""
    return os.getenv("DB_PATH", DB_PATH)


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "true").lower() == "true"


def ensure_db_directory():
    """Ensure the database directory exists."""
    Path(get_db_path()).parent.mkdir(parents=True, exist_ok=True)


def get_learner_window_days() -> int:
    return int(os.getenv("LEARNER_WINDOW_DAYS", str(LEARNER_WINDOW_DAYS)))


def get_learner_min_samples() -> int:
    return int(os.getenv("LEARNER_MIN_SAMPLES", str(LEARNER_MIN_SAMPLES)))


def get_offer_timeout_hours() -> float:
    return float(os.getenv("OFFER_TIMEOUT_HOURS", str(OFFER_TIMEOUT_HOURS)))


def get_weight_bounds():
    """Return (low, high) bounds for learned weight values."""
    low = float(os.getenv("WEIGHT_MIN", str(WEIGHT_MIN)))
    high = float(os.getenv("WEIGHT_MAX", str(WEIGHT_MAX)))
    return low, high


def get_baseline_score() -> float:
    return float(os.getenv("BASELINE_SCORE", str(BASELINE_SCORE)))


def is_heartbeat_enabled():
    """Check if heartbeat system is enabled."""
    return os.getenv("HEARTBEAT_ENABLED", "false").lower() == "true"


def get_learner_interval():
    """Get learner cadence in seconds."""
    return int(os.getenv("LEARNER_INTERVAL_SEC", str(LEARNER_INTERVAL_SEC)))


def validate_config() -> List[str]:
    """Validate configuration and return any issues."""
    issues = []

    low, high = get_weight_bounds()
    if low >= high:
        issues.append(f"WEIGHT_MIN ({low}) must be lower than WEIGHT_MAX ({high})")

    if get_learner_window_days() < 0:
        issues.append("LEARNER_WINDOW_DAYS must be >= 0")

    if get_learner_min_samples() < 1:
        issues.append("LEARNER_MIN_SAMPLES must be >= 1")

    if get_offer_timeout_hours() < 0:
        issues.append("OFFER_TIMEOUT_HOURS must be >= 0")

    if get_baseline_score() < 0:
        issues.append("BASELINE_SCORE must be >= 0")

    issues.extend(validate_heartbeat_config())

    return issues


def validate_heartbeat_config():
    """Validate heartbeat configuration and return any issues."""
    issues = []

    if get_learner_interval() < 1:
        issues.append("LEARNER_INTERVAL_SEC must be >= 1")

    return issues
