"""
SQLite storage for the event log, weight vector, learner cache and fleet directory.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator

from .config import get_db_path, ensure_db_directory, DB_TIMEOUT_SEC


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection.

    Connections run in autocommit mode; multi-statement work goes through
    `transaction()` so the BEGIN flavour is explicit.
    """
    conn = sqlite3.connect(get_db_path(), timeout=DB_TIMEOUT_SEC, isolation_level=None)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection, mode: str = "IMMEDIATE") -> Generator[sqlite3.Cursor, None, None]:
    """Run a block inside BEGIN <mode> ... COMMIT, rolling back on any error.

    DEFERRED is used for multi-statement reads: under WAL every statement in
    the block sees the same snapshot. IMMEDIATE takes the write lock up front.
    """
    cursor = conn.cursor()
    cursor.execute(f"BEGIN {mode}")
    try:
        yield cursor
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    else:
        conn.execute("COMMIT")


def init_db():
    """Initialize the database with required tables."""
    ensure_db_directory()
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")

        # Append-only event log; seq gives a stable processing order
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS events (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                event_id TEXT NOT NULL UNIQUE,
                event_type TEXT NOT NULL,
                driver_id TEXT NOT NULL,
                load_id TEXT,
                occurred_at TEXT NOT NULL,
                recorded_at TEXT NOT NULL,
                lane_origin TEXT,
                lane_dest TEXT,
                region TEXT,
                equipment TEXT,
                miles REAL,
                pay_total_usd REAL,
                max_distance REAL,
                payload TEXT
            )
        ''')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_events_driver_seq ON events(driver_id, seq)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_events_occurred_at ON events(occurred_at)')

        cursor.execute('''
            CREATE TRIGGER IF NOT EXISTS events_no_update BEFORE UPDATE ON events
            BEGIN
                SELECT RAISE(ABORT, 'events are append-only');
            END
        ''')
        cursor.execute('''
            CREATE TRIGGER IF NOT EXISTS events_no_delete BEFORE DELETE ON events
            BEGIN
                SELECT RAISE(ABORT, 'events are append-only');
            END
        ''')

        # Current weight vector, replaced as a whole by the learner
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS weights (
                name TEXT PRIMARY KEY,
                value REAL NOT NULL,
                run_id TEXT,
                updated_at TEXT NOT NULL
            )
        ''')

        # Learner working state, committed with the weights
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS driver_stats (
                driver_id TEXT PRIMARY KEY,
                run_id TEXT,
                stats TEXT NOT NULL
            )
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS lane_stats (
                driver_id TEXT NOT NULL,
                lane_key TEXT NOT NULL,
                positive INTEGER NOT NULL DEFAULT 0,
                negative INTEGER NOT NULL DEFAULT 0,
                affinity REAL NOT NULL DEFAULT 0,
                run_id TEXT,
                PRIMARY KEY (driver_id, lane_key)
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS learner_runs (
                run_id TEXT PRIMARY KEY,
                trigger TEXT NOT NULL,
                started_at TEXT NOT NULL,
                finished_at TEXT,
                ok BOOLEAN NOT NULL DEFAULT FALSE,
                events_processed INTEGER DEFAULT 0,
                drivers INTEGER DEFAULT 0,
                notes TEXT
            )
        ''')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_learner_runs_started ON learner_runs(started_at DESC)')

        # Fleet directory. Driver records are stored as JSON because the
        # upstream schema for fields such as "active"/"status" varies.
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS drivers (
                driver_id TEXT PRIMARY KEY,
                full_name TEXT,
                record TEXT NOT NULL
            )
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS loads (
                load_id TEXT PRIMARY KEY,
                lane_origin TEXT,
                lane_dest TEXT,
                region TEXT,
                equipment TEXT,
                miles REAL,
                pay_total_usd REAL
            )
        ''')


def health_check():
    """Check database health."""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            tables = cursor.fetchall()

            # Check if required tables exist
            table_names = [table[0] for table in tables]
            required_tables = ['events', 'weights', 'driver_stats', 'lane_stats', 'learner_runs']

            return all(table in table_names for table in required_tables)
    except sqlite3.Error:
        return False
