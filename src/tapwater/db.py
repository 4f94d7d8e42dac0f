"""Database connection and schema management."""

import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

DB_PATH_ENV = "TAPWATER_DB_PATH"
DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "tapwater-planner" / "planner.db"

SCHEMA = """
-- Key/value blobs (planner state, spot prices published by the price exporter)
CREATE TABLE IF NOT EXISTS state_blobs (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Sessions handed to the heat pump
CREATE TABLE IF NOT EXISTS session_history (
    id INTEGER PRIMARY KEY,
    kind TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    average_price REAL,
    succeeded INTEGER NOT NULL,
    planned_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_history_start ON session_history(start_time);
"""


def get_db_path() -> Path:
    """Get the database path, creating parent directories if needed."""
    db_path = Path(os.environ.get(DB_PATH_ENV) or DEFAULT_DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


@contextmanager
def get_connection(db_path: Path | None = None) -> Iterator[sqlite3.Connection]:
    """Get a database connection with row factory enabled."""
    path = db_path or get_db_path()
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: Path | None = None) -> None:
    """Initialize the database schema."""
    with get_connection(db_path) as conn:
        conn.executescript(SCHEMA)
        conn.commit()


def put_blob(key: str, value: str, db_path: Path | None = None) -> None:
    """Store a blob, replacing any previous value under the same key."""
    init_db(db_path)
    with get_connection(db_path) as conn:
        conn.execute(
            "INSERT OR REPLACE INTO state_blobs (key, value, updated_at) VALUES (?, ?, ?)",
            (key, value, datetime.now(timezone.utc).isoformat()),
        )
        conn.commit()


def get_blob(key: str, db_path: Path | None = None) -> str | None:
    """Fetch a blob, or None if nothing is stored under the key."""
    init_db(db_path)
    with get_connection(db_path) as conn:
        row = conn.execute("SELECT value FROM state_blobs WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None


def delete_blob(key: str, db_path: Path | None = None) -> bool:
    """Remove a blob. Returns whether anything was deleted."""
    init_db(db_path)
    with get_connection(db_path) as conn:
        cursor = conn.execute("DELETE FROM state_blobs WHERE key = ?", (key,))
        conn.commit()
        return cursor.rowcount > 0


def get_stats(db_path: Path | None = None) -> dict:
    """Get database statistics."""
    init_db(db_path)
    with get_connection(db_path) as conn:
        stats = {}

        rows = conn.execute("SELECT key, updated_at FROM state_blobs ORDER BY key").fetchall()
        stats["blobs"] = {row["key"]: row["updated_at"] for row in rows}

        row = conn.execute(
            """SELECT COUNT(*) as count, SUM(succeeded) as succeeded,
                      MIN(start_time) as earliest, MAX(start_time) as latest
               FROM session_history"""
        ).fetchone()
        stats["session_history"] = {
            "count": row["count"],
            "succeeded": row["succeeded"] or 0,
            "earliest": row["earliest"],
            "latest": row["latest"],
        }

        return stats
