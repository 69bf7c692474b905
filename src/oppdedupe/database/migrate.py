"""Minimal SQLite migration helpers for additive schema changes."""

import sqlite3
from typing import List, Tuple


def _table_exists(conn: sqlite3.Connection, table: str) -> bool:
    cur = conn.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,))
    return cur.fetchone() is not None


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    """Check if a column exists in a table."""
    cur = conn.execute(f"PRAGMA table_info({table});")
    cols = [row[1] for row in cur.fetchall()]
    return column in cols


def ensure_opportunity_columns(sqlite_path: str) -> None:
    """
    Add dedup columns to an opportunities table created before fingerprinting.

    Adds source_hash (plus its index), status and last_updated_utc when
    missing. No-op if the table does not exist yet (create_all builds it
    complete).

    Args:
        sqlite_path: Path to SQLite database file
    """
    conn = sqlite3.connect(sqlite_path)
    try:
        if not _table_exists(conn, "opportunities"):
            return
        additions: List[Tuple[str, str]] = [
            ("source_hash", "TEXT"),
            ("status", "TEXT NOT NULL DEFAULT 'new'"),
            ("last_updated_utc", "TEXT"),
        ]
        for col, coltype in additions:
            if not _column_exists(conn, "opportunities", col):
                conn.execute(f"ALTER TABLE opportunities ADD COLUMN {col} {coltype};")
        conn.execute(
            "CREATE INDEX IF NOT EXISTS ix_opportunities_source_hash ON opportunities (source_hash);"
        )
        conn.commit()
    finally:
        conn.close()
