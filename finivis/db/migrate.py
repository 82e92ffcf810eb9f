"""Database migration utilities.

Handles schema evolution by applying idempotent migrations keyed by an integer
`schema_version` stored in the metadata table. Each migration upgrades the
SQLite schema in-place while preserving existing rows.
"""

from __future__ import annotations
from pathlib import Path
import sqlite3
from typing import Optional

from . import schema as schema_def
from .schema import init_db

CURRENT_SCHEMA_VERSION = 2
SCHEMA_VERSION_KEY = "schema_version"

# Columns added in v2 for sell-forex settlement to a customer bank account
SETTLEMENT_COLUMNS = (
    ("settlement_method", "TEXT"),
    ("settlement_account_name", "TEXT"),
    ("settlement_account_number", "TEXT"),
    ("settlement_ifsc", "TEXT"),
    ("settlement_bank_name", "TEXT"),
    ("refund_status", "TEXT"),
    ("refund_amount", "REAL"),
)

DEFAULT_RUNTIME_SETTINGS = {
    "advance_pct": "10",
    "rate_validity_minutes": "1440",
}


def _get_schema_version(conn: sqlite3.Connection) -> Optional[int]:
    try:
        cur = conn.cursor()
        cur.execute("SELECT value FROM metadata WHERE key=?", (SCHEMA_VERSION_KEY,))
        row = cur.fetchone()
        if row:
            return int(row[0])
    except sqlite3.OperationalError:
        # metadata table may not exist yet (first run before init_db)
        return None
    return None


def apply_migrations(db_path: Path) -> int:
    """Apply required migrations and return resulting schema version."""
    init_db(db_path)
    conn = sqlite3.connect(db_path)
    try:
        version = _get_schema_version(conn) or 1
        if version < 2:
            _migrate_to_v2(conn)
            version = 2
        _set_schema_version(conn, version)
        conn.commit()
        return version
    finally:
        conn.close()


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    cur = conn.cursor()
    cur.execute(
        "INSERT INTO metadata (key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value=excluded.value, "
        f"updated_at=({schema_def.BASIC_UTC_NOW})",
        (SCHEMA_VERSION_KEY, str(version)),
    )


def _migrate_to_v2(conn: sqlite3.Connection) -> None:
    """Upgrade schema to version 2 (sell settlement + runtime setting defaults)."""
    cur = conn.cursor()
    try:
        for column, sql_type in SETTLEMENT_COLUMNS:
            if not _column_exists(cur, "currency_exchange_orders", column):
                cur.execute(
                    f"ALTER TABLE currency_exchange_orders ADD COLUMN {column} {sql_type}"
                )
        for key, value in DEFAULT_RUNTIME_SETTINGS.items():
            cur.execute(
                "INSERT OR IGNORE INTO metadata (key, value) VALUES (?, ?)",
                (key, value),
            )
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def _column_exists(cur: sqlite3.Cursor, table: str, column: str) -> bool:
    cur.execute(f"PRAGMA table_info({table})")
    return any(row[1] == column for row in cur.fetchall())
