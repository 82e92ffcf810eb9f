import sqlite3

from finivis.db.dal import Database
from finivis.db.migrate import (
    CURRENT_SCHEMA_VERSION,
    SCHEMA_VERSION_KEY,
    SETTLEMENT_COLUMNS,
    apply_migrations,
)


def _columns(db_path, table):
    conn = sqlite3.connect(db_path)
    try:
        return {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}
    finally:
        conn.close()


def test_fresh_database_reaches_current_version(tmp_path):
    db_path = tmp_path / "fresh.db"
    assert apply_migrations(db_path) == CURRENT_SCHEMA_VERSION

    cols = _columns(db_path, "currency_exchange_orders")
    assert {name for name, _ in SETTLEMENT_COLUMNS} <= cols

    db = Database(db_path)
    assert db.get_metadata(SCHEMA_VERSION_KEY) == str(CURRENT_SCHEMA_VERSION)
    assert db.get_metadata("advance_pct") == "10"
    assert db.get_metadata("rate_validity_minutes") == "1440"


def test_migrations_are_idempotent_and_keep_settings(tmp_path):
    db_path = tmp_path / "again.db"
    apply_migrations(db_path)
    db = Database(db_path)
    db.set_metadata("advance_pct", "30")
    uid = db.create_profile("kiran@example.com", full_name="Kiran")

    assert apply_migrations(db_path) == CURRENT_SCHEMA_VERSION
    assert db.get_metadata("advance_pct") == "30"
    assert db.get_profile(uid)["email"] == "kiran@example.com"


def test_v1_database_is_upgraded_in_place(tmp_path):
    db_path = tmp_path / "v1.db"
    apply_migrations(db_path)
    conn = sqlite3.connect(db_path)
    # simulate a v1 file: drop the version row and the v2 defaults
    conn.execute("DELETE FROM metadata")
    conn.commit()
    conn.close()

    assert apply_migrations(db_path) == 2
    db = Database(db_path)
    assert db.get_metadata("advance_pct") == "10"
    assert db.get_metadata(SCHEMA_VERSION_KEY) == "2"
