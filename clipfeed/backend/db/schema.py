"""Schema bootstrap: applies schema.sql and seed.sql to a database."""

import sqlite3
from pathlib import Path

from clipfeed.backend.db.connection import get_connection

DB_DIR = Path(__file__).parent
SCHEMA_SQL_PATH = DB_DIR / "schema.sql"
SEED_SQL_PATH = DB_DIR / "seed.sql"


def apply_sql_file(conn: sqlite3.Connection, path: Path) -> None:
    """Execute a .sql file on an open connection, handling PRAGMAs separately.

    executescript() commits and resets per-connection PRAGMAs, so the PRAGMA
    lines are stripped from the script and re-applied afterwards.
    """
    sql = path.read_text()
    lines = [line for line in sql.splitlines()
             if not line.strip().upper().startswith("PRAGMA")]
    conn.executescript("\n".join(lines))
    conn.execute("PRAGMA foreign_keys = ON")


def initialize_schema(db_path: str = None, seed: bool = True) -> None:
    """Create all tables (and reference data unless seed=False) in the database.

    Safe to run repeatedly: every statement is CREATE ... IF NOT EXISTS or
    INSERT OR IGNORE.
    """
    with get_connection(db_path) as conn:
        apply_sql_file(conn, SCHEMA_SQL_PATH)
        if seed:
            apply_sql_file(conn, SEED_SQL_PATH)
