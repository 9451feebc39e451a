"""Database connection manager with FK enforcement, WAL mode and busy timeout."""

import os
import sqlite3
from contextlib import contextmanager
from typing import Generator

DEFAULT_DB_PATH = './data/clipfeed.db'
DEFAULT_BUSY_TIMEOUT_MS = 5000


def get_db_path() -> str:
    """Database path from the DB_PATH environment variable, or the default."""
    return os.environ.get('DB_PATH', DEFAULT_DB_PATH)


def open_connection(db_path: str = None) -> sqlite3.Connection:
    """
    Open an SQLite connection configured the way every clipfeed handler expects.

    The connection has foreign keys enabled, WAL mode active, row_factory set to
    sqlite3.Row, and a busy timeout (DB_BUSY_TIMEOUT_MS, default 5000) so writes
    contending for the lock wait a bounded time instead of failing at once.
    Autocommit is left to the caller: writes call conn.commit() or run inside
    an explicit BEGIN IMMEDIATE transaction.

    Args:
        db_path: Path to the SQLite database file. If None, reads from DB_PATH
                 environment variable, falling back to './data/clipfeed.db'.
    """
    if db_path is None:
        db_path = get_db_path()

    busy_timeout = int(os.environ.get('DB_BUSY_TIMEOUT_MS', DEFAULT_BUSY_TIMEOUT_MS))

    # Cross-thread use: FastAPI runs sync work on a threadpool
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute(f"PRAGMA busy_timeout = {busy_timeout}")
    return conn


@contextmanager
def get_connection(db_path: str = None) -> Generator[sqlite3.Connection, None, None]:
    """
    Context manager that yields a configured SQLite connection and closes it afterwards.

    Example:
        with get_connection() as conn:
            rows = conn.execute("SELECT * FROM posts WHERE visibility = 'public'").fetchall()
    """
    conn = None
    try:
        conn = open_connection(db_path)
        yield conn
    finally:
        if conn is not None:
            conn.close()


def get_config(key: str, conn: sqlite3.Connection) -> str:
    """
    Retrieve a raw configuration value from the system_config table.

    Args:
        key: The configuration key to look up.
        conn: Open database connection.

    Returns:
        str: The configuration value for the given key.

    Raises:
        KeyError: If the configuration key does not exist in the database.

    Example:
        lookback = get_config('mood_lookback', conn)
    """
    row = conn.execute(
        "SELECT value FROM system_config WHERE key = ?", (key,)
    ).fetchone()

    if row is None:
        raise KeyError(f"Config key not found: {key}")

    return row['value']
