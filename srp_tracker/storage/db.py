"""
Database connection management.

Provides SQLite connections and the transaction scope every lifecycle
mutation runs in.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

DEFAULT_DB_PATH = "srp_tracker.db"
DEFAULT_TIMEOUT = 5.0


def get_connection(db_path: str = DEFAULT_DB_PATH, timeout: float = DEFAULT_TIMEOUT) -> sqlite3.Connection:
    """Create and return a SQLite database connection with foreign keys enabled.

    The connection runs in autocommit mode so transactions are opened
    explicitly with ``BEGIN``.

    Args:
        db_path: Path to SQLite database file
        timeout: Seconds to wait on a locked database before failing

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=timeout, isolation_level=None)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def transaction(
    db_path: str = DEFAULT_DB_PATH,
    timeout: float = DEFAULT_TIMEOUT,
    write: bool = True
) -> Iterator[sqlite3.Connection]:
    """Run a block inside one transaction on a fresh connection.

    Write transactions use ``BEGIN IMMEDIATE`` so the status read that
    guards a transition and the update that follows it see the same data.
    SQLite locks the whole database for writing, so writes on different
    requests are serialized rather than run in parallel.
    Any exception rolls the whole transaction back and is re-raised.

    Args:
        db_path: Path to SQLite database file
        timeout: Seconds to wait for the write lock
        write: False opens a deferred, read-only snapshot
    """
    conn = get_connection(db_path, timeout)
    try:
        conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        conn.commit()
    finally:
        conn.close()


def to_db_time(value: datetime) -> str:
    """Serialize a timestamp so that string order equals time order."""
    return value.isoformat(timespec="microseconds")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)
