"""
Append-only audit log of request lifecycle events.

The log is the source of truth for when things happened to a request.
Entries are appended inside the same transaction as the status change they
describe, and are never updated or deleted.
"""

import sqlite3
from datetime import datetime
from typing import List, Optional

from .db import DEFAULT_DB_PATH, DEFAULT_TIMEOUT, from_db_time, get_connection, to_db_time
from .models import AuditEntry, AuditKind

_ENTRY_COLUMNS = "sequence, request_id, kind, actor, actor_id, timestamp, note"


def _row_to_entry(row) -> AuditEntry:
    return AuditEntry(
        sequence=row[0],
        request_id=row[1],
        kind=AuditKind(row[2]),
        actor=row[3],
        actor_id=row[4],
        timestamp=from_db_time(row[5]),
        note=row[6]
    )


class AuditLog:
    """Read and append access to ``srp_audit_entry``."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH, timeout: float = DEFAULT_TIMEOUT):
        self.db_path = db_path
        self.timeout = timeout

    def append(
        self,
        conn: sqlite3.Connection,
        request_id: str,
        kind: AuditKind,
        actor: str,
        actor_id: str,
        timestamp: datetime,
        note: Optional[str] = None
    ) -> AuditEntry:
        """Append one entry on the caller's transaction connection.

        If the enclosing transaction rolls back, the entry goes with it.

        Raises:
            sqlite3.IntegrityError: If the request already has an entry of this kind
        """
        cursor = conn.execute("""
            INSERT INTO srp_audit_entry (request_id, kind, actor, actor_id, note, timestamp)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (request_id, kind.value, actor, actor_id, note, to_db_time(timestamp)))
        return AuditEntry(
            sequence=cursor.lastrowid,
            request_id=request_id,
            kind=kind,
            actor=actor,
            actor_id=actor_id,
            timestamp=timestamp,
            note=note
        )

    def has_entry(self, conn: sqlite3.Connection, request_id: str, kind: AuditKind) -> bool:
        cursor = conn.execute(
            "SELECT 1 FROM srp_audit_entry WHERE request_id = ? AND kind = ? LIMIT 1",
            (request_id, kind.value)
        )
        return cursor.fetchone() is not None

    def entries_for(self, request_id: str, conn: Optional[sqlite3.Connection] = None) -> List[AuditEntry]:
        """Full history of a request, oldest first.

        Ties on timestamp are broken by insertion order.
        """
        own = conn is None
        if own:
            conn = get_connection(self.db_path, self.timeout)
        try:
            cursor = conn.execute(f"""
                SELECT {_ENTRY_COLUMNS} FROM srp_audit_entry
                WHERE request_id = ?
                ORDER BY timestamp ASC, sequence ASC
            """, (request_id,))
            return [_row_to_entry(row) for row in cursor.fetchall()]
        finally:
            if own:
                conn.close()

    def first_occurrence_of(
        self,
        request_id: str,
        kind: AuditKind,
        conn: Optional[sqlite3.Connection] = None
    ) -> Optional[AuditEntry]:
        """Earliest entry of ``kind`` for a request, or None."""
        own = conn is None
        if own:
            conn = get_connection(self.db_path, self.timeout)
        try:
            cursor = conn.execute(f"""
                SELECT {_ENTRY_COLUMNS} FROM srp_audit_entry
                WHERE request_id = ? AND kind = ?
                ORDER BY timestamp ASC, sequence ASC
                LIMIT 1
            """, (request_id, kind.value))
            row = cursor.fetchone()
            return _row_to_entry(row) if row else None
        finally:
            if own:
                conn.close()
