"""
Repository pattern for data access.

Handles SRP request rows and fleet records. Mutating methods take the
connection of an open transaction so that callers decide the unit of work;
read methods open their own connection.
"""

import sqlite3
from datetime import datetime
from typing import List, Optional

from .db import DEFAULT_DB_PATH, DEFAULT_TIMEOUT, from_db_time, get_connection, to_db_time
from .models import FleetRecord, FleetStatus, OperationType, RequestStatus, SrpRequest

_REQUEST_COLUMNS = """
    id, owner_id, asset_type_id, asset_type_name, category, claimed_value,
    operation_type, is_special_role, loss_description, status,
    estimated_payout, created_at, updated_at, payout_amount, fleet_ref,
    fleet_name, killmail_url, reviewer_id, reviewer_note, reviewed_at
"""


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the SRP tables if they don't exist.

    ``srp_audit_entry`` is an append-only ledger: no UPDATE or DELETE is
    ever issued against it. Each request holds at most one entry per kind.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS srp_request (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                asset_type_id INTEGER NOT NULL,
                asset_type_name TEXT NOT NULL,
                category TEXT NOT NULL,
                claimed_value INTEGER NOT NULL CHECK (claimed_value > 0),
                operation_type TEXT NOT NULL CHECK (operation_type IN ('solo', 'fleet')),
                is_special_role INTEGER NOT NULL DEFAULT 0,
                loss_description TEXT NOT NULL DEFAULT '',
                status TEXT NOT NULL
                    CHECK (status IN ('pending', 'processing', 'approved', 'denied')),
                estimated_payout INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                payout_amount INTEGER,
                fleet_ref TEXT,
                fleet_name TEXT,
                killmail_url TEXT,
                reviewer_id TEXT,
                reviewer_note TEXT,
                reviewed_at TEXT,
                CHECK ((status = 'approved') = (payout_amount IS NOT NULL))
            );
            CREATE INDEX IF NOT EXISTS idx_srp_request_owner ON srp_request (owner_id);
            CREATE INDEX IF NOT EXISTS idx_srp_request_status ON srp_request (status);
            CREATE INDEX IF NOT EXISTS idx_srp_request_created_at ON srp_request (created_at);

            CREATE TABLE IF NOT EXISTS srp_audit_entry (
                sequence INTEGER PRIMARY KEY AUTOINCREMENT,
                request_id TEXT NOT NULL REFERENCES srp_request (id),
                kind TEXT NOT NULL
                    CHECK (kind IN ('created', 'processing', 'approved', 'denied', 'paid')),
                actor TEXT NOT NULL,
                actor_id TEXT NOT NULL,
                note TEXT,
                timestamp TEXT NOT NULL,
                UNIQUE (request_id, kind)
            );
            CREATE INDEX IF NOT EXISTS idx_srp_audit_kind_time
                ON srp_audit_entry (kind, timestamp);

            CREATE TABLE IF NOT EXISTS fleet (
                id TEXT PRIMARY KEY,
                operation_name TEXT NOT NULL,
                fc_name TEXT NOT NULL,
                created_by TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'active'
                    CHECK (status IN ('active', 'completed', 'cancelled')),
                created_at TEXT NOT NULL,
                scheduled_at TEXT NOT NULL,
                description TEXT,
                location TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_fleet_scheduled_at
                ON fleet (scheduled_at);
        """)
    finally:
        conn.close()


def _row_to_request(row) -> SrpRequest:
    return SrpRequest(
        id=row[0],
        owner_id=row[1],
        asset_type_id=row[2],
        asset_type_name=row[3],
        category=row[4],
        claimed_value=row[5],
        operation_type=OperationType(row[6]),
        is_special_role=bool(row[7]),
        loss_description=row[8],
        status=RequestStatus(row[9]),
        estimated_payout=row[10],
        created_at=from_db_time(row[11]),
        updated_at=from_db_time(row[12]),
        payout_amount=row[13],
        fleet_ref=row[14],
        fleet_name=row[15],
        killmail_url=row[16],
        reviewer_id=row[17],
        reviewer_note=row[18],
        reviewed_at=from_db_time(row[19])
    )


class RequestRepository:
    """Repository for SRP request rows and registered fleets.

    The only way to change a request's status is ``compare_and_set_status``,
    which refuses to write unless the persisted status still equals the
    status the caller based its decision on.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, timeout: float = DEFAULT_TIMEOUT):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait on a locked database
        """
        self.db_path = db_path
        self.timeout = timeout

    def insert_request(self, conn: sqlite3.Connection, request: SrpRequest) -> None:
        """Insert a new request row inside the caller's transaction."""
        conn.execute(f"""
            INSERT INTO srp_request ({_REQUEST_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            request.id,
            request.owner_id,
            request.asset_type_id,
            request.asset_type_name,
            request.category,
            request.claimed_value,
            request.operation_type.value,
            int(request.is_special_role),
            request.loss_description,
            request.status.value,
            request.estimated_payout,
            to_db_time(request.created_at),
            to_db_time(request.updated_at),
            request.payout_amount,
            request.fleet_ref,
            request.fleet_name,
            request.killmail_url,
            request.reviewer_id,
            request.reviewer_note,
            to_db_time(request.reviewed_at) if request.reviewed_at else None
        ))

    def select_request(self, conn: sqlite3.Connection, request_id: str) -> Optional[SrpRequest]:
        """Read one request using an existing connection."""
        cursor = conn.execute(
            f"SELECT {_REQUEST_COLUMNS} FROM srp_request WHERE id = ?",
            (request_id,)
        )
        row = cursor.fetchone()
        return _row_to_request(row) if row else None

    def compare_and_set_status(
        self,
        conn: sqlite3.Connection,
        request_id: str,
        expected_status: RequestStatus,
        new_status: RequestStatus,
        updated_at: datetime,
        payout_amount: Optional[int] = None,
        reviewer_id: Optional[str] = None,
        reviewer_note: Optional[str] = None,
        reviewed_at: Optional[datetime] = None
    ) -> bool:
        """Move a request to ``new_status`` only if it is still ``expected_status``.

        Review fields are left untouched when not supplied. ``payout_amount``
        is always written so it can only be non-null on approved rows.

        Returns:
            True if the row was updated, False if its status had changed
        """
        cursor = conn.execute("""
            UPDATE srp_request
            SET status = ?,
                payout_amount = ?,
                updated_at = ?,
                reviewer_id = COALESCE(?, reviewer_id),
                reviewer_note = COALESCE(?, reviewer_note),
                reviewed_at = COALESCE(?, reviewed_at)
            WHERE id = ? AND status = ?
        """, (
            new_status.value,
            payout_amount,
            to_db_time(updated_at),
            reviewer_id,
            reviewer_note,
            to_db_time(reviewed_at) if reviewed_at else None,
            request_id,
            expected_status.value
        ))
        return cursor.rowcount == 1

    def touch(
        self,
        conn: sqlite3.Connection,
        request_id: str,
        expected_status: RequestStatus,
        updated_at: datetime
    ) -> bool:
        """Bump ``updated_at`` if the status still matches, without changing it."""
        cursor = conn.execute(
            "UPDATE srp_request SET updated_at = ? WHERE id = ? AND status = ?",
            (to_db_time(updated_at), request_id, expected_status.value)
        )
        return cursor.rowcount == 1

    def get_request(self, request_id: str) -> Optional[SrpRequest]:
        conn = get_connection(self.db_path, self.timeout)
        try:
            return self.select_request(conn, request_id)
        finally:
            conn.close()

    def list_requests(
        self,
        owner_id: Optional[str] = None,
        status: Optional[RequestStatus] = None,
        limit: int = 1000
    ) -> List[SrpRequest]:
        """List requests with optional filtering.

        Args:
            owner_id: Optional filter for one submitter
            status: Optional filter for one status
            limit: Maximum number of requests to return

        Returns:
            List of requests ordered by creation time (newest first)
        """
        conn = get_connection(self.db_path, self.timeout)
        try:
            query = f"SELECT {_REQUEST_COLUMNS} FROM srp_request"
            params = []
            conditions = []

            if owner_id:
                conditions.append("owner_id = ?")
                params.append(owner_id)
            if status is not None:
                conditions.append("status = ?")
                params.append(status.value)

            if conditions:
                query += " WHERE " + " AND ".join(conditions)

            query += " ORDER BY created_at DESC, id LIMIT ?"
            params.append(limit)

            cursor = conn.execute(query, params)
            return [_row_to_request(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def insert_fleet(self, fleet: FleetRecord) -> None:
        conn = get_connection(self.db_path, self.timeout)
        try:
            conn.execute("""
                INSERT INTO fleet (
                    id, operation_name, fc_name, created_by, status, created_at,
                    scheduled_at, description, location
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                fleet.id,
                fleet.operation_name,
                fleet.fc_name,
                fleet.created_by,
                fleet.status.value,
                to_db_time(fleet.created_at),
                to_db_time(fleet.scheduled_at),
                fleet.description,
                fleet.location
            ))
        finally:
            conn.close()

    def get_fleet(self, fleet_id: str) -> Optional[FleetRecord]:
        conn = get_connection(self.db_path, self.timeout)
        try:
            cursor = conn.execute("""
                SELECT id, operation_name, fc_name, created_by, status, created_at,
                       scheduled_at, description, location
                FROM fleet WHERE id = ?
            """, (fleet_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            return FleetRecord(
                id=row[0],
                operation_name=row[1],
                fc_name=row[2],
                created_by=row[3],
                status=FleetStatus(row[4]),
                created_at=from_db_time(row[5]),
                scheduled_at=from_db_time(row[6]),
                description=row[7],
                location=row[8]
            )
        finally:
            conn.close()
