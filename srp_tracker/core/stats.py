"""
Dashboard statistics.

Read-only aggregates over the request rows and the audit log. Each call
reads inside a single transaction so the numbers it combines come from one
consistent snapshot.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from srp_tracker.storage.db import DEFAULT_DB_PATH, DEFAULT_TIMEOUT, from_db_time, to_db_time, transaction


@dataclass(frozen=True)
class DashboardStats:
    pending_count: int
    approved_today: int
    total_paid_out: int
    average_processing_hours: float


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _owner_clause(owner_id: Optional[str], column: str = "r.owner_id"):
    if owner_id:
        return f" AND {column} = ?", [owner_id]
    return "", []


class StatsAggregator:
    """Computes dashboard numbers, optionally scoped to one submitter.

    Paid-out totals and processing times come from the audit log, not from
    the status column: an approved request only counts as paid once a
    ``paid`` entry exists.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, timeout: float = DEFAULT_TIMEOUT):
        self.db_path = db_path
        self.timeout = timeout

    def _read(self):
        return transaction(self.db_path, self.timeout, write=False)

    def pending_count(self, owner_id: Optional[str] = None) -> int:
        with self._read() as conn:
            return self._pending_count(conn, owner_id)

    def approved_today(self, now: datetime, owner_id: Optional[str] = None) -> int:
        """Approvals recorded between midnight of ``now``'s day and ``now``."""
        with self._read() as conn:
            return self._approved_today(conn, now, owner_id)

    def total_paid_out(self, owner_id: Optional[str] = None) -> int:
        with self._read() as conn:
            return self._total_paid_out(conn, owner_id)

    def average_processing_hours(self, owner_id: Optional[str] = None) -> float:
        """Mean hours from ``created`` to the first decision entry.

        Requests without a decision are left out. Returns 0.0 when no
        request has been decided yet.
        """
        with self._read() as conn:
            return self._average_processing_hours(conn, owner_id)

    def snapshot(self, now: datetime, owner_id: Optional[str] = None) -> DashboardStats:
        with self._read() as conn:
            return DashboardStats(
                pending_count=self._pending_count(conn, owner_id),
                approved_today=self._approved_today(conn, now, owner_id),
                total_paid_out=self._total_paid_out(conn, owner_id),
                average_processing_hours=self._average_processing_hours(conn, owner_id)
            )

    def _pending_count(self, conn, owner_id: Optional[str]) -> int:
        clause, params = _owner_clause(owner_id)
        cursor = conn.execute(
            "SELECT COUNT(*) FROM srp_request r WHERE r.status = 'pending'" + clause,
            params
        )
        return cursor.fetchone()[0] or 0

    def _approved_today(self, conn, now: datetime, owner_id: Optional[str]) -> int:
        clause, params = _owner_clause(owner_id)
        cursor = conn.execute("""
            SELECT COUNT(*)
            FROM srp_audit_entry a
            JOIN srp_request r ON r.id = a.request_id
            WHERE a.kind = 'approved' AND a.timestamp >= ? AND a.timestamp <= ?
        """ + clause, [to_db_time(start_of_day(now)), to_db_time(now)] + params)
        return cursor.fetchone()[0] or 0

    def _total_paid_out(self, conn, owner_id: Optional[str]) -> int:
        clause, params = _owner_clause(owner_id)
        cursor = conn.execute("""
            SELECT COALESCE(SUM(r.payout_amount), 0)
            FROM srp_request r
            WHERE EXISTS (
                SELECT 1 FROM srp_audit_entry a
                WHERE a.request_id = r.id AND a.kind = 'paid'
            )
        """ + clause, params)
        return int(cursor.fetchone()[0] or 0)

    def _average_processing_hours(self, conn, owner_id: Optional[str]) -> float:
        clause, params = _owner_clause(owner_id)
        cursor = conn.execute("""
            SELECT a.request_id, a.kind, MIN(a.timestamp)
            FROM srp_audit_entry a
            JOIN srp_request r ON r.id = a.request_id
            WHERE a.kind IN ('created', 'approved', 'denied')
        """ + clause + " GROUP BY a.request_id, a.kind", params)

        created: Dict[str, datetime] = {}
        decided: Dict[str, datetime] = {}
        for request_id, kind, timestamp in cursor.fetchall():
            at = from_db_time(timestamp)
            if kind == 'created':
                created[request_id] = at
            elif request_id not in decided or at < decided[request_id]:
                decided[request_id] = at

        durations = [
            (decided_at - created[request_id]).total_seconds() / 3600
            for request_id, decided_at in decided.items()
            if request_id in created
        ]
        if not durations:
            return 0.0
        return sum(durations) / len(durations)
