"""
Data models for storage layer.

Defines database entities and the enumerations stored in them.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class RequestStatus(str, Enum):
    """Persisted status of an SRP request."""
    PENDING = "pending"
    PROCESSING = "processing"
    APPROVED = "approved"
    DENIED = "denied"


class AuditKind(str, Enum):
    """Kinds of lifecycle events recorded in the audit log."""
    CREATED = "created"
    PROCESSING = "processing"
    APPROVED = "approved"
    DENIED = "denied"
    PAID = "paid"


class OperationType(str, Enum):
    """Context in which the asset was lost."""
    SOLO = "solo"
    FLEET = "fleet"


class FleetStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SrpRequest:
    """Current state of one reimbursement request.

    Rows are only ever changed through lifecycle transitions and are never
    deleted. ``created_at`` mirrors the ``created`` audit entry and is kept
    for listing order only; history questions go to the audit log.
    """
    id: str
    owner_id: str
    asset_type_id: int
    asset_type_name: str
    category: str
    claimed_value: int
    operation_type: OperationType
    is_special_role: bool
    loss_description: str
    status: RequestStatus
    estimated_payout: int
    created_at: datetime
    updated_at: datetime
    payout_amount: Optional[int] = None
    fleet_ref: Optional[str] = None
    fleet_name: Optional[str] = None
    killmail_url: Optional[str] = None
    reviewer_id: Optional[str] = None
    reviewer_note: Optional[str] = None
    reviewed_at: Optional[datetime] = None


@dataclass(frozen=True)
class AuditEntry:
    """Immutable fact in a request's history.

    ``sequence`` is the insertion order and breaks timestamp ties.
    """
    sequence: int
    request_id: str
    kind: AuditKind
    actor: str
    actor_id: str
    timestamp: datetime
    note: Optional[str] = None


@dataclass(frozen=True)
class FleetRecord:
    """Operation registered by a fleet commander."""
    id: str
    operation_name: str
    fc_name: str
    created_by: str
    status: FleetStatus
    created_at: datetime
    scheduled_at: datetime
    description: Optional[str] = None
    location: Optional[str] = None
