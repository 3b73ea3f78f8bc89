"""
SRP request lifecycle.

State machine:

    pending ──> processing ──> approved ──(paid)
       │             │    └──> denied
       ├─────────────┼──> approved
       └─────────────┴──> denied

``paid`` is recorded only in the audit log; the row stays ``approved``.
``denied`` and paid ``approved`` requests accept no further transitions.

Every mutation is one transaction that reads the current status, updates the
row only if that status is unchanged (compare-and-set), and appends the
matching audit entry. Either both writes commit or neither does.

Retry policy: repeating a call whose effect is already recorded returns the
current request without writing anything. For reviews this only applies to
the same reviewer repeating the same decision, so two reviewers racing on one
request never both succeed.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import urlparse

from srp_tracker.storage.audit_log import AuditLog
from srp_tracker.storage.db import transaction
from srp_tracker.storage.models import AuditEntry, AuditKind, OperationType, RequestStatus, SrpRequest
from srp_tracker.storage.repository import RequestRepository

from .collaborators import Actor, CatalogLookup, FleetResolver
from .errors import InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from .payout import calculate_payout, parse_operation_type
from .tiers import TierTable

logger = logging.getLogger(__name__)

KILLMAIL_HOST = "zkillboard.com"


class ReviewDecision(str, Enum):
    APPROVE = "approve"
    DENY = "deny"


class LifecycleEvent(str, Enum):
    """Reviewer-initiated events that drive the state machine."""
    APPROVE = "approve"
    DENY = "deny"
    MARK_PROCESSING = "mark-processing"
    MARK_PAID = "mark-paid"


TRANSITIONS: Dict[Tuple[RequestStatus, LifecycleEvent], RequestStatus] = {
    (RequestStatus.PENDING, LifecycleEvent.APPROVE): RequestStatus.APPROVED,
    (RequestStatus.PENDING, LifecycleEvent.DENY): RequestStatus.DENIED,
    (RequestStatus.PENDING, LifecycleEvent.MARK_PROCESSING): RequestStatus.PROCESSING,
    (RequestStatus.PROCESSING, LifecycleEvent.APPROVE): RequestStatus.APPROVED,
    (RequestStatus.PROCESSING, LifecycleEvent.DENY): RequestStatus.DENIED,
    (RequestStatus.APPROVED, LifecycleEvent.MARK_PAID): RequestStatus.APPROVED,
}

EVENT_AUDIT_KIND = {
    LifecycleEvent.APPROVE: AuditKind.APPROVED,
    LifecycleEvent.DENY: AuditKind.DENIED,
    LifecycleEvent.MARK_PROCESSING: AuditKind.PROCESSING,
    LifecycleEvent.MARK_PAID: AuditKind.PAID,
}


def next_status(current: RequestStatus, event: LifecycleEvent) -> RequestStatus:
    """Status after ``event``, or InvalidTransitionError if it is not allowed."""
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransitionError(current.value, event.value)


@dataclass(frozen=True)
class SubmissionPayload:
    """What a member fills in to claim a loss."""
    asset_type_id: int
    claimed_value: int
    operation_type: Union[str, OperationType]
    is_special_role: bool = False
    loss_description: str = ""
    fleet_ref: Optional[str] = None
    killmail_url: Optional[str] = None


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _validate_killmail_url(url: str) -> None:
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if parsed.scheme not in ("http", "https") or not host:
        raise ValidationError(f"killmail_url must be an http(s) URL, got {url!r}")
    if host != KILLMAIL_HOST and not host.endswith("." + KILLMAIL_HOST):
        raise ValidationError(f"killmail_url must point to {KILLMAIL_HOST}")


def _validate_payout(payout: Optional[int]) -> int:
    if payout is None:
        raise ValidationError("approve requires a payout amount")
    if isinstance(payout, bool) or not isinstance(payout, int):
        raise ValidationError(f"payout must be a whole number, got {payout!r}")
    if payout < 0:
        raise ValidationError("payout cannot be negative")
    return payout


class RequestLifecycle:
    """Transactional operations over SRP requests and their audit log."""

    def __init__(
        self,
        repository: RequestRepository,
        audit_log: AuditLog,
        tier_table: TierTable,
        catalog: CatalogLookup,
        fleets: FleetResolver,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.repository = repository
        self.audit_log = audit_log
        self.tier_table = tier_table
        self.catalog = catalog
        self.fleets = fleets
        self.clock = clock

    def _transaction(self):
        return transaction(self.repository.db_path, self.repository.timeout)

    def submit(self, owner: Actor, payload: SubmissionPayload) -> SrpRequest:
        """Create a pending request and its ``created`` audit entry.

        The estimated payout is advisory; reviewers choose the real amount.

        Raises:
            ValidationError: If the payload is malformed
            NotFoundError: If the asset type or fleet reference does not resolve
        """
        claimed_value = payload.claimed_value
        if isinstance(claimed_value, bool) or not isinstance(claimed_value, int):
            raise ValidationError(f"claimed_value must be a whole number, got {claimed_value!r}")
        if claimed_value <= 0:
            raise ValidationError("claimed_value must be > 0")

        operation = parse_operation_type(payload.operation_type)
        fleet_ref = _clean_text(payload.fleet_ref)
        if operation == OperationType.FLEET and fleet_ref is None:
            raise ValidationError("fleet losses require a fleet reference")

        killmail_url = _clean_text(payload.killmail_url)
        if killmail_url is not None:
            _validate_killmail_url(killmail_url)

        asset = self.catalog.resolve(payload.asset_type_id)
        if asset is None:
            raise NotFoundError("asset type", payload.asset_type_id)

        fleet_name = None
        if fleet_ref is not None:
            fleet = self.fleets.resolve(fleet_ref)
            if fleet is None:
                raise NotFoundError("fleet", fleet_ref)
            fleet_name = fleet.display_name

        estimate = calculate_payout(
            asset.category,
            claimed_value,
            operation,
            payload.is_special_role,
            self.tier_table
        )

        now = self.clock()
        request = SrpRequest(
            id=str(uuid.uuid4()),
            owner_id=owner.user_id,
            asset_type_id=asset.type_id,
            asset_type_name=asset.name,
            category=asset.category,
            claimed_value=claimed_value,
            operation_type=operation,
            is_special_role=bool(payload.is_special_role),
            loss_description=(payload.loss_description or "").strip(),
            status=RequestStatus.PENDING,
            estimated_payout=estimate.final_amount,
            created_at=now,
            updated_at=now,
            fleet_ref=fleet_ref,
            fleet_name=fleet_name,
            killmail_url=killmail_url
        )

        with self._transaction() as conn:
            self.repository.insert_request(conn, request)
            self.audit_log.append(
                conn, request.id, AuditKind.CREATED, owner.display_name, owner.user_id, now
            )

        logger.info(
            "SRP request %s submitted by %s: %s claimed %d, estimated %d",
            request.id, owner.user_id, asset.name, claimed_value, estimate.final_amount
        )
        return request

    def review(
        self,
        request_id: str,
        reviewer: Actor,
        decision: Union[str, ReviewDecision],
        note: Optional[str] = None,
        payout: Optional[int] = None
    ) -> SrpRequest:
        """Approve or deny a pending or processing request.

        Raises:
            ValidationError: On an unknown decision, an approve without a valid
                payout, or a deny without a note
            PermissionDeniedError: If the reviewer is not an FC or admin
            NotFoundError: If the request does not exist
            InvalidTransitionError: If the request is already decided, or was
                decided by someone else while this call was in flight
        """
        try:
            decision = ReviewDecision(decision)
        except ValueError:
            raise ValidationError(f"decision must be 'approve' or 'deny', got {decision!r}")

        event = LifecycleEvent.APPROVE if decision == ReviewDecision.APPROVE else LifecycleEvent.DENY
        self._require_reviewer(reviewer, event)
        note = _clean_text(note)

        if event == LifecycleEvent.APPROVE:
            payout = _validate_payout(payout)
        else:
            if note is None:
                raise ValidationError("deny requires a note explaining the decision")
            payout = None

        kind = EVENT_AUDIT_KIND[event]
        with self._transaction() as conn:
            current = self._load(conn, request_id)

            target = RequestStatus.APPROVED if event == LifecycleEvent.APPROVE else RequestStatus.DENIED
            if (current.status == target
                    and current.reviewer_id == reviewer.user_id
                    and current.payout_amount == payout
                    and self.audit_log.has_entry(conn, request_id, kind)):
                logger.info("Repeated %s of %s by %s ignored", event.value, request_id, reviewer.user_id)
                return current

            new_status = next_status(current.status, event)
            now = self.clock()
            updated = self.repository.compare_and_set_status(
                conn,
                request_id,
                expected_status=current.status,
                new_status=new_status,
                updated_at=now,
                payout_amount=payout,
                reviewer_id=reviewer.user_id,
                reviewer_note=note,
                reviewed_at=now
            )
            if not updated:
                raise InvalidTransitionError(current.status.value, event.value, "status changed concurrently")
            self.audit_log.append(conn, request_id, kind, reviewer.display_name, reviewer.user_id, now, note)
            result = self.repository.select_request(conn, request_id)

        logger.info(
            "SRP request %s %s by %s (payout=%s)",
            request_id, new_status.value, reviewer.user_id, payout
        )
        return result

    def mark_processing(self, request_id: str, reviewer: Actor, note: Optional[str] = None) -> SrpRequest:
        """Flag a pending request as under review.

        This changes the persisted status, so status filters see it.
        """
        event = LifecycleEvent.MARK_PROCESSING
        self._require_reviewer(reviewer, event)
        note = _clean_text(note)

        with self._transaction() as conn:
            current = self._load(conn, request_id)
            if (current.status == RequestStatus.PROCESSING
                    and self.audit_log.has_entry(conn, request_id, AuditKind.PROCESSING)):
                return current

            new_status = next_status(current.status, event)
            now = self.clock()
            if not self.repository.compare_and_set_status(
                conn, request_id, current.status, new_status, updated_at=now
            ):
                raise InvalidTransitionError(current.status.value, event.value, "status changed concurrently")
            self.audit_log.append(
                conn, request_id, AuditKind.PROCESSING, reviewer.display_name, reviewer.user_id, now, note
            )
            result = self.repository.select_request(conn, request_id)

        logger.info("SRP request %s marked processing by %s", request_id, reviewer.user_id)
        return result

    def mark_paid(self, request_id: str, actor: Actor, note: Optional[str] = None) -> SrpRequest:
        """Record that an approved request's payout was sent.

        Marking an already paid request again is a no-op, so the payout is
        never counted twice.

        Raises:
            InvalidTransitionError: If the request is not approved
        """
        event = LifecycleEvent.MARK_PAID
        self._require_reviewer(actor, event)
        note = _clean_text(note)

        with self._transaction() as conn:
            current = self._load(conn, request_id)
            if (current.status == RequestStatus.APPROVED
                    and self.audit_log.has_entry(conn, request_id, AuditKind.PAID)):
                logger.info("Request %s already marked paid", request_id)
                return current

            next_status(current.status, event)
            if current.payout_amount is None:
                raise InvalidTransitionError(current.status.value, event.value, "no payout amount set")

            now = self.clock()
            if not self.repository.touch(conn, request_id, RequestStatus.APPROVED, now):
                raise InvalidTransitionError(current.status.value, event.value, "status changed concurrently")
            self.audit_log.append(conn, request_id, AuditKind.PAID, actor.display_name, actor.user_id, now, note)
            result = self.repository.select_request(conn, request_id)

        logger.info("SRP request %s marked paid (%d) by %s", request_id, result.payout_amount, actor.user_id)
        return result

    def get(self, request_id: str) -> SrpRequest:
        request = self.repository.get_request(request_id)
        if request is None:
            raise NotFoundError("SRP request", request_id)
        return request

    def history(self, request_id: str) -> List[AuditEntry]:
        return self.audit_log.entries_for(request_id)

    def detail(self, request_id: str) -> Tuple[SrpRequest, List[AuditEntry]]:
        """Read a request and its history from one snapshot.

        The row's status always agrees with the entries returned alongside it.
        """
        with transaction(self.repository.db_path, self.repository.timeout, write=False) as conn:
            request = self._load(conn, request_id)
            entries = self.audit_log.entries_for(request_id, conn=conn)
        return request, entries

    def list(
        self,
        owner_id: Optional[str] = None,
        status: Union[None, str, RequestStatus] = None
    ) -> List[SrpRequest]:
        """List requests, newest first. ``status`` of None or "all" means any."""
        if status is None or status == "all":
            status_filter = None
        else:
            try:
                status_filter = RequestStatus(status)
            except ValueError:
                valid = ["all"] + [s.value for s in RequestStatus]
                raise ValidationError(f"status must be one of: {valid}, got {status!r}")
        return self.repository.list_requests(owner_id=owner_id, status=status_filter)

    def _load(self, conn, request_id: str) -> SrpRequest:
        request = self.repository.select_request(conn, request_id)
        if request is None:
            raise NotFoundError("SRP request", request_id)
        return request

    @staticmethod
    def _require_reviewer(actor: Actor, event: LifecycleEvent) -> None:
        if not actor.is_reviewer:
            raise PermissionDeniedError(
                f"{actor.display_name} ({actor.role.value}) may not {event.value} SRP requests"
            )
