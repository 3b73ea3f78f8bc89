"""
Service boundary for SRP operations.

Every method returns an OperationResult. Typed SRP errors are caught here
and reported as failures with their code; storage errors still propagate
after their transaction has rolled back.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Generic, List, Optional, TypeVar, Union

from srp_tracker.config.loader import Settings
from srp_tracker.core.collaborators import (
    Actor,
    CatalogLookup,
    FleetResolver,
    RepositoryFleetResolver,
    StaticCatalog,
)
from srp_tracker.core.errors import ConfigError, NotFoundError, PermissionDeniedError, SrpError, ValidationError
from srp_tracker.core.lifecycle import RequestLifecycle, ReviewDecision, SubmissionPayload
from srp_tracker.core.payout import PayoutEstimate, calculate_payout
from srp_tracker.core.stats import DashboardStats, StatsAggregator
from srp_tracker.core.tiers import TierTable, get_tier_table
from srp_tracker.storage.audit_log import AuditLog
from srp_tracker.storage.models import AuditEntry, FleetRecord, FleetStatus, OperationType, SrpRequest
from srp_tracker.storage.repository import RequestRepository, initialize_schema

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Either a value or the typed error that prevented it."""
    value: Optional[T] = None
    error: Optional[SrpError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error else None

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None

    def unwrap(self) -> T:
        """Return the value or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.value


@dataclass(frozen=True)
class HistoryItem:
    kind: str
    actor: str
    note: Optional[str]
    timestamp: datetime


@dataclass(frozen=True)
class RequestDetail:
    request: SrpRequest
    history: List[HistoryItem] = field(default_factory=list)

    @property
    def is_paid(self) -> bool:
        return any(item.kind == "paid" for item in self.history)


def _history_item(entry: AuditEntry) -> HistoryItem:
    return HistoryItem(
        kind=entry.kind.value,
        actor=entry.actor,
        note=entry.note,
        timestamp=entry.timestamp
    )


class SrpService:
    """Operations exposed to front ends (CLI, web handlers, bots)."""

    def __init__(
        self,
        lifecycle: RequestLifecycle,
        stats: StatsAggregator,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.lifecycle = lifecycle
        self.stats = stats
        self.clock = clock

    def _run(self, operation: str, action: Callable[[], T]) -> OperationResult[T]:
        try:
            return OperationResult(value=action())
        except SrpError as e:
            logger.warning("%s rejected: [%s] %s", operation, e.code, e.message)
            return OperationResult(error=e)

    def estimate_payout(
        self,
        asset_type_id: int,
        claimed_value: int,
        operation_type: Union[str, OperationType],
        is_special_role: bool = False
    ) -> OperationResult[PayoutEstimate]:
        def action() -> PayoutEstimate:
            asset = self.lifecycle.catalog.resolve(asset_type_id)
            if asset is None:
                raise NotFoundError("asset type", asset_type_id)
            return calculate_payout(
                asset.category, claimed_value, operation_type, is_special_role, self.lifecycle.tier_table
            )
        return self._run("estimate_payout", action)

    def submit_request(self, owner: Actor, payload: SubmissionPayload) -> OperationResult[SrpRequest]:
        return self._run("submit_request", lambda: self.lifecycle.submit(owner, payload))

    def list_requests(
        self,
        owner_id: Optional[str] = None,
        status: Optional[str] = None
    ) -> OperationResult[List[SrpRequest]]:
        return self._run("list_requests", lambda: self.lifecycle.list(owner_id, status))

    def get_request(self, request_id: str) -> OperationResult[RequestDetail]:
        def action() -> RequestDetail:
            request, entries = self.lifecycle.detail(request_id)
            return RequestDetail(request=request, history=[_history_item(e) for e in entries])
        return self._run("get_request", action)

    def review_request(
        self,
        request_id: str,
        reviewer: Actor,
        decision: Union[str, ReviewDecision],
        note: Optional[str] = None,
        payout: Optional[int] = None
    ) -> OperationResult[SrpRequest]:
        return self._run(
            "review_request",
            lambda: self.lifecycle.review(request_id, reviewer, decision, note, payout)
        )

    def mark_processing(
        self,
        request_id: str,
        reviewer: Actor,
        note: Optional[str] = None
    ) -> OperationResult[SrpRequest]:
        return self._run("mark_processing", lambda: self.lifecycle.mark_processing(request_id, reviewer, note))

    def mark_paid(self, request_id: str, actor: Actor, note: Optional[str] = None) -> OperationResult[SrpRequest]:
        return self._run("mark_paid", lambda: self.lifecycle.mark_paid(request_id, actor, note))

    def get_stats(
        self,
        owner_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> OperationResult[DashboardStats]:
        return self._run("get_stats", lambda: self.stats.snapshot(now or self.clock(), owner_id))

    def register_fleet(
        self,
        actor: Actor,
        operation_name: str,
        scheduled_at: Optional[datetime] = None,
        description: Optional[str] = None,
        location: Optional[str] = None
    ) -> OperationResult[FleetRecord]:
        """Register an operation that fleet losses can be filed against.

        ``scheduled_at`` defaults to the registration time.
        """
        def action() -> FleetRecord:
            if not actor.is_reviewer:
                raise PermissionDeniedError("only FCs and admins can register fleets")
            name = (operation_name or "").strip()
            if not name:
                raise ValidationError("operation name is required")
            if len(name) > 100:
                raise ValidationError("operation name must be at most 100 characters")
            now = self.clock()
            fleet = FleetRecord(
                id=str(uuid.uuid4()),
                operation_name=name,
                fc_name=actor.display_name,
                created_by=actor.user_id,
                status=FleetStatus.ACTIVE,
                created_at=now,
                scheduled_at=scheduled_at or now,
                description=(description or "").strip() or None,
                location=(location or "").strip() or None
            )
            self.lifecycle.repository.insert_fleet(fleet)
            logger.info("Fleet %s registered by %s", fleet.id, actor.user_id)
            return fleet
        return self._run("register_fleet", action)


def load_tiers_or_unbounded(tier_table: TierTable, path: str) -> bool:
    """Load tiers at startup; on failure keep serving with no caps.

    Capping only protects against overpaying, so a broken tier file is
    logged loudly but does not stop submissions.
    """
    try:
        tier_table.load(path)
        return True
    except ConfigError as e:
        logger.error("SRP tier caps unavailable, payouts are uncapped: %s", e.message)
        return False


def build_service(
    settings: Settings,
    catalog: Optional[CatalogLookup] = None,
    fleets: Optional[FleetResolver] = None,
    tier_table: Optional[TierTable] = None,
    clock: Callable[[], datetime] = datetime.now
) -> SrpService:
    """Wire the default SQLite-backed service from settings.

    Raises:
        ConfigError: If no catalog is given and the catalog file cannot be loaded
    """
    initialize_schema(settings.db_path)
    repository = RequestRepository(settings.db_path, settings.db_timeout)
    audit_log = AuditLog(settings.db_path, settings.db_timeout)

    if tier_table is None:
        tier_table = get_tier_table()
        if not tier_table.is_loaded():
            load_tiers_or_unbounded(tier_table, settings.tiers_path)

    lifecycle = RequestLifecycle(
        repository=repository,
        audit_log=audit_log,
        tier_table=tier_table,
        catalog=catalog if catalog is not None else StaticCatalog.from_file(settings.catalog_path),
        fleets=fleets if fleets is not None else RepositoryFleetResolver(repository),
        clock=clock
    )
    stats = StatsAggregator(settings.db_path, settings.db_timeout)
    return SrpService(lifecycle, stats, clock)
