"""
Shared fixtures for SRP Tracker tests.
"""

import os
import tempfile
from datetime import datetime, timedelta

import pytest
import yaml

from srp_tracker.config.loader import AssetTypeEntry
from srp_tracker.core.collaborators import Actor, FleetInfo, Role, StaticCatalog
from srp_tracker.core.lifecycle import RequestLifecycle, SubmissionPayload
from srp_tracker.core.stats import StatsAggregator
from srp_tracker.core.tiers import TierTable
from srp_tracker.storage.audit_log import AuditLog
from srp_tracker.storage.repository import RequestRepository, initialize_schema

TIER_DATA = {
    "version": "test-1",
    "description": "Test caps",
    "tiers": [
        {"name": "Small", "max_payout": 100, "categories": ["Frigate"]},
        {"name": "Medium", "max_payout": 1000, "categories": ["Cruiser", "Logistics"]},
    ],
}


class FakeClock:
    """Controllable replacement for datetime.now."""

    def __init__(self, start: datetime = datetime(2024, 6, 1, 9, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class DictFleets:
    def __init__(self, fleets=None):
        self.fleets = dict(fleets or {})

    def resolve(self, fleet_ref):
        name = self.fleets.get(fleet_ref)
        return FleetInfo(fleet_id=fleet_ref, display_name=name) if name else None


def write_yaml(directory: str, data, filename: str) -> str:
    path = os.path.join(directory, filename)
    with open(path, 'w', encoding='utf-8') as f:
        yaml.dump(data, f)
    return path


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as directory:
        yield directory


@pytest.fixture
def db_path(temp_dir):
    path = os.path.join(temp_dir, "test.db")
    initialize_schema(path)
    return path


@pytest.fixture
def tier_table(temp_dir):
    table = TierTable()
    table.load(write_yaml(temp_dir, TIER_DATA, "tiers.yaml"))
    return table


@pytest.fixture
def catalog():
    return StaticCatalog({
        1: AssetTypeEntry(type_id=1, name="Rifter", category="Frigate", base_value=500),
        2: AssetTypeEntry(type_id=2, name="Guardian", category="Logistics", base_value=5000),
        3: AssetTypeEntry(type_id=3, name="Rorqual", category="Capital", base_value=90000),
    })


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def lifecycle(db_path, tier_table, catalog, clock):
    return RequestLifecycle(
        repository=RequestRepository(db_path),
        audit_log=AuditLog(db_path),
        tier_table=tier_table,
        catalog=catalog,
        fleets=DictFleets({"fleet-1": "Sunday Roam"}),
        clock=clock
    )


@pytest.fixture
def stats(db_path):
    return StatsAggregator(db_path)


@pytest.fixture
def pilot():
    return Actor(user_id="pilot-1", display_name="Pilot One")


@pytest.fixture
def fc():
    return Actor(user_id="fc-1", display_name="FC One", role=Role.FC)


@pytest.fixture
def admin():
    return Actor(user_id="admin-1", display_name="Admin One", role=Role.ADMIN)


def solo_payload(asset_type_id=1, claimed_value=300, **kwargs) -> SubmissionPayload:
    return SubmissionPayload(
        asset_type_id=asset_type_id,
        claimed_value=claimed_value,
        operation_type="solo",
        **kwargs
    )


def fleet_payload(asset_type_id=2, claimed_value=800, fleet_ref="fleet-1", **kwargs) -> SubmissionPayload:
    return SubmissionPayload(
        asset_type_id=asset_type_id,
        claimed_value=claimed_value,
        operation_type="fleet",
        fleet_ref=fleet_ref,
        **kwargs
    )
