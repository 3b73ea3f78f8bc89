"""
Tests for the service boundary.

Tests that typed errors come back as structured results and that a broken
tier file degrades to uncapped payouts instead of refusing service.
"""

import os
from datetime import datetime

import pytest

from conftest import TIER_DATA, FakeClock, fleet_payload, solo_payload, write_yaml
from srp_tracker.config.loader import Settings
from srp_tracker.core.errors import ConfigError, InvalidTransitionError
from srp_tracker.core.tiers import TierTable
from srp_tracker.service.api import build_service, load_tiers_or_unbounded


@pytest.fixture
def settings(temp_dir):
    return Settings(
        db_path=os.path.join(temp_dir, "service.db"),
        tiers_path=write_yaml(temp_dir, TIER_DATA, "tiers.yaml"),
        catalog_path=write_yaml(temp_dir, {"asset_types": [
            {"id": 1, "name": "Rifter", "category": "Frigate", "base_value": 500},
            {"id": 2, "name": "Guardian", "category": "Logistics", "base_value": 5000},
        ]}, "catalog.yaml")
    )


@pytest.fixture
def service(settings):
    return build_service(settings, tier_table=_loaded(settings.tiers_path), clock=FakeClock())


def _loaded(path):
    table = TierTable()
    table.load(path)
    return table


class TestOperationResults:
    """Test success and failure results."""

    def test_submit_then_get(self, service, pilot):
        submitted = service.submit_request(pilot, solo_payload())
        assert submitted.ok
        assert submitted.error_code is None

        detail = service.get_request(submitted.value.id)
        assert detail.ok
        assert detail.value.request.status.value == "pending"
        assert [item.kind for item in detail.value.history] == ["created"]
        assert detail.value.history[0].actor == "Pilot One"
        assert not detail.value.is_paid

    def test_validation_failure_is_structured(self, service, pilot):
        result = service.submit_request(pilot, solo_payload(claimed_value=0))
        assert not result.ok
        assert result.error_code == "validation_error"
        assert "claimed_value" in result.message
        assert result.value is None

    def test_not_found_failure(self, service):
        result = service.get_request("missing")
        assert result.error_code == "not_found"

    def test_invalid_transition_message_names_state(self, service, pilot, fc):
        request = service.submit_request(pilot, solo_payload()).unwrap()
        service.review_request(request.id, fc, "deny", note="no").unwrap()

        result = service.review_request(request.id, fc, "approve", payout=150)

        assert result.error_code == "invalid_transition"
        assert result.message.startswith("cannot transition from denied")
        with pytest.raises(InvalidTransitionError):
            result.unwrap()

    def test_permission_failure(self, service, pilot):
        request = service.submit_request(pilot, solo_payload()).unwrap()
        result = service.mark_processing(request.id, pilot)
        assert result.error_code == "permission_denied"

    def test_full_flow_and_stats(self, service, pilot, fc):
        request = service.submit_request(pilot, solo_payload()).unwrap()
        service.mark_processing(request.id, fc).unwrap()
        service.review_request(request.id, fc, "approve", payout=90).unwrap()
        paid = service.mark_paid(request.id, fc)

        assert paid.ok
        assert service.get_request(request.id).value.is_paid
        stats = service.get_stats(now=datetime(2024, 6, 1, 12)).unwrap()
        assert stats.total_paid_out == 90
        assert stats.approved_today == 1
        assert stats.pending_count == 0

    def test_list_requests(self, service, pilot):
        service.submit_request(pilot, solo_payload()).unwrap()
        assert len(service.list_requests(owner_id="pilot-1").unwrap()) == 1
        assert service.list_requests(status="bogus").error_code == "validation_error"


class TestEstimate:
    """Test payout estimates through the service."""

    def test_estimate(self, service):
        result = service.estimate_payout(1, 300, "solo")
        assert result.value.final_amount == 100
        assert result.value.breakdown.tier_applied == "Small"

    def test_estimate_unknown_asset(self, service):
        assert service.estimate_payout(42, 300, "solo").error_code == "not_found"

    def test_estimate_bad_operation(self, service):
        assert service.estimate_payout(1, 300, "roam").error_code == "validation_error"


class TestFleets:
    """Test fleet registration and linking."""

    def test_registered_fleet_can_be_referenced(self, service, pilot, fc):
        fleet = service.register_fleet(fc, "Sunday Roam").unwrap()

        request = service.submit_request(pilot, fleet_payload(fleet_ref=fleet.id)).unwrap()

        assert request.fleet_name == "Sunday Roam (FC One)"

    def test_fleet_keeps_schedule_and_briefing(self, service, fc):
        fleet = service.register_fleet(
            fc, "Sunday Roam",
            scheduled_at=datetime(2024, 6, 2, 19, 30),
            description="  Low-sec roam  ",
            location="Amamake"
        ).unwrap()

        stored = service.lifecycle.repository.get_fleet(fleet.id)
        assert stored.scheduled_at == datetime(2024, 6, 2, 19, 30)
        assert stored.description == "Low-sec roam"
        assert stored.location == "Amamake"

    def test_fleet_schedule_defaults_to_now(self, service, fc):
        fleet = service.register_fleet(fc, "Quick Roam").unwrap()
        assert fleet.scheduled_at == fleet.created_at == datetime(2024, 6, 1, 9, 0)
        assert fleet.description is None

    def test_member_cannot_register_fleet(self, service, pilot):
        assert service.register_fleet(pilot, "Roam").error_code == "permission_denied"

    def test_fleet_name_required(self, service, fc):
        assert service.register_fleet(fc, "  ").error_code == "validation_error"


class TestDegradedTiers:
    """Test startup with a missing or broken tier file."""

    def test_missing_tier_file_still_accepts_submissions(self, settings, temp_dir, pilot, caplog):
        table = TierTable()
        assert not load_tiers_or_unbounded(table, os.path.join(temp_dir, "gone.yaml"))
        assert "payouts are uncapped" in caplog.text

        service = build_service(settings, tier_table=table)
        request = service.submit_request(pilot, solo_payload(claimed_value=300)).unwrap()

        assert request.estimated_payout == 150

    def test_missing_catalog_is_config_error(self, settings, temp_dir):
        broken = Settings(
            db_path=settings.db_path,
            tiers_path=settings.tiers_path,
            catalog_path=os.path.join(temp_dir, "no-catalog.yaml")
        )
        with pytest.raises(ConfigError, match="Catalog file not found"):
            build_service(broken, tier_table=TierTable())
