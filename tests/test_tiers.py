"""
Unit tests for the tier table.

Tests loading, lookups, wholesale reloads and failure handling.
"""

import os
import threading

import pytest

from conftest import TIER_DATA, write_yaml
from srp_tracker.core.errors import ConfigError
from srp_tracker.core.tiers import TierTable, get_tier_table


class TestTierLookup:
    """Test category lookups on a loaded table."""

    def test_loaded_table_reports_caps_and_names(self, tier_table):
        assert tier_table.is_loaded()
        assert tier_table.version() == "test-1"
        assert tier_table.max_payout("Frigate") == 100
        assert tier_table.tier_name("Logistics") == "Medium"

    def test_unknown_category_is_not_an_error(self, tier_table):
        """Missing categories return None rather than raising."""
        assert tier_table.max_payout("Titan") is None
        assert tier_table.tier_name("Titan") is None

    def test_all_tiers_in_file_order(self, tier_table):
        assert [t.name for t in tier_table.all_tiers()] == ["Small", "Medium"]

    def test_empty_table(self):
        table = TierTable()
        assert not table.is_loaded()
        assert table.max_payout("Frigate") is None
        assert table.version() is None
        assert table.all_tiers() == []

    def test_duplicate_category_last_tier_wins(self, temp_dir, caplog):
        """A category listed in two tiers maps to the later one."""
        path = write_yaml(temp_dir, {
            "version": "dup",
            "tiers": [
                {"name": "First", "max_payout": 10, "categories": ["Frigate"]},
                {"name": "Second", "max_payout": 20, "categories": ["Frigate"]},
            ],
        }, "dup.yaml")
        table = TierTable()
        table.load(path)

        assert table.tier_name("Frigate") == "Second"
        assert table.max_payout("Frigate") == 20
        assert "listed in tiers" in caplog.text


class TestTierLoading:
    """Test load and reload lifecycle."""

    def test_missing_file_raises_config_error(self, temp_dir):
        table = TierTable()
        with pytest.raises(ConfigError, match="not found"):
            table.load(os.path.join(temp_dir, "missing.yaml"))
        assert not table.is_loaded()

    def test_malformed_file_raises_config_error(self, temp_dir):
        path = os.path.join(temp_dir, "bad.yaml")
        with open(path, 'w', encoding='utf-8') as f:
            f.write("tiers: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            TierTable().load(path)

    def test_failed_reload_keeps_previous_mapping(self, temp_dir, tier_table):
        """A broken file does not wipe a good table."""
        path = os.path.join(temp_dir, "broken.yaml")
        with open(path, 'w', encoding='utf-8') as f:
            f.write("version: 2\n")
        with pytest.raises(ConfigError):
            tier_table.load(path)
        assert tier_table.max_payout("Frigate") == 100

    def test_reload_replaces_mapping_wholesale(self, temp_dir):
        """Categories missing from the new file disappear, nothing is merged."""
        path = write_yaml(temp_dir, TIER_DATA, "tiers.yaml")
        table = TierTable()
        table.load(path)

        write_yaml(temp_dir, {
            "version": "test-2",
            "tiers": [{"name": "Only", "max_payout": 5, "categories": ["Cruiser"]}],
        }, "tiers.yaml")
        table.reload()

        assert table.version() == "test-2"
        assert table.max_payout("Cruiser") == 5
        assert table.max_payout("Frigate") is None

    def test_reload_before_load_fails(self):
        with pytest.raises(ConfigError, match="never been loaded"):
            TierTable().reload()

    def test_load_is_idempotent(self, temp_dir):
        path = write_yaml(temp_dir, TIER_DATA, "tiers.yaml")
        table = TierTable()
        table.load(path)
        table.load(path)
        assert table.max_payout("Frigate") == 100
        assert len(table.all_tiers()) == 2

    def test_readers_during_reload_see_a_complete_version(self, temp_dir):
        """Concurrent readers see either the old or the new cap, never None."""
        first = write_yaml(temp_dir, TIER_DATA, "a.yaml")
        second = write_yaml(temp_dir, {
            "version": "b",
            "tiers": [{"name": "Small", "max_payout": 200, "categories": ["Frigate"]}],
        }, "b.yaml")
        table = TierTable()
        table.load(first)

        seen = set()
        stop = threading.Event()

        def reader():
            while not stop.is_set():
                seen.add(table.max_payout("Frigate"))

        thread = threading.Thread(target=reader)
        thread.start()
        for _ in range(20):
            table.load(second)
            table.load(first)
        stop.set()
        thread.join()

        assert seen <= {100, 200}


class TestGlobalTable:
    """Test the process-wide instance."""

    def test_get_tier_table_returns_same_instance(self):
        assert get_tier_table() is get_tier_table()
