"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for tier, catalog and settings.
"""

import os
from decimal import Decimal

import pytest

from conftest import TIER_DATA, write_yaml
from srp_tracker.config.loader import (
    DEFAULT_POLICY,
    Settings,
    load_catalog,
    load_settings,
    load_tier_config,
)
from srp_tracker.core.errors import ConfigError


class TestTierConfigLoading:
    """Test tier file loading and validation."""

    def test_valid_config_loads_correctly(self, temp_dir):
        config = load_tier_config(write_yaml(temp_dir, TIER_DATA, "tiers.yaml"))

        assert config.version == "test-1"
        assert config.description == "Test caps"
        assert len(config.tiers) == 2
        assert config.tiers[1].name == "Medium"
        assert config.tiers[1].max_payout == 1000
        assert config.tiers[1].categories == ("Cruiser", "Logistics")
        assert config.policy == DEFAULT_POLICY

    def test_policy_section_parsed_as_decimal(self, temp_dir):
        data = dict(TIER_DATA, policy={"solo_multiplier": 0.4, "special_role_multiplier": 1.5})
        config = load_tier_config(write_yaml(temp_dir, data, "tiers.yaml"))

        assert config.policy.solo_multiplier == Decimal("0.4")
        assert config.policy.special_role_multiplier == Decimal("1.5")

    def test_partial_policy_keeps_defaults(self, temp_dir):
        data = dict(TIER_DATA, policy={"solo_multiplier": 0.75})
        config = load_tier_config(write_yaml(temp_dir, data, "tiers.yaml"))

        assert config.policy.solo_multiplier == Decimal("0.75")
        assert config.policy.special_role_multiplier == Decimal("1.2")

    def test_missing_file(self, temp_dir):
        with pytest.raises(ConfigError, match="Tier file not found"):
            load_tier_config(os.path.join(temp_dir, "nope.yaml"))

    def test_empty_file(self, temp_dir):
        path = os.path.join(temp_dir, "empty.yaml")
        open(path, 'w').close()
        with pytest.raises(ConfigError, match="empty"):
            load_tier_config(path)

    def test_unknown_top_level_key(self, temp_dir):
        data = dict(TIER_DATA, currency="ISK")
        with pytest.raises(ConfigError, match="Unknown keys in tier file"):
            load_tier_config(write_yaml(temp_dir, data, "tiers.yaml"))

    def test_missing_tiers_section(self, temp_dir):
        with pytest.raises(ConfigError, match="'tiers'"):
            load_tier_config(write_yaml(temp_dir, {"version": "1"}, "tiers.yaml"))

    def test_missing_version(self, temp_dir):
        with pytest.raises(ConfigError, match="'version'"):
            load_tier_config(write_yaml(temp_dir, {"tiers": []}, "tiers.yaml"))

    def test_negative_cap_rejected(self, temp_dir):
        data = {"version": "1", "tiers": [{"name": "X", "max_payout": -5, "categories": ["A"]}]}
        with pytest.raises(ConfigError, match="non-negative"):
            load_tier_config(write_yaml(temp_dir, data, "tiers.yaml"))

    def test_categories_must_be_strings(self, temp_dir):
        data = {"version": "1", "tiers": [{"name": "X", "max_payout": 5, "categories": [1, 2]}]}
        with pytest.raises(ConfigError, match="list of strings"):
            load_tier_config(write_yaml(temp_dir, data, "tiers.yaml"))

    def test_unknown_tier_key(self, temp_dir):
        data = {"version": "1", "tiers": [
            {"name": "X", "max_payout": 5, "categories": ["A"], "color": "red"}
        ]}
        with pytest.raises(ConfigError, match=r"Unknown keys in tiers\[0\]"):
            load_tier_config(write_yaml(temp_dir, data, "tiers.yaml"))

    def test_zero_multiplier_rejected(self, temp_dir):
        data = dict(TIER_DATA, policy={"solo_multiplier": 0})
        with pytest.raises(ConfigError, match="solo_multiplier must be > 0"):
            load_tier_config(write_yaml(temp_dir, data, "tiers.yaml"))

    def test_top_level_list_rejected(self, temp_dir):
        with pytest.raises(ConfigError, match="mapping"):
            load_tier_config(write_yaml(temp_dir, ["a", "b"], "tiers.yaml"))


class TestCatalogLoading:
    """Test asset catalog loading."""

    def test_valid_catalog(self, temp_dir):
        path = write_yaml(temp_dir, {"asset_types": [
            {"id": 587, "name": "Rifter", "category": "Frigate", "base_value": 500000},
            {"id": 24690, "name": "Drake", "category": "Battlecruiser"},
        ]}, "catalog.yaml")
        catalog = load_catalog(path)

        assert set(catalog) == {587, 24690}
        assert catalog[587].category == "Frigate"
        assert catalog[24690].base_value == 0

    def test_duplicate_id_rejected(self, temp_dir):
        path = write_yaml(temp_dir, {"asset_types": [
            {"id": 1, "name": "A", "category": "Frigate"},
            {"id": 1, "name": "B", "category": "Frigate"},
        ]}, "catalog.yaml")
        with pytest.raises(ConfigError, match="Duplicate asset type id 1"):
            load_catalog(path)

    def test_missing_category_rejected(self, temp_dir):
        path = write_yaml(temp_dir, {"asset_types": [{"id": 1, "name": "A"}]}, "catalog.yaml")
        with pytest.raises(ConfigError, match="'category'"):
            load_catalog(path)

    def test_missing_file(self, temp_dir):
        with pytest.raises(ConfigError, match="Catalog file not found"):
            load_catalog(os.path.join(temp_dir, "missing.yaml"))


class TestSettings:
    """Test environment settings."""

    def test_defaults(self):
        settings = load_settings({})
        assert settings == Settings()
        assert settings.db_path == "srp_tracker.db"
        assert settings.db_timeout == 5.0

    def test_environment_overrides(self):
        settings = load_settings({
            "SRP_DB_PATH": "/tmp/x.db",
            "SRP_TIERS_PATH": "/etc/srp/tiers.yaml",
            "SRP_CATALOG_PATH": "/etc/srp/catalog.yaml",
            "SRP_DB_TIMEOUT": "2.5",
            "SRP_LOG_LEVEL": "info",
        })
        assert settings.db_path == "/tmp/x.db"
        assert settings.tiers_path == "/etc/srp/tiers.yaml"
        assert settings.catalog_path == "/etc/srp/catalog.yaml"
        assert settings.db_timeout == 2.5
        assert settings.log_level == "info"

    def test_bad_timeout(self):
        with pytest.raises(ConfigError, match="must be a number"):
            load_settings({"SRP_DB_TIMEOUT": "soon"})

    def test_non_positive_timeout(self):
        with pytest.raises(ConfigError, match="must be > 0"):
            load_settings({"SRP_DB_TIMEOUT": "0"})

    def test_unknown_log_level(self):
        with pytest.raises(ConfigError, match="Unknown log level"):
            load_settings({"SRP_LOG_LEVEL": "chatty"})
