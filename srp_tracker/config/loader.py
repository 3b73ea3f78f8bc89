"""
Configuration management and loading.

Handles application settings, environment variables, the payout tier file
and the asset catalog file.
"""

import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from srp_tracker.core.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    """Runtime settings read from the environment."""
    db_path: str = "srp_tracker.db"
    tiers_path: str = "tiers.yaml"
    catalog_path: str = "catalog.yaml"
    db_timeout: float = 5.0
    log_level: str = "WARNING"

    def __post_init__(self):
        """Validate settings values."""
        if self.db_timeout <= 0:
            raise ConfigError("SRP_DB_TIMEOUT must be > 0")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"Unknown log level: {self.log_level}")


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from environment variables, falling back to defaults."""
    env = os.environ if env is None else env
    defaults = Settings()
    raw_timeout = env.get("SRP_DB_TIMEOUT")
    try:
        timeout = float(raw_timeout) if raw_timeout is not None else defaults.db_timeout
    except ValueError:
        raise ConfigError(f"SRP_DB_TIMEOUT must be a number, got {raw_timeout!r}")
    return Settings(
        db_path=env.get("SRP_DB_PATH", defaults.db_path),
        tiers_path=env.get("SRP_TIERS_PATH", defaults.tiers_path),
        catalog_path=env.get("SRP_CATALOG_PATH", defaults.catalog_path),
        db_timeout=timeout,
        log_level=env.get("SRP_LOG_LEVEL", defaults.log_level)
    )


@dataclass(frozen=True)
class TierDefinition:
    """A payout cap shared by a group of asset categories."""
    name: str
    max_payout: int
    categories: Tuple[str, ...]

    def __post_init__(self):
        if self.max_payout < 0:
            raise ConfigError(f"max_payout for tier '{self.name}' cannot be negative")


@dataclass(frozen=True)
class PayoutPolicy:
    """Multipliers applied by the payout calculator."""
    solo_multiplier: Decimal = Decimal("0.5")
    special_role_multiplier: Decimal = Decimal("1.2")

    def __post_init__(self):
        if self.solo_multiplier <= 0:
            raise ConfigError("solo_multiplier must be > 0")
        if self.special_role_multiplier <= 0:
            raise ConfigError("special_role_multiplier must be > 0")


DEFAULT_POLICY = PayoutPolicy()


@dataclass(frozen=True)
class TierConfig:
    """Complete contents of a tier file."""
    version: str
    description: str
    tiers: Tuple[TierDefinition, ...]
    policy: PayoutPolicy = DEFAULT_POLICY


@dataclass(frozen=True)
class AssetTypeEntry:
    """One catalog row: an asset type and the category it belongs to."""
    type_id: int
    name: str
    category: str
    base_value: int


def _read_yaml(path: str, what: str) -> Dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"{what} file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {what} file {path}: {e}")

    if not raw:
        raise ConfigError(f"{what} file is empty: {path}")
    if not isinstance(raw, dict):
        raise ConfigError(f"{what} file must contain a mapping: {path}")
    return raw


def _check_keys(data: Dict, allowed: set, where: str) -> None:
    unknown = set(data.keys()) - allowed
    if unknown:
        raise ConfigError(f"Unknown keys in {where}: {sorted(unknown)}")


def _non_negative_int(value: Any, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(f"{where} must be a non-negative number")
    return int(value)


def load_tier_config(path: str) -> TierConfig:
    """Load and validate the payout tier file.

    Example::

        version: "2025.1"
        description: Standard doctrine caps
        tiers:
          - name: T1 Frigate
            max_payout: 20000000
            categories: [Frigate, Destroyer]
        policy:
          solo_multiplier: 0.5
          special_role_multiplier: 1.2

    Args:
        path: Path to YAML tier file

    Returns:
        Validated TierConfig

    Raises:
        ConfigError: If the file is missing, not YAML, or fails validation
    """
    raw = _read_yaml(path, "Tier")
    _check_keys(raw, {'version', 'description', 'tiers', 'policy'}, "tier file")

    if 'version' not in raw:
        raise ConfigError("Missing required 'version'")
    if 'tiers' not in raw:
        raise ConfigError("Missing required 'tiers' section")

    tiers_data = raw['tiers']
    if not isinstance(tiers_data, list):
        raise ConfigError("'tiers' must be a list")

    tiers: List[TierDefinition] = []
    for index, tier_data in enumerate(tiers_data):
        where = f"tiers[{index}]"
        if not isinstance(tier_data, dict):
            raise ConfigError(f"{where} must be a dictionary")
        _check_keys(tier_data, {'name', 'max_payout', 'categories'}, where)

        for key in ('name', 'max_payout', 'categories'):
            if key not in tier_data:
                raise ConfigError(f"Missing required '{key}' in {where}")

        name = tier_data['name']
        if not isinstance(name, str) or not name.strip():
            raise ConfigError(f"'name' in {where} must be a non-empty string")

        categories = tier_data['categories']
        if not isinstance(categories, list) or not all(isinstance(c, str) for c in categories):
            raise ConfigError(f"'categories' in {where} must be a list of strings")

        tiers.append(TierDefinition(
            name=name,
            max_payout=_non_negative_int(tier_data['max_payout'], f"'max_payout' in {where}"),
            categories=tuple(categories)
        ))

    policy = DEFAULT_POLICY
    if 'policy' in raw:
        policy = _parse_policy(raw['policy'])

    return TierConfig(
        version=str(raw['version']),
        description=str(raw.get('description', '')),
        tiers=tuple(tiers),
        policy=policy
    )


def _parse_policy(data: Any) -> PayoutPolicy:
    if not isinstance(data, dict):
        raise ConfigError("'policy' must be a dictionary")
    _check_keys(data, {'solo_multiplier', 'special_role_multiplier'}, "policy")

    values = {}
    for key in ('solo_multiplier', 'special_role_multiplier'):
        if key not in data:
            continue
        value = data[key]
        if isinstance(value, bool):
            raise ConfigError(f"'{key}' in policy must be a number")
        try:
            # str() keeps 1.2 from becoming 1.1999999999999999555910790149937
            values[key] = Decimal(str(value))
        except InvalidOperation:
            raise ConfigError(f"'{key}' in policy must be a number")
    return PayoutPolicy(**values)


def load_catalog(path: str) -> Dict[int, AssetTypeEntry]:
    """Load the asset catalog keyed by type id.

    Raises:
        ConfigError: If the file is missing or malformed, or an id repeats
    """
    raw = _read_yaml(path, "Catalog")
    _check_keys(raw, {'asset_types'}, "catalog file")

    entries = raw.get('asset_types')
    if not isinstance(entries, list):
        raise ConfigError("'asset_types' must be a list")

    catalog: Dict[int, AssetTypeEntry] = {}
    for index, item in enumerate(entries):
        where = f"asset_types[{index}]"
        if not isinstance(item, dict):
            raise ConfigError(f"{where} must be a dictionary")
        _check_keys(item, {'id', 'name', 'category', 'base_value'}, where)
        for key in ('id', 'name', 'category'):
            if key not in item:
                raise ConfigError(f"Missing required '{key}' in {where}")

        type_id = item['id']
        if isinstance(type_id, bool) or not isinstance(type_id, int):
            raise ConfigError(f"'id' in {where} must be an integer")
        if type_id in catalog:
            raise ConfigError(f"Duplicate asset type id {type_id} in {where}")

        catalog[type_id] = AssetTypeEntry(
            type_id=type_id,
            name=str(item['name']),
            category=str(item['category']),
            base_value=_non_negative_int(item.get('base_value', 0), f"'base_value' in {where}")
        )

    logger.info("Loaded %d asset types from %s", len(catalog), path)
    return catalog
