"""
Payout tier table.

Maps asset categories to the tier that caps their payout. One process-wide
table is loaded at startup and can be reloaded; a reload replaces the whole
mapping at once so readers always see exactly one version of the tier file.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from srp_tracker.config.loader import (
    DEFAULT_POLICY,
    PayoutPolicy,
    TierConfig,
    TierDefinition,
    load_tier_config,
)

from .errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _TierSnapshot:
    config: TierConfig
    by_category: Dict[str, TierDefinition]


def _index_categories(config: TierConfig) -> Dict[str, TierDefinition]:
    """Map each category to its tier; a category listed twice keeps the last tier."""
    by_category: Dict[str, TierDefinition] = {}
    for tier in config.tiers:
        for category in tier.categories:
            previous = by_category.get(category)
            if previous is not None and previous.name != tier.name:
                logger.warning(
                    "Category %r listed in tiers %r and %r; using %r",
                    category, previous.name, tier.name, tier.name
                )
            by_category[category] = tier
    return by_category


class TierTable:
    """Category to tier lookup with an explicit load/reload lifecycle.

    Lookups read the current snapshot without locking; ``load`` builds the
    new snapshot first and swaps it in under the writer lock. Until a load
    succeeds every lookup returns None, which callers treat as "no cap".
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot: Optional[_TierSnapshot] = None
        self._path: Optional[str] = None

    def load(self, path: str) -> None:
        """Load the tier file at ``path``, replacing any previous mapping.

        Raises:
            ConfigError: If the file is absent or malformed. The previously
                loaded mapping, if any, stays in place.
        """
        config = load_tier_config(path)
        snapshot = _TierSnapshot(config=config, by_category=_index_categories(config))
        with self._lock:
            self._snapshot = snapshot
            self._path = path
        logger.info(
            "SRP tiers loaded: %d categories in %d tiers, version %s",
            len(snapshot.by_category), len(config.tiers), config.version
        )

    def reload(self) -> None:
        """Re-read the file given to the last successful ``load``."""
        if self._path is None:
            raise ConfigError("Tier table has never been loaded")
        self.load(self._path)

    def clear(self) -> None:
        with self._lock:
            self._snapshot = None
            self._path = None

    def is_loaded(self) -> bool:
        return self._snapshot is not None

    def max_payout(self, category: str) -> Optional[int]:
        tier = self._lookup(category)
        return tier.max_payout if tier else None

    def tier_name(self, category: str) -> Optional[str]:
        tier = self._lookup(category)
        return tier.name if tier else None

    def version(self) -> Optional[str]:
        snapshot = self._snapshot
        return snapshot.config.version if snapshot else None

    def all_tiers(self) -> List[TierDefinition]:
        snapshot = self._snapshot
        return list(snapshot.config.tiers) if snapshot else []

    def policy(self) -> PayoutPolicy:
        snapshot = self._snapshot
        return snapshot.config.policy if snapshot else DEFAULT_POLICY

    def _lookup(self, category: str) -> Optional[TierDefinition]:
        snapshot = self._snapshot
        if snapshot is None:
            return None
        return snapshot.by_category.get(category)


# Global tier table instance
_default_table: Optional[TierTable] = None
_default_lock = threading.Lock()


def get_tier_table() -> TierTable:
    """Get the process-wide tier table.

    The table starts empty; call ``load`` on it during startup.
    """
    global _default_table
    with _default_lock:
        if _default_table is None:
            _default_table = TierTable()
        return _default_table
