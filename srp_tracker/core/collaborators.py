"""
Interfaces to the systems the SRP engine depends on but does not own.

Identity, the asset catalog and the fleet directory are supplied by the
caller. The reference implementations here back the CLI and the tests.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Protocol

from srp_tracker.config.loader import AssetTypeEntry, load_catalog
from srp_tracker.storage.repository import RequestRepository


class Role(str, Enum):
    MEMBER = "member"
    FC = "fc"
    ADMIN = "admin"


REVIEWER_ROLES = frozenset({Role.FC, Role.ADMIN})


@dataclass(frozen=True)
class Actor:
    """Resolved caller identity."""
    user_id: str
    display_name: str
    role: Role = Role.MEMBER

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES


@dataclass(frozen=True)
class AssetType:
    type_id: int
    name: str
    category: str
    base_value: int


@dataclass(frozen=True)
class FleetInfo:
    fleet_id: str
    display_name: str


class CatalogLookup(Protocol):
    def resolve(self, asset_type_id: int) -> Optional[AssetType]:
        ...


class FleetResolver(Protocol):
    def resolve(self, fleet_ref: str) -> Optional[FleetInfo]:
        ...


class StaticCatalog:
    """Catalog held in memory, usually loaded from a YAML file."""

    def __init__(self, entries: Dict[int, AssetTypeEntry]):
        self._entries = dict(entries)

    @classmethod
    def from_file(cls, path: str) -> "StaticCatalog":
        return cls(load_catalog(path))

    def resolve(self, asset_type_id: int) -> Optional[AssetType]:
        entry = self._entries.get(asset_type_id)
        if entry is None:
            return None
        return AssetType(
            type_id=entry.type_id,
            name=entry.name,
            category=entry.category,
            base_value=entry.base_value
        )

    def __len__(self) -> int:
        return len(self._entries)


class RepositoryFleetResolver:
    """Resolves fleet references against the ``fleet`` table."""

    def __init__(self, repository: RequestRepository):
        self.repository = repository

    def resolve(self, fleet_ref: str) -> Optional[FleetInfo]:
        fleet = self.repository.get_fleet(fleet_ref)
        if fleet is None:
            return None
        return FleetInfo(
            fleet_id=fleet.id,
            display_name=f"{fleet.operation_name} ({fleet.fc_name})"
        )
