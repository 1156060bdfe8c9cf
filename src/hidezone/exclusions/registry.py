"""
Exclusion Registry
==================

Named points of interest (transit stations, airports, ...) consumed by the
matching, measuring and hiding-zone computations.

This module handles:
    - Loading the POI table from a JSON file, once per supported region
    - Keeping the runtime-mutable set of disabled POI ids alongside the table
    - Producing immutable views for a single derivation pass

The table is STATIC after loading. Only the disabled overlay changes, and it
is never merged into the table.

Example:
    from hidezone.exclusions import ExclusionRegistry

    registry = ExclusionRegistry.load_from_file("./data/exclusions/dc_metro.json")
    registry.disable("metro_a01")

    view = registry.view()
    stations = view.enabled("metro_station")
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

from hidezone.errors import SchemaError
from hidezone.models.geometry import LatLng


logger = logging.getLogger(__name__)


class PointOfInterest(BaseModel):
    """
    A named location that distance-based questions measure against.

    Attributes:
        id: Unique identifier (e.g. a station code)
        name: Human-readable name
        category: Set the point belongs to (e.g. "metro_station")
        lat: Latitude in degrees
        lng: Longitude in degrees
    """

    id: str = Field(..., min_length=1)
    name: str = ""
    category: str = Field(..., min_length=1)
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)

    model_config = {"frozen": True}

    @property
    def point(self) -> LatLng:
        return LatLng(lat=self.lat, lng=self.lng)


class RegistryDefinition(BaseModel):
    """On-disk registry file format."""

    region_id: str = Field(..., description="Region the table belongs to")
    name: str = ""
    points: List[PointOfInterest] = Field(default_factory=list)


@dataclass(frozen=True)
class ExclusionView:
    """
    Immutable snapshot of the registry for one derivation pass.

    Attributes:
        table: POI id -> PointOfInterest (read-only)
        disabled: Ids excluded from distance calculations
    """

    table: Mapping[str, PointOfInterest]
    disabled: FrozenSet[str]

    def categories(self) -> FrozenSet[str]:
        return frozenset(p.category for p in self.table.values())

    def has_category(self, category: str) -> bool:
        return any(p.category == category for p in self.table.values())

    def enabled(self, category: Optional[str] = None) -> List[PointOfInterest]:
        """Points not disabled, optionally restricted to one category, in id order."""
        return [
            p for _, p in sorted(self.table.items())
            if p.id not in self.disabled and (category is None or p.category == category)
        ]

    def fingerprint(self) -> str:
        digest = hashlib.sha256()
        for poi_id in sorted(self.table):
            p = self.table[poi_id]
            digest.update(f"{p.id}|{p.category}|{p.lat!r}|{p.lng!r};".encode())
        digest.update(("disabled:" + ",".join(sorted(self.disabled))).encode())
        return digest.hexdigest()


_EMPTY_VIEW = ExclusionView(table=MappingProxyType({}), disabled=frozenset())


def empty_view() -> ExclusionView:
    return _EMPTY_VIEW


class ExclusionRegistry:
    """
    POI table plus a mutable disabled-id overlay.

    Attributes:
        region_id: Region the loaded table belongs to
        version: Incremented on every change of the disabled set
    """

    def __init__(self, points: Iterable[PointOfInterest] = (), region_id: str = "") -> None:
        table: Dict[str, PointOfInterest] = {}
        for point in points:
            if point.id in table:
                raise SchemaError(f"duplicate point of interest id '{point.id}'", fields=["points.id"])
            table[point.id] = point

        self.region_id = region_id
        self._table = MappingProxyType(table)
        self._disabled: set = set()
        self.version = 0

    @classmethod
    def load_from_file(cls, path: str) -> "ExclusionRegistry":
        """
        Load a registry definition from a JSON file.

        Args:
            path: Path to the registry JSON file

        Raises:
            FileNotFoundError: If the file does not exist
            SchemaError: If the JSON does not match the registry format
        """
        file_path = Path(path)

        if not file_path.exists():
            raise FileNotFoundError(f"Registry file not found: {path}")

        logger.info(f"Loading exclusion registry from: {path}")

        with open(file_path, "r") as f:
            data = json.load(f)

        try:
            definition = RegistryDefinition.model_validate(data)
        except ValidationError as e:
            raise SchemaError.from_validation_error(e)

        registry = cls(definition.points, region_id=definition.region_id)
        logger.info(
            f"Loaded registry: region={definition.region_id}, "
            f"points={len(registry)}, categories={sorted(registry.view().categories())}"
        )
        return registry

    def __len__(self) -> int:
        return len(self._table)

    def get(self, poi_id: str) -> Optional[PointOfInterest]:
        return self._table.get(poi_id)

    @property
    def disabled(self) -> FrozenSet[str]:
        return frozenset(self._disabled)

    def _require(self, poi_id: str) -> None:
        if poi_id not in self._table:
            raise SchemaError(f"unknown point of interest '{poi_id}'", fields=["poi_id"])

    def disable(self, poi_id: str) -> None:
        self._require(poi_id)
        if poi_id not in self._disabled:
            self._disabled.add(poi_id)
            self.version += 1
            logger.info(f"Disabled point of interest: {poi_id}")

    def enable(self, poi_id: str) -> None:
        self._require(poi_id)
        if poi_id in self._disabled:
            self._disabled.discard(poi_id)
            self.version += 1
            logger.info(f"Enabled point of interest: {poi_id}")

    def set_disabled(self, poi_ids: Iterable[str]) -> None:
        """Replace the whole disabled set (e.g. from an imported game)."""
        ids = set(poi_ids)
        for poi_id in ids:
            self._require(poi_id)
        if ids != self._disabled:
            self._disabled = ids
            self.version += 1

    def view(self, disabled: Optional[Iterable[str]] = None) -> ExclusionView:
        """
        Freeze the current state for one derivation pass.

        Args:
            disabled: Use this disabled set instead of the registry's own
        """
        if disabled is None:
            overlay = frozenset(self._disabled)
        else:
            overlay = frozenset(disabled)
            for poi_id in overlay:
                self._require(poi_id)
        return ExclusionView(table=self._table, disabled=overlay)
