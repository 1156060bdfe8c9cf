"""
Game Snapshot
=============

Immutable input of one derivation pass.

A snapshot bundles everything the feasible region depends on:
    - base polygon (already snapped to the overlay grid)
    - ordered question list
    - frozen exclusion view (POI table + disabled overlay)
    - planning-mode flag and optional hiding radius

Callers own mutation: they build a fresh snapshot for every pass, so the
engine never sees state changing underneath it.

Game Export:
    The clipboard form of a whole game mirrors the snapshot:
    {
        "boundary": {"type": "FeatureCollection", "features": [...]},
        "questions": [{"key": 0, "kind": "radius", ...}],
        "disabled_stations": ["metro_a01"],
        "planning_mode": false,
        "hiding_radius": 0.5,
        "hiding_radius_units": "miles",
        "hiding_categories": ["metro_station"]
    }
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError
from shapely.geometry import MultiPolygon

from hidezone.errors import GeometryError, SchemaError
from hidezone.exclusions.registry import ExclusionRegistry, ExclusionView
from hidezone.geometry.geojson import to_feature_collection, to_region
from hidezone.geometry.primitives import require_valid, snap
from hidezone.models.geometry import Units
from hidezone.models.questions import Question, parse_questions


@dataclass(frozen=True)
class GameSnapshot:
    """
    Everything one derivation pass reads.

    Attributes:
        base: Playable area, never mutated
        questions: Questions in the order they were asked
        exclusions: POI table with the disabled overlay
        planning_mode: Draft questions only produce previews
        hiding_radius: Radius of the hiding zones around enabled POIs
        hiding_radius_units: Unit of `hiding_radius`
        hiding_categories: POI categories that get hiding zones (None = all)
    """

    base: MultiPolygon
    questions: Tuple[Question, ...] = ()
    exclusions: Optional[ExclusionView] = None
    planning_mode: bool = False
    hiding_radius: Optional[float] = None
    hiding_radius_units: Units = Units.MILES
    hiding_categories: Optional[Tuple[str, ...]] = None

    @classmethod
    def create(
        cls,
        base: MultiPolygon,
        questions: Optional[List[Question]] = None,
        exclusions: Optional[ExclusionView] = None,
        **options: Any,
    ) -> "GameSnapshot":
        """Validate and snap the base polygon, then freeze the inputs."""
        require_valid(base, "base polygon")
        base = snap(base)
        if base.is_empty:
            raise GeometryError("base polygon is empty")
        return cls(
            base=base,
            questions=tuple(questions or ()),
            exclusions=exclusions,
            **options,
        )

    def base_fingerprint(self) -> str:
        return hashlib.sha256(self.base.wkb).hexdigest()

    def exclusions_fingerprint(self) -> str:
        return self.exclusions.fingerprint() if self.exclusions is not None else ""

    def fingerprint(self) -> str:
        """
        Digest of every input of the pass.

        Question order is part of the digest: the region does not depend
        on it, but `empty_at` does.
        """
        digest = hashlib.sha256()
        digest.update(self.base_fingerprint().encode())
        digest.update(self.exclusions_fingerprint().encode())
        digest.update(
            json.dumps(
                [q.model_dump(mode="json") for q in self.questions],
                sort_keys=True,
            ).encode()
        )
        digest.update(
            json.dumps([
                self.planning_mode,
                self.hiding_radius,
                Units(self.hiding_radius_units).value,
                list(self.hiding_categories) if self.hiding_categories is not None else None,
            ]).encode()
        )
        return digest.hexdigest()


# =============================================================================
# Game payload (API body and clipboard export)
# =============================================================================

class GamePayload(BaseModel):
    """
    Serialized game.

    `boundary` may be omitted when the service already has a base polygon
    selected. Questions stay raw here so that validation errors can name
    the offending question key.
    """

    boundary: Optional[Dict[str, Any]] = Field(default=None, description="GeoJSON FeatureCollection")
    questions: List[Dict[str, Any]] = Field(default_factory=list)
    disabled_stations: Optional[List[str]] = Field(
        default=None,
        description="Disabled POI ids; None keeps the registry's own overlay",
    )
    planning_mode: bool = False
    hiding_radius: Optional[float] = Field(default=None, gt=0)
    hiding_radius_units: Units = Units.MILES
    hiding_categories: Optional[List[str]] = None


def parse_game(payload: Any) -> GamePayload:
    try:
        return GamePayload.model_validate(payload)
    except ValidationError as e:
        raise SchemaError.from_validation_error(e)


def build_snapshot(
    game: GamePayload,
    registry: Optional[ExclusionRegistry] = None,
    fallback_base: Optional[MultiPolygon] = None,
) -> GameSnapshot:
    """
    Turn a game payload into a snapshot.

    Args:
        game: Validated payload
        registry: Source of the POI table; the payload's disabled list
            overrides the registry's own overlay
        fallback_base: Base polygon used when the payload carries none

    Raises:
        SchemaError: Malformed questions, shapes, or unknown POI ids
        GeometryError: Invalid or missing base polygon
    """
    if game.boundary is not None:
        base = to_region(game.boundary)
    elif fallback_base is not None:
        base = fallback_base
    else:
        raise GeometryError("no base polygon: send a boundary or select a place first")

    questions = parse_questions(game.questions)

    exclusions = None
    if registry is not None:
        try:
            exclusions = registry.view(game.disabled_stations)
        except SchemaError as e:
            e.fields = ["disabled_stations"]
            raise

    return GameSnapshot.create(
        base,
        questions,
        exclusions,
        planning_mode=game.planning_mode,
        hiding_radius=game.hiding_radius,
        hiding_radius_units=game.hiding_radius_units,
        hiding_categories=tuple(game.hiding_categories) if game.hiding_categories is not None else None,
    )


def export_game(snapshot: GameSnapshot) -> str:
    """Serialize a snapshot for the clipboard."""
    game = GamePayload(
        boundary=to_feature_collection(snapshot.base).model_dump(mode="json"),
        questions=[q.model_dump(mode="json") for q in snapshot.questions],
        disabled_stations=sorted(snapshot.exclusions.disabled) if snapshot.exclusions is not None else [],
        planning_mode=snapshot.planning_mode,
        hiding_radius=snapshot.hiding_radius,
        hiding_radius_units=snapshot.hiding_radius_units,
        hiding_categories=list(snapshot.hiding_categories) if snapshot.hiding_categories is not None else None,
    )
    return game.model_dump_json()


def import_game(text: str) -> GamePayload:
    """Parse a game pasted from the clipboard."""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaError(f"not valid JSON: {e.msg}", fields=["$"])
    return parse_game(payload)
