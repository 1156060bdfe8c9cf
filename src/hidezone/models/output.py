"""
Derivation Output Models
========================

This module defines the output contract of a derivation pass.

The output is structured into three tiers:
    1. Status: what happened (OK, EMPTY, FAILED, BUSY) and, on failure, why
    2. Regions: feasible region and rendering mask as GeoJSON
    3. Extras: planning previews, hiding zones and measurements

Output Contract:
    {
        "status": "OK",
        "feasible_region": {"type": "FeatureCollection", "features": [...]},
        "mask": {"type": "FeatureCollection", "features": [...]},
        "empty_at": null,
        "error": null,
        "previews": {"4": {"type": "FeatureCollection", "features": [...]}},
        "hiding_zones": null,
        "area": 28.27,
        "area_units": "miles",
        "duration_ms": 12.5
    }

Design Rules:
    - `error` is set if and only if status is FAILED
    - `empty_at` is the key of the first question that emptied the region
    - Previews never influence the feasible region
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from hidezone.models.geometry import Units
from hidezone.models.reason_codes import DerivationStatus


class DerivationError(BaseModel):
    """
    Why a pass was aborted.

    Attributes:
        code: Error family (SCHEMA_ERROR, GEOMETRY_ERROR)
        message: Human-readable description
        question_key: Offending question, when the error belongs to one
        fields: Offending field paths, for schema errors
    """

    code: str
    message: str
    question_key: Optional[int] = None
    fields: List[str] = Field(default_factory=list)


class DerivationOutput(BaseModel):
    """Serialized result of one derivation pass."""

    status: DerivationStatus = Field(..., description="Outcome of the pass")

    feasible_region: Optional[Dict[str, Any]] = Field(
        default=None,
        description="GeoJSON FeatureCollection of the feasible region",
    )

    mask: Optional[Dict[str, Any]] = Field(
        default=None,
        description="GeoJSON FeatureCollection of the outer frame minus the region",
    )

    empty_at: Optional[int] = Field(
        default=None,
        description="Key of the first question that emptied the region",
    )

    error: Optional[DerivationError] = Field(default=None)

    previews: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Question key -> region the draft question would yield",
    )

    hiding_zones: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Areas within the hiding radius of an enabled station",
    )

    area: Optional[float] = Field(default=None, ge=0.0)
    area_units: Units = Field(default=Units.MILES)
    duration_ms: float = Field(default=0.0, ge=0.0)

    model_config = {
        "json_schema_extra": {
            "example": {
                "status": "EMPTY",
                "feasible_region": {"type": "FeatureCollection", "features": []},
                "mask": {"type": "FeatureCollection", "features": ["..."]},
                "empty_at": 2,
                "error": None,
                "previews": {},
                "hiding_zones": None,
                "area": 0.0,
                "area_units": "miles",
                "duration_ms": 8.1,
            }
        }
    }
