"""
Geometry Models
===============

This module defines the geographic interchange types consumed and emitted by
the region engine.

Supported Geometries:
    - LatLng: a WGS84 coordinate (degrees)
    - PolygonGeometry / MultiPolygonGeometry: GeoJSON geometry objects
    - Feature / FeatureCollection: GeoJSON containers

Example Boundary (drawn shape):
    {
        "type": "FeatureCollection",
        "features": [{
            "type": "Feature",
            "properties": {},
            "geometry": {
                "type": "Polygon",
                "coordinates": [[[-77.18, 38.75], [-77.10, 38.76], ...]]
            }
        }]
    }

Note:
    GeoJSON positions are [longitude, latitude]. Everything else in this
    package speaks (lat, lng) to match how questions are authored.
    Structural problems (wrong types, too few positions) fail here;
    topological ones (open rings, self-intersections) are checked when the
    geometry is converted, see hidezone.geometry.geojson.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, Field, field_validator


class Units(str, Enum):
    """Distance units accepted by questions and primitives."""

    MILES = "miles"
    KILOMETERS = "kilometers"
    METERS = "meters"
    FEET = "feet"


METERS_PER_UNIT: Dict[Units, float] = {
    Units.MILES: 1609.344,
    Units.KILOMETERS: 1000.0,
    Units.METERS: 1.0,
    Units.FEET: 0.3048,
}


class LatLng(BaseModel):
    """
    Geographic coordinate in degrees.

    Attributes:
        lat: Latitude, -90 to 90
        lng: Longitude, -180 to 180
    """

    lat: float = Field(..., ge=-90.0, le=90.0, description="Latitude (degrees)")
    lng: float = Field(..., ge=-180.0, le=180.0, description="Longitude (degrees)")

    model_config = {"frozen": True}


Position = List[float]
Ring = List[Position]


def _check_ring(ring: Ring) -> Ring:
    if len(ring) < 4:
        raise ValueError("a linear ring needs at least 4 positions")
    for position in ring:
        if len(position) < 2:
            raise ValueError("a position needs longitude and latitude")
    return ring


class PolygonGeometry(BaseModel):
    """GeoJSON Polygon: an outer ring followed by optional holes."""

    type: Literal["Polygon"]
    coordinates: List[Ring] = Field(..., min_length=1)

    @field_validator("coordinates")
    @classmethod
    def validate_rings(cls, v: List[Ring]) -> List[Ring]:
        for ring in v:
            _check_ring(ring)
        return v


class MultiPolygonGeometry(BaseModel):
    """GeoJSON MultiPolygon: a list of polygon ring lists."""

    type: Literal["MultiPolygon"]
    coordinates: List[List[Ring]]

    @field_validator("coordinates")
    @classmethod
    def validate_polygons(cls, v: List[List[Ring]]) -> List[List[Ring]]:
        for polygon in v:
            if not polygon:
                raise ValueError("a polygon needs an outer ring")
            for ring in polygon:
                _check_ring(ring)
        return v


class Feature(BaseModel):
    """GeoJSON Feature restricted to polygonal geometry."""

    type: Literal["Feature"] = "Feature"
    properties: Dict[str, Any] = Field(default_factory=dict)
    geometry: Union[PolygonGeometry, MultiPolygonGeometry] = Field(
        ...,
        discriminator="type",
    )


class FeatureCollection(BaseModel):
    """
    GeoJSON FeatureCollection of Polygon/MultiPolygon features.

    This is the interchange format for base boundaries, drawn shapes,
    feasible regions, masks and previews.
    """

    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: List[Feature] = Field(default_factory=list)
