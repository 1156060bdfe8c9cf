"""
Geometry Module
===============

Geographic primitives and GeoJSON conversion for the region engine.

All derivations go through these functions so that every question kind
shares one spherical Earth model and one overlay precision grid.
"""

from hidezone.geometry.primitives import (
    area,
    as_multipolygon,
    bbox,
    buffer,
    circle,
    closer_region,
    contains_point,
    destination,
    difference,
    distance,
    frame_around,
    intersect,
    nearest_cell,
    union,
    within_any,
)
from hidezone.geometry.geojson import to_feature_collection, to_region

__all__ = [
    "area",
    "as_multipolygon",
    "bbox",
    "buffer",
    "circle",
    "closer_region",
    "contains_point",
    "destination",
    "difference",
    "distance",
    "frame_around",
    "intersect",
    "nearest_cell",
    "union",
    "within_any",
    "to_feature_collection",
    "to_region",
]
