"""
GeoJSON Conversion
==================

Conversion between the GeoJSON interchange models and shapely regions.

Incoming shapes are checked, never repaired:
    - structural problems (wrong types, short rings) -> SchemaError
    - open rings and self-intersections              -> GeometryError
"""

import logging
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError
from shapely.geometry import MultiPolygon, mapping, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from hidezone.errors import GeometryError, SchemaError
from hidezone.geometry.primitives import as_multipolygon, require_valid
from hidezone.models.geometry import (
    Feature,
    FeatureCollection,
    MultiPolygonGeometry,
    PolygonGeometry,
)


logger = logging.getLogger(__name__)


def parse_feature_collection(payload: Union[FeatureCollection, Dict[str, Any]]) -> FeatureCollection:
    """Validate a raw GeoJSON payload as a polygonal FeatureCollection."""
    if isinstance(payload, FeatureCollection):
        return payload
    try:
        return FeatureCollection.model_validate(payload)
    except ValidationError as e:
        raise SchemaError.from_validation_error(e)


def _check_closed(geometry: Union[PolygonGeometry, MultiPolygonGeometry], index: int) -> None:
    polygons = (
        [geometry.coordinates]
        if isinstance(geometry, PolygonGeometry)
        else geometry.coordinates
    )
    for polygon in polygons:
        for ring in polygon:
            if ring[0][:2] != ring[-1][:2]:
                raise GeometryError(
                    f"feature {index}: ring is not closed "
                    f"(starts at {ring[0][:2]}, ends at {ring[-1][:2]})"
                )


def to_region(payload: Union[FeatureCollection, Dict[str, Any]]) -> MultiPolygon:
    """
    Convert a FeatureCollection into a single MultiPolygon region.

    Features are unioned; overlapping features are allowed, each one on
    its own must be valid.

    Raises:
        SchemaError: If the payload is not a polygonal FeatureCollection
        GeometryError: If a ring is open or a polygon self-intersects
    """
    collection = parse_feature_collection(payload)
    if not collection.features:
        raise GeometryError("feature collection contains no polygons")

    parts = []
    for index, feature in enumerate(collection.features):
        _check_closed(feature.geometry, index)
        geom = shape(feature.geometry.model_dump())
        require_valid(geom, f"feature {index}")
        parts.append(geom)

    region = as_multipolygon(unary_union(parts))
    logger.debug(f"Converted {len(parts)} feature(s) into {len(region.geoms)} polygon(s)")
    return region


def to_feature_collection(
    region: BaseGeometry,
    properties: Optional[Dict[str, Any]] = None,
) -> FeatureCollection:
    """
    Wrap a region as a FeatureCollection.

    An empty region becomes a collection with no features; a one-part
    region is emitted as a Polygon.
    """
    region = as_multipolygon(region)
    if region.is_empty:
        return FeatureCollection(features=[])

    geom = region.geoms[0] if len(region.geoms) == 1 else region
    return FeatureCollection(
        features=[
            Feature(properties=properties or {}, geometry=mapping(geom)),
        ]
    )
