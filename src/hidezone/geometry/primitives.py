"""
Geometry Primitives
===================

Pure, side-effect-free operations over geographic regions.

This module handles:
    - Boolean overlays (intersect, difference, union) on a fixed precision grid
    - Geodesic buffers (circles around points, capsules along polylines)
    - Distances, bounding boxes, point-in-region tests and areas
    - Equidistance partitions (closer_region, nearest_cell) used by the
      thermometer, tentacles and matching questions

Earth Model:
    Spherical, mean radius 6,371,008.8 m. Every distance, circle vertex and
    area in the package goes through this module so that all question kinds
    agree on what "3 miles" means.

Regions:
    Regions are shapely geometries in (lng, lat) order. Overlay results are
    normalized to MultiPolygon; the empty MultiPolygon is a valid region.

Example:
    from hidezone.geometry.primitives import buffer, intersect
    from hidezone.models.geometry import LatLng, Units

    disc = buffer(LatLng(lat=38.9, lng=-77.03), 3, Units.MILES)
    region = intersect(base, disc)
"""

import logging
import math
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import shapely
from shapely.geometry import (
    GeometryCollection,
    LineString,
    MultiPolygon,
    Point,
    Polygon,
    box,
)
from shapely.geometry.base import BaseGeometry
from shapely.ops import polygonize, unary_union
from shapely.validation import explain_validity

from hidezone.config import settings
from hidezone.errors import GeometryError
from hidezone.models.geometry import METERS_PER_UNIT, LatLng, Units


logger = logging.getLogger(__name__)


EARTH_RADIUS_M = 6371008.8

Region = Union[Polygon, MultiPolygon]
BBox = Tuple[float, float, float, float]


# =============================================================================
# Validation and normalization
# =============================================================================

def require_valid(geom: BaseGeometry, what: str = "region") -> None:
    """
    Reject malformed polygons instead of repairing them.

    Raises:
        GeometryError: If the geometry is not valid (self-intersection, etc.)
    """
    if geom is None:
        raise GeometryError(f"{what} is missing")
    if not geom.is_empty and not geom.is_valid:
        raise GeometryError(f"invalid {what}: {explain_validity(geom)}")


def as_multipolygon(geom: Optional[BaseGeometry]) -> MultiPolygon:
    """Keep only the polygonal part of an overlay result."""
    if geom is None or geom.is_empty:
        return MultiPolygon()
    if isinstance(geom, MultiPolygon):
        return geom
    if isinstance(geom, Polygon):
        return MultiPolygon([geom])
    if isinstance(geom, GeometryCollection):
        polygons: List[Polygon] = []
        for part in geom.geoms:
            polygons.extend(as_multipolygon(part).geoms)
        return MultiPolygon(polygons) if polygons else MultiPolygon()
    # Lines and points have no area
    return MultiPolygon()


def _grid() -> Optional[float]:
    size = settings.geometry.precision_grid
    return size if size > 0 else None


def snap(region: BaseGeometry) -> MultiPolygon:
    """Snap a region onto the overlay precision grid."""
    grid = _grid()
    if grid is None or region.is_empty:
        return as_multipolygon(region)
    return as_multipolygon(shapely.set_precision(region, grid))


# =============================================================================
# Boolean overlays
# =============================================================================

def intersect(a: BaseGeometry, b: BaseGeometry) -> MultiPolygon:
    """Area common to `a` and `b`. Empty if either operand is empty."""
    require_valid(a)
    require_valid(b)
    if a.is_empty or b.is_empty:
        return MultiPolygon()
    return as_multipolygon(shapely.intersection(a, b, grid_size=_grid()))


def difference(a: BaseGeometry, b: BaseGeometry) -> MultiPolygon:
    """Area of `a` not covered by `b`. Returns `a` unchanged if `b` is empty."""
    require_valid(a)
    require_valid(b)
    if a.is_empty:
        return MultiPolygon()
    if b.is_empty:
        return as_multipolygon(a)
    return as_multipolygon(shapely.difference(a, b, grid_size=_grid()))


def union(a: BaseGeometry, b: BaseGeometry) -> MultiPolygon:
    """Area covered by `a` or `b`."""
    require_valid(a)
    require_valid(b)
    if a.is_empty:
        return as_multipolygon(b)
    if b.is_empty:
        return as_multipolygon(a)
    return as_multipolygon(shapely.union(a, b, grid_size=_grid()))


# =============================================================================
# Distances
# =============================================================================

def to_meters(distance: float, units: Units) -> float:
    return distance * METERS_PER_UNIT[Units(units)]


def from_meters(meters: float, units: Units) -> float:
    return meters / METERS_PER_UNIT[Units(units)]


def distance(p1: LatLng, p2: LatLng, units: Units = Units.MILES) -> float:
    """Great-circle (haversine) distance between two points."""
    lat1, lat2 = math.radians(p1.lat), math.radians(p2.lat)
    dlat = lat2 - lat1
    dlng = math.radians(p2.lng - p1.lng)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    central = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return from_meters(central * EARTH_RADIUS_M, units)


def destination(
    origin: LatLng,
    dist: float,
    bearing: float,
    units: Units = Units.MILES,
) -> LatLng:
    """
    Point reached travelling `dist` from `origin` along initial `bearing`.

    Args:
        origin: Starting point
        dist: Distance to travel
        bearing: Degrees clockwise from north
        units: Unit of `dist`

    Returns:
        Destination point, longitude wrapped to [-180, 180]
    """
    angular = to_meters(dist, units) / EARTH_RADIUS_M
    theta = math.radians(bearing)
    lat1 = math.radians(origin.lat)
    lng1 = math.radians(origin.lng)

    lat2 = math.asin(
        math.sin(lat1) * math.cos(angular)
        + math.cos(lat1) * math.sin(angular) * math.cos(theta)
    )
    lng2 = lng1 + math.atan2(
        math.sin(theta) * math.sin(angular) * math.cos(lat1),
        math.cos(angular) - math.sin(lat1) * math.sin(lat2),
    )
    lng = (math.degrees(lng2) + 540.0) % 360.0 - 180.0
    return LatLng(lat=max(-90.0, min(90.0, math.degrees(lat2))), lng=lng)


# =============================================================================
# Buffers
# =============================================================================

def circle(
    center: LatLng,
    radius: float,
    units: Units = Units.MILES,
    steps: Optional[int] = None,
) -> Polygon:
    """Geodesic circle approximated by `steps` vertices."""
    if radius <= 0:
        raise GeometryError(f"circle radius must be positive, got {radius}")
    steps = steps or settings.geometry.circle_steps

    ring = []
    for i in range(steps):
        vertex = destination(center, radius, i * -360.0 / steps, units)
        ring.append((vertex.lng, vertex.lat))
    ring.append(ring[0])
    return Polygon(ring)


def buffer(
    point_or_line: Union[LatLng, Sequence[LatLng]],
    dist: float,
    units: Units = Units.MILES,
) -> MultiPolygon:
    """
    Area within `dist` of a point or a polyline.

    A polyline is buffered as the union of the convex hulls of consecutive
    vertex circles.
    """
    if isinstance(point_or_line, LatLng):
        return MultiPolygon([circle(point_or_line, dist, units)])

    vertices = list(point_or_line)
    if not vertices:
        raise GeometryError("cannot buffer an empty line")
    if len(vertices) == 1:
        return MultiPolygon([circle(vertices[0], dist, units)])

    circles = [circle(v, dist, units) for v in vertices]
    capsules = [
        unary_union([first, second]).convex_hull
        for first, second in zip(circles, circles[1:])
    ]
    return as_multipolygon(unary_union(capsules))


def within_any(points: Iterable[LatLng], dist: float, units: Units = Units.MILES) -> MultiPolygon:
    """Union of the discs of radius `dist` around every point."""
    discs = [circle(p, dist, units) for p in points]
    if not discs:
        return MultiPolygon()
    return snap(unary_union(discs))


# =============================================================================
# Measurements
# =============================================================================

def bbox(region: BaseGeometry) -> BBox:
    """Bounding box as (min_lat, min_lng, max_lat, max_lng)."""
    if region.is_empty:
        raise GeometryError("an empty region has no bounding box")
    min_lng, min_lat, max_lng, max_lat = region.bounds
    return (min_lat, min_lng, max_lat, max_lng)


def contains_point(region: BaseGeometry, point: LatLng) -> bool:
    """True if `point` lies inside or on the boundary of `region`."""
    if region.is_empty:
        return False
    return region.covers(Point(point.lng, point.lat))


def _ring_area(coords: Sequence[Tuple[float, float]]) -> float:
    pts = np.asarray(coords, dtype=float)[:-1]
    if len(pts) < 3:
        return 0.0
    lng = np.radians(pts[:, 0])
    lat = np.radians(pts[:, 1])
    total = np.sum((np.roll(lng, -1) - np.roll(lng, 1)) * np.sin(lat))
    return abs(float(total)) * EARTH_RADIUS_M ** 2 / 2.0


def area(region: BaseGeometry, units: Units = Units.MILES) -> float:
    """Spherical area of a region in square `units`."""
    square_meters = 0.0
    for polygon in as_multipolygon(region).geoms:
        square_meters += _ring_area(polygon.exterior.coords)
        for hole in polygon.interiors:
            square_meters -= _ring_area(hole.coords)
    return square_meters / METERS_PER_UNIT[Units(units)] ** 2


# =============================================================================
# Equidistance partitions
# =============================================================================

def _unit_vector(p: LatLng) -> np.ndarray:
    lat, lng = math.radians(p.lat), math.radians(p.lng)
    return np.array([math.cos(lat) * math.cos(lng), math.cos(lat) * math.sin(lng), math.sin(lat)])


def frame_around(region: BaseGeometry, margin: float = 0.05) -> Polygon:
    """Rectangle (in degrees) enclosing `region` with a margin."""
    if region.is_empty:
        raise GeometryError("cannot frame an empty region")
    min_lng, min_lat, max_lng, max_lat = region.bounds
    return box(
        max(-180.0, min_lng - margin),
        max(-90.0, min_lat - margin),
        min(180.0, max_lng + margin),
        min(90.0, max_lat + margin),
    )


def _bisector_lines(a: LatLng, b: LatLng, frame: Polygon, samples: int) -> List[LineString]:
    va, vb = _unit_vector(a), _unit_vector(b)
    mid = va + vb
    if np.linalg.norm(mid) < 1e-12:
        raise GeometryError("antipodal points have no usable equidistance line")
    mid = mid / np.linalg.norm(mid)
    normal = (vb - va) / np.linalg.norm(vb - va)
    along = np.cross(normal, mid)

    # Sample far enough along the great circle to cross the whole frame
    corners = [LatLng(lat=y, lng=x) for x, y in list(frame.exterior.coords)[:-1]]
    reach = max(float(np.arccos(np.clip(_unit_vector(c) @ mid, -1.0, 1.0))) for c in corners)
    half_span = min(reach * 1.5 + 0.01, math.pi)

    t = np.linspace(-half_span, half_span, samples)
    pts = np.cos(t)[:, None] * mid + np.sin(t)[:, None] * along
    lat = np.degrees(np.arcsin(np.clip(pts[:, 2], -1.0, 1.0)))
    lng = np.degrees(np.arctan2(pts[:, 1], pts[:, 0]))

    # Break the polyline where it wraps around the antimeridian
    lines: List[LineString] = []
    current = [(lng[0], lat[0])]
    for x, y in zip(lng[1:], lat[1:]):
        if abs(x - current[-1][0]) > 180.0:
            if len(current) > 1:
                lines.append(LineString(current))
            current = []
        current.append((x, y))
    if len(current) > 1:
        lines.append(LineString(current))
    return lines


def closer_region(
    a: LatLng,
    b: LatLng,
    frame: Polygon,
    samples: Optional[int] = None,
) -> MultiPolygon:
    """
    Part of `frame` geodesically closer to `a` than to `b`.

    The equidistance great circle of a and b is sampled across the frame,
    the frame is polygonized against it, and every face is assigned to the
    endpoint its representative point is nearer to.

    Raises:
        GeometryError: If a and b coincide or are antipodal
    """
    if a.lat == b.lat and a.lng == b.lng:
        raise GeometryError("cannot partition around two identical points")
    require_valid(frame, "frame")
    samples = samples or settings.geometry.bisector_samples

    lines = _bisector_lines(a, b, frame, samples)
    faces = polygonize(unary_union([frame.exterior, *lines]))

    va, vb = _unit_vector(a), _unit_vector(b)
    kept = []
    for face in faces:
        rep = face.representative_point()
        if not frame.contains(rep):
            continue
        p = _unit_vector(LatLng(lat=rep.y, lng=rep.x))
        if p @ va > p @ vb:
            kept.append(face)

    if not kept:
        return MultiPolygon()
    return snap(unary_union(kept))


def nearest_cell(site: LatLng, others: Iterable[LatLng], frame: Polygon) -> MultiPolygon:
    """
    Spherical Voronoi cell of `site` against `others`, clipped to `frame`.

    Points sharing the site's exact position are ignored.
    """
    ordered = sorted(
        (o for o in others if (o.lat, o.lng) != (site.lat, site.lng)),
        key=lambda o: distance(site, o, Units.METERS),
    )
    cell: MultiPolygon = as_multipolygon(frame)
    for other in ordered:
        cell = intersect(cell, closer_region(site, other, frame))
        if cell.is_empty:
            break
    return cell
