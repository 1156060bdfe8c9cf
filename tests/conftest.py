"""
Test Configuration
==================

Pytest fixtures and test configuration for hidezone.

The shared scene is a 10 x 10 mile square centred on (38.9, -77.03) with
four metro stations inside it, one per quadrant, and an airport outside.
"""

import pytest
from shapely.geometry import MultiPolygon, box

from hidezone.boundary.cache import ResultCache
from hidezone.engine import GameSnapshot, RegionEngine
from hidezone.exclusions.registry import ExclusionRegistry, PointOfInterest
from hidezone.geometry.primitives import destination
from hidezone.models.geometry import LatLng, Units
from hidezone.models.questions import parse_question


CENTER = LatLng(lat=38.9, lng=-77.03)


def square_around(center: LatLng, half_side: float) -> MultiPolygon:
    north = destination(center, half_side, 0.0, Units.MILES)
    south = destination(center, half_side, 180.0, Units.MILES)
    east = destination(center, half_side, 90.0, Units.MILES)
    west = destination(center, half_side, 270.0, Units.MILES)
    return MultiPolygon([box(west.lng, south.lat, east.lng, north.lat)])


def make_question(key: int, kind: str, finalized: bool = True, **data):
    return parse_question({"key": key, "kind": kind, "finalized": finalized, "data": data})


@pytest.fixture
def center() -> LatLng:
    return CENTER


@pytest.fixture
def square() -> MultiPolygon:
    """10 x 10 mile playable area."""
    return square_around(CENTER, 5.0)


@pytest.fixture
def registry() -> ExclusionRegistry:
    """Four stations inside the square and one airport outside it."""
    return ExclusionRegistry(
        [
            PointOfInterest(id="st_nw", name="North West", category="metro_station", lat=38.93, lng=-77.06),
            PointOfInterest(id="st_ne", name="North East", category="metro_station", lat=38.93, lng=-77.00),
            PointOfInterest(id="st_sw", name="South West", category="metro_station", lat=38.87, lng=-77.06),
            PointOfInterest(id="st_se", name="South East", category="metro_station", lat=38.87, lng=-77.00),
            PointOfInterest(id="ap_far", name="Far Airport", category="airport", lat=39.17, lng=-76.67),
        ],
        region_id="test_region",
    )


@pytest.fixture
def engine() -> RegionEngine:
    return RegionEngine(
        ResultCache(max_entries=32, name="test"),
        outer_frame=[-78.0, 38.0, -76.0, 40.0],
    )


@pytest.fixture
def snapshot_for(square, registry):
    """Factory building a snapshot over the square with the test registry."""

    def build(questions=(), disabled=None, **options) -> GameSnapshot:
        return GameSnapshot.create(square, list(questions), registry.view(disabled), **options)

    return build


@pytest.fixture
def radius_question():
    """3 mile radius around the centre, answered 'within'."""
    return make_question(0, "radius", lat=38.9, lng=-77.03, radius=3, unit="miles", within=True)
