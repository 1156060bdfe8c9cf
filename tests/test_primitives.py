"""
Geometry Primitive Tests
========================

Overlays, buffers, distances and equidistance partitions on the sphere.
"""

import math

import pytest
from shapely.geometry import LineString, MultiPolygon, Polygon, box

from hidezone.errors import GeometryError
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
from hidezone.models.geometry import LatLng, Units


BOWTIE = Polygon([(0, 0), (1, 1), (1, 0), (0, 1), (0, 0)])


class TestOverlays:
    """Boolean operations and their empty-operand identities."""

    def test_intersect_with_empty_is_empty(self, square):
        assert intersect(square, MultiPolygon()).is_empty
        assert intersect(MultiPolygon(), square).is_empty

    def test_difference_with_empty_is_identity(self, square):
        result = difference(square, MultiPolygon())
        assert result.equals(square)

    def test_union_with_empty_is_identity(self, square):
        assert union(square, MultiPolygon()).equals(square)
        assert union(MultiPolygon(), square).equals(square)

    def test_results_are_multipolygons(self):
        a = box(0, 0, 2, 2)
        b = box(1, 1, 3, 3)
        assert isinstance(intersect(a, b), MultiPolygon)
        assert isinstance(difference(a, b), MultiPolygon)
        assert isinstance(union(a, b), MultiPolygon)

    def test_touching_boxes_intersect_to_empty_region(self):
        # Shared edge has no area
        assert intersect(box(0, 0, 1, 1), box(1, 0, 2, 1)).is_empty

    def test_invalid_operand_rejected(self):
        with pytest.raises(GeometryError, match="invalid"):
            intersect(BOWTIE, box(0, 0, 1, 1))

    def test_as_multipolygon_drops_lines(self):
        assert as_multipolygon(LineString([(0, 0), (1, 1)])).is_empty
        assert isinstance(as_multipolygon(box(0, 0, 1, 1)), MultiPolygon)


class TestDistances:
    """Haversine distance and spherical destination."""

    def test_one_degree_of_latitude(self):
        meters = distance(LatLng(lat=0, lng=0), LatLng(lat=1, lng=0), Units.METERS)
        assert meters == pytest.approx(111195.08, abs=1.0)

    def test_distance_to_self_is_zero(self, center):
        assert distance(center, center) == 0.0

    def test_unit_conversion(self, center):
        other = LatLng(lat=38.95, lng=-77.0)
        miles = distance(center, other, Units.MILES)
        km = distance(center, other, Units.KILOMETERS)
        assert km == pytest.approx(miles * 1.609344)

    def test_destination_travels_requested_distance(self, center):
        end = destination(center, 3.0, 45.0, Units.MILES)
        assert distance(center, end, Units.MILES) == pytest.approx(3.0, rel=1e-9)

    def test_destination_due_east_keeps_latitude_close(self, center):
        end = destination(center, 5.0, 90.0, Units.MILES)
        assert end.lng > center.lng
        assert end.lat == pytest.approx(center.lat, abs=0.01)


class TestBuffers:
    """Geodesic circles and capsules."""

    def test_circle_area(self, center):
        disc = buffer(center, 3.0, Units.MILES)
        assert area(disc, Units.MILES) == pytest.approx(math.pi * 9, rel=0.01)

    def test_circle_vertices_on_radius(self, center):
        ring = circle(center, 2.0, Units.KILOMETERS, steps=16).exterior.coords
        for lng, lat in ring:
            assert distance(center, LatLng(lat=lat, lng=lng), Units.KILOMETERS) == pytest.approx(2.0)

    def test_non_positive_radius_rejected(self, center):
        with pytest.raises(GeometryError):
            circle(center, 0, Units.MILES)

    def test_line_buffer_covers_segment(self, center):
        end = destination(center, 4.0, 90.0, Units.MILES)
        capsule = buffer([center, end], 1.0, Units.MILES)
        midpoint = destination(center, 2.0, 90.0, Units.MILES)
        assert contains_point(capsule, midpoint)
        assert area(capsule) > area(buffer(center, 1.0, Units.MILES))

    def test_within_any_of_nothing_is_empty(self):
        assert within_any([], 1.0).is_empty


class TestMeasurements:
    """Bounding boxes, point tests and areas."""

    def test_bbox_order(self):
        assert bbox(box(-77.1, 38.8, -76.9, 39.0)) == (38.8, -77.1, 39.0, -76.9)

    def test_bbox_of_empty_region(self):
        with pytest.raises(GeometryError):
            bbox(MultiPolygon())

    def test_contains_point(self, square, center):
        assert contains_point(square, center)
        assert not contains_point(square, LatLng(lat=40.0, lng=-77.03))
        assert not contains_point(MultiPolygon(), center)

    def test_square_area(self, square):
        assert area(square, Units.MILES) == pytest.approx(100.0, rel=0.01)


class TestPartitions:
    """Equidistance half-spaces and nearest-point cells."""

    def test_closer_region_splits_frame(self, square):
        a = LatLng(lat=38.9, lng=-77.08)
        b = LatLng(lat=38.9, lng=-76.98)
        frame = frame_around(square)

        near_a = closer_region(a, b, frame)
        near_b = closer_region(b, a, frame)

        assert contains_point(near_a, a)
        assert not contains_point(near_a, b)
        assert contains_point(near_b, b)
        # The two halves tile the frame
        assert near_a.area + near_b.area == pytest.approx(frame.area, rel=1e-6)

    def test_closer_region_of_identical_points(self, square, center):
        with pytest.raises(GeometryError):
            closer_region(center, center, frame_around(square))

    def test_nearest_cell_contains_only_its_site(self, square, registry):
        view = registry.view()
        stations = view.enabled("metro_station")
        site = stations[0]
        others = [p.point for p in stations[1:]]

        cell = nearest_cell(site.point, others, frame_around(square))

        assert contains_point(cell, site.point)
        for other in others:
            assert not contains_point(cell, other)

    def test_nearest_cell_without_competitors_is_frame(self, square, center):
        frame = frame_around(square)
        assert nearest_cell(center, [], frame).area == pytest.approx(frame.area)

    def test_frame_of_empty_region(self):
        with pytest.raises(GeometryError):
            frame_around(MultiPolygon())
