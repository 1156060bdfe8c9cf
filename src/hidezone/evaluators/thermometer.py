"""
Thermometer Evaluator
=====================

"I moved from A to B. Am I warmer or colder?"

The region is cut along the geodesic equidistance line of A and B:
    warmer -> keep the side closer to B
    colder -> keep the side closer to A

Points exactly on the line belong to neither answer; they have zero area.
"""

from shapely.geometry import MultiPolygon

from hidezone.errors import GeometryError
from hidezone.exclusions.registry import ExclusionView
from hidezone.geometry.primitives import closer_region, distance, frame_around, intersect
from hidezone.models.geometry import LatLng, Units
from hidezone.models.questions import ThermometerQuestion, answer_question


class ThermometerEvaluator:
    kind = "thermometer"

    def validate(self, question: ThermometerQuestion, exclusions: ExclusionView) -> None:
        data = question.data
        if (data.lat_a, data.lng_a) == (data.lat_b, data.lng_b):
            raise GeometryError("thermometer start and end points coincide")

    def apply(
        self,
        question: ThermometerQuestion,
        region: MultiPolygon,
        exclusions: ExclusionView,
    ) -> MultiPolygon:
        data = question.data
        if data.warmer:
            target, other = data.point_b, data.point_a
        else:
            target, other = data.point_a, data.point_b

        half = closer_region(target, other, frame_around(region))
        return intersect(region, half)

    def answer_for(
        self,
        question: ThermometerQuestion,
        hider: LatLng,
        exclusions: ExclusionView,
    ) -> ThermometerQuestion:
        data = question.data
        warmer = distance(hider, data.point_b, Units.METERS) < distance(hider, data.point_a, Units.METERS)
        return answer_question(question, warmer)
