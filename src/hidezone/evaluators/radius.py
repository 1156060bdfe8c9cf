"""
Radius Evaluator
================

"Are you within N miles of me?"

    within  -> region ∩ disc(center, radius)
    outside -> region − disc(center, radius)
"""

from shapely.geometry import MultiPolygon

from hidezone.exclusions.registry import ExclusionView
from hidezone.geometry.primitives import buffer, difference, distance, intersect
from hidezone.models.geometry import LatLng
from hidezone.models.questions import RadiusQuestion, answer_question


class RadiusEvaluator:
    kind = "radius"

    def validate(self, question: RadiusQuestion, exclusions: ExclusionView) -> None:
        # Everything is covered by the schema
        return None

    def apply(
        self,
        question: RadiusQuestion,
        region: MultiPolygon,
        exclusions: ExclusionView,
    ) -> MultiPolygon:
        data = question.data
        disc = buffer(LatLng(lat=data.lat, lng=data.lng), data.radius, data.unit)
        if data.within:
            return intersect(region, disc)
        return difference(region, disc)

    def answer_for(
        self,
        question: RadiusQuestion,
        hider: LatLng,
        exclusions: ExclusionView,
    ) -> RadiusQuestion:
        data = question.data
        within = distance(LatLng(lat=data.lat, lng=data.lng), hider, data.unit) <= data.radius
        return answer_question(question, within)
