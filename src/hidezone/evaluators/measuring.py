"""
Measuring Evaluator
===================

"Are you closer to a <category> than I am?"

The threshold is the seeker's distance to the nearest enabled POI of the
category, or the question's explicit `distance` when one is set:

    closer  -> region ∩ (within threshold of any enabled POI)
    further -> region − (within threshold of any enabled POI)
"""

from shapely.geometry import MultiPolygon

from hidezone.errors import GeometryError
from hidezone.evaluators.matching import check_category
from hidezone.exclusions.registry import ExclusionView
from hidezone.geometry.primitives import difference, distance, intersect, within_any
from hidezone.models.geometry import LatLng
from hidezone.models.questions import MeasuringQuestion, answer_question


def threshold(question: MeasuringQuestion, exclusions: ExclusionView) -> float:
    """Distance bound in the question's unit."""
    data = question.data
    if data.distance is not None:
        return data.distance

    pois = exclusions.enabled(data.category)
    if not pois:
        raise GeometryError(f"every point of interest in '{data.category}' is disabled")
    return min(distance(question.reference, p.point, data.unit) for p in pois)


class MeasuringEvaluator:
    kind = "measuring"

    def validate(self, question: MeasuringQuestion, exclusions: ExclusionView) -> None:
        check_category(question, exclusions)

    def apply(
        self,
        question: MeasuringQuestion,
        region: MultiPolygon,
        exclusions: ExclusionView,
    ) -> MultiPolygon:
        data = question.data
        pois = exclusions.enabled(data.category)
        if not pois:
            raise GeometryError(f"every point of interest in '{data.category}' is disabled")

        bound = threshold(question, exclusions)
        # A seeker standing on a POI leaves no room to be closer
        zone = within_any((p.point for p in pois), bound, data.unit) if bound > 0 else MultiPolygon()

        if data.hider_closer:
            return intersect(region, zone)
        return difference(region, zone)

    def answer_for(
        self,
        question: MeasuringQuestion,
        hider: LatLng,
        exclusions: ExclusionView,
    ) -> MeasuringQuestion:
        data = question.data
        pois = exclusions.enabled(data.category)
        if not pois:
            raise GeometryError(f"every point of interest in '{data.category}' is disabled")
        hider_distance = min(distance(hider, p.point, data.unit) for p in pois)
        return answer_question(question, hider_distance < threshold(question, exclusions))
