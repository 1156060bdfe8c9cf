"""
Matching Evaluator
==================

"Is your nearest <category> the same as mine?"

The enabled POIs of the category partition space into nearest-POI cells.
The seeker's own nearest POI picks one cell:

    same      -> region ∩ cell
    different -> region − cell

Disabled POIs take no part in the partition. An answered question whose
category has no enabled POI left cannot be evaluated and fails with
GeometryError.
"""

import logging
from typing import List

from shapely.geometry import MultiPolygon

from hidezone.errors import GeometryError, SchemaError
from hidezone.exclusions.registry import ExclusionView, PointOfInterest
from hidezone.geometry.primitives import (
    difference,
    distance,
    frame_around,
    intersect,
    nearest_cell,
)
from hidezone.models.geometry import LatLng, Units
from hidezone.models.questions import MatchingQuestion, MeasuringQuestion, answer_question


logger = logging.getLogger(__name__)


def check_category(
    question: "MatchingQuestion | MeasuringQuestion",
    exclusions: ExclusionView,
) -> None:
    """Shared validation for questions measured against a POI category."""
    category = question.data.category
    if not exclusions.has_category(category):
        raise SchemaError(
            f"data.category: unknown point-of-interest category '{category}'",
            fields=["data.category"],
        )
    if question.is_answered and not exclusions.enabled(category):
        raise GeometryError(f"every point of interest in '{category}' is disabled")


def nearest_poi(point: LatLng, pois: List[PointOfInterest]) -> PointOfInterest:
    return min(pois, key=lambda p: (distance(point, p.point, Units.METERS), p.id))


class MatchingEvaluator:
    kind = "matching"

    def validate(self, question: MatchingQuestion, exclusions: ExclusionView) -> None:
        check_category(question, exclusions)

    def apply(
        self,
        question: MatchingQuestion,
        region: MultiPolygon,
        exclusions: ExclusionView,
    ) -> MultiPolygon:
        pois = exclusions.enabled(question.data.category)
        if not pois:
            raise GeometryError(f"every point of interest in '{question.data.category}' is disabled")

        seeker_poi = nearest_poi(question.reference, pois)
        others = [p.point for p in pois if p.id != seeker_poi.id]
        cell = nearest_cell(seeker_poi.point, others, frame_around(region))

        logger.debug(
            f"Matching {question.key}: seeker nearest '{seeker_poi.id}', "
            f"{len(others)} competing POI(s)"
        )
        if question.data.same:
            return intersect(region, cell)
        return difference(region, cell)

    def answer_for(
        self,
        question: MatchingQuestion,
        hider: LatLng,
        exclusions: ExclusionView,
    ) -> MatchingQuestion:
        pois = exclusions.enabled(question.data.category)
        if not pois:
            raise GeometryError(f"every point of interest in '{question.data.category}' is disabled")
        same = nearest_poi(hider, pois).id == nearest_poi(question.reference, pois).id
        return answer_question(question, same)
