"""
Tentacles Evaluator
===================

"Of all the places within N miles of me, which one are you closest to?"

The candidates are the question's places, ranked by their distance from the
seeker; only places within reach take part. The answers are mutually
exclusive bins, so the reach disc acts as a radius bracket and the chosen
place selects one nearest-place cell inside it:

    location = <id>  -> region ∩ disc(center, radius) ∩ cell(id | in-reach places)
    location = False -> region − disc(center, radius)   (not within reach)
"""

import logging
from typing import List, Tuple

from shapely.geometry import MultiPolygon

from hidezone.errors import GeometryError, SchemaError
from hidezone.exclusions.registry import ExclusionView
from hidezone.geometry.primitives import (
    buffer,
    difference,
    distance,
    frame_around,
    intersect,
    nearest_cell,
)
from hidezone.models.geometry import LatLng
from hidezone.models.questions import Place, TentaclesData, TentaclesQuestion, answer_question


logger = logging.getLogger(__name__)


def ranked_places(data: TentaclesData) -> List[Tuple[Place, float]]:
    """
    Places within reach of the seeker with their distances, nearest first.

    Distances are in the question's unit.
    """
    center = LatLng(lat=data.lat, lng=data.lng)
    ranked = [(place, distance(center, place.point, data.unit)) for place in data.places]
    ranked = [(place, d) for place, d in ranked if d <= data.radius]
    ranked.sort(key=lambda item: (item[1], item[0].id))
    return ranked


class TentaclesEvaluator:
    kind = "tentacles"

    def validate(self, question: TentaclesQuestion, exclusions: ExclusionView) -> None:
        data = question.data

        ids = [place.id for place in data.places]
        if len(ids) != len(set(ids)):
            raise SchemaError("data.places: duplicate place id", fields=["data.places"])

        if isinstance(data.location, str):
            if data.location not in ids:
                raise SchemaError(
                    f"data.location: '{data.location}' is not one of the question's places",
                    fields=["data.location"],
                )
            if data.location not in {place.id for place, _ in ranked_places(data)}:
                raise GeometryError(
                    f"place '{data.location}' is outside the {data.radius} {data.unit.value} reach"
                )

    def apply(
        self,
        question: TentaclesQuestion,
        region: MultiPolygon,
        exclusions: ExclusionView,
    ) -> MultiPolygon:
        data = question.data
        reach = buffer(LatLng(lat=data.lat, lng=data.lng), data.radius, data.unit)

        if data.location is False:
            return difference(region, reach)

        in_reach = [place for place, _ in ranked_places(data)]
        chosen = next(place for place in in_reach if place.id == data.location)
        others = [place.point for place in in_reach if place.id != chosen.id]

        narrowed = intersect(region, reach)
        if narrowed.is_empty:
            return narrowed

        cell = nearest_cell(chosen.point, others, frame_around(narrowed))
        logger.debug(
            f"Tentacles {question.key}: '{chosen.id}' against {len(others)} other place(s)"
        )
        return intersect(narrowed, cell)

    def answer_for(
        self,
        question: TentaclesQuestion,
        hider: LatLng,
        exclusions: ExclusionView,
    ) -> TentaclesQuestion:
        data = question.data
        center = LatLng(lat=data.lat, lng=data.lng)
        in_reach = [place for place, _ in ranked_places(data)]

        if distance(center, hider, data.unit) > data.radius or not in_reach:
            return answer_question(question, False)

        nearest = min(in_reach, key=lambda place: (distance(hider, place.point, data.unit), place.id))
        return answer_question(question, nearest.id)
