"""
Evaluator Protocol
==================

Every question kind has exactly one evaluator. An evaluator turns a
question's parameters and answer into a geometric operation on the current
feasible region.

Contract:
    - validate() checks everything pydantic cannot (registry categories,
      chosen ids, degenerate inputs) and is run for every question, answered
      or not, even after the region has become empty
    - apply() is only called for answered questions and must not widen the
      region it is given
    - answer_for() fills in the answer the hider would give from a known
      location (hider mode)
"""

from typing import Protocol

from shapely.geometry import MultiPolygon

from hidezone.exclusions.registry import ExclusionView
from hidezone.models.geometry import LatLng
from hidezone.models.questions import QuestionBase


class Evaluator(Protocol):
    """Protocol implemented by one evaluator per question kind."""

    kind: str

    def validate(self, question: QuestionBase, exclusions: ExclusionView) -> None:
        """
        Raise SchemaError or GeometryError if the question cannot be evaluated.
        """
        ...

    def apply(
        self,
        question: QuestionBase,
        region: MultiPolygon,
        exclusions: ExclusionView,
    ) -> MultiPolygon:
        """
        Narrow `region` by an answered question.

        Args:
            question: Answered question of this evaluator's kind
            region: Current (non-empty) feasible region
            exclusions: POI table with the disabled overlay

        Returns:
            The narrowed region, possibly empty
        """
        ...

    def answer_for(
        self,
        question: QuestionBase,
        hider: LatLng,
        exclusions: ExclusionView,
    ) -> QuestionBase:
        """Return a copy of `question` answered from the hider's location."""
        ...
