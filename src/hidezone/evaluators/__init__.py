"""
Evaluators Module
=================

One evaluator per question kind, looked up through a closed table.

Components:
    - RadiusEvaluator: disc membership
    - ThermometerEvaluator: warmer/colder half-plane on the sphere
    - TentaclesEvaluator: nearest in-reach place
    - MatchingEvaluator: same nearest POI as the seeker
    - MeasuringEvaluator: closer to a POI than the seeker
"""

from typing import Dict

from hidezone.evaluators.base import Evaluator
from hidezone.evaluators.matching import MatchingEvaluator
from hidezone.evaluators.measuring import MeasuringEvaluator
from hidezone.evaluators.radius import RadiusEvaluator
from hidezone.evaluators.tentacles import TentaclesEvaluator, ranked_places
from hidezone.evaluators.thermometer import ThermometerEvaluator
from hidezone.models.questions import QUESTION_KINDS, QuestionBase


EVALUATORS: Dict[str, Evaluator] = {
    evaluator.kind: evaluator
    for evaluator in (
        RadiusEvaluator(),
        ThermometerEvaluator(),
        TentaclesEvaluator(),
        MatchingEvaluator(),
        MeasuringEvaluator(),
    )
}

def check_table(table: Dict[str, Evaluator]) -> None:
    """Every question kind must have exactly one evaluator."""
    missing = sorted(set(QUESTION_KINDS) - set(table))
    unknown = sorted(set(table) - set(QUESTION_KINDS))
    if missing or unknown:
        raise RuntimeError(
            f"evaluator table out of sync with question kinds: "
            f"missing={missing}, unknown={unknown}"
        )


check_table(EVALUATORS)


def evaluator_for(question: QuestionBase) -> Evaluator:
    return EVALUATORS[question.kind]


__all__ = [
    "EVALUATORS",
    "Evaluator",
    "MatchingEvaluator",
    "MeasuringEvaluator",
    "RadiusEvaluator",
    "TentaclesEvaluator",
    "ThermometerEvaluator",
    "check_table",
    "evaluator_for",
    "ranked_places",
]
