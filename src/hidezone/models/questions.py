"""
Question Models
===============

This module defines the closed set of question kinds (constraints) a seeker
can ask about the hider's location.

Question record:
    {
        "key": 3,
        "kind": "radius",
        "finalized": true,
        "data": {"lat": 38.9, "lng": -77.03, "radius": 3, "unit": "miles", "within": true}
    }

Kinds and their answer fields:
    - radius:      within        (bool)   hider is within / outside the disc
    - thermometer: warmer        (bool)   hider is closer to B than to A
    - tentacles:   location      (id | False) nearest in-reach place, or none in reach
    - matching:    same          (bool)   same nearest POI as the reference point
    - measuring:   hider_closer  (bool)   hider is closer to a POI than the threshold

An answer of None means "unanswered"; unanswered questions never narrow the
region. Questions are frozen: edits produce a new model via model_copy, and
the key never changes.

Example:
    from hidezone.models.questions import create_question, answer_question

    q = create_question("radius", {"lat": 38.9, "lng": -77.03, "radius": 3}, [])
    q = answer_question(q, True)
"""

import json
from typing import Annotated, Any, ClassVar, Dict, Iterable, List, Literal, Optional, Type, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

from hidezone.errors import SchemaError
from hidezone.models.geometry import LatLng, Units


Latitude = Annotated[float, Field(ge=-90.0, le=90.0)]
Longitude = Annotated[float, Field(ge=-180.0, le=180.0)]


# =============================================================================
# Kind-specific payloads
# =============================================================================

class RadiusData(BaseModel):
    """Is the hider within `radius` of (lat, lng)?"""

    lat: Latitude
    lng: Longitude
    radius: float = Field(default=50.0, gt=0, description="Disc radius")
    unit: Units = Field(default=Units.MILES)
    within: Optional[bool] = Field(default=None, description="Answer")

    model_config = {"frozen": True}


class ThermometerData(BaseModel):
    """
    Seeker moved from A to B; is the hider now warmer (closer to B)?

    If B is omitted it defaults to a point 5 miles due east of A.
    """

    lat_a: Latitude
    lng_a: Longitude
    lat_b: Latitude
    lng_b: Longitude
    warmer: Optional[bool] = Field(default=None, description="Answer: closer to B")

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def default_endpoint_b(cls, values: Any) -> Any:
        if isinstance(values, dict) and "lat_a" in values and "lng_a" in values:
            if values.get("lat_b") is None or values.get("lng_b") is None:
                # Lazy import: primitives imports this package
                from hidezone.geometry.primitives import destination

                try:
                    end = destination(
                        LatLng(lat=values["lat_a"], lng=values["lng_a"]),
                        5.0,
                        90.0,
                        Units.MILES,
                    )
                except (TypeError, ValueError):
                    return values
                values = {**values, "lat_b": end.lat, "lng_b": end.lng}
        return values

    @property
    def point_a(self) -> LatLng:
        return LatLng(lat=self.lat_a, lng=self.lng_a)

    @property
    def point_b(self) -> LatLng:
        return LatLng(lat=self.lat_b, lng=self.lng_b)


class Place(BaseModel):
    """Candidate target of a tentacles question."""

    id: str = Field(..., min_length=1)
    name: str = ""
    lat: Latitude
    lng: Longitude

    model_config = {"frozen": True}

    @property
    def point(self) -> LatLng:
        return LatLng(lat=self.lat, lng=self.lng)


class TentaclesData(BaseModel):
    """
    Of the places within `radius` of (lat, lng), which is the hider closest to?

    `location` is the chosen place id, False when the hider is not within
    reach of any of them, None while unanswered.
    """

    lat: Latitude
    lng: Longitude
    radius: float = Field(default=15.0, gt=0)
    unit: Units = Field(default=Units.MILES)
    places: List[Place] = Field(default_factory=list)
    location: Union[Literal[False], str, None] = Field(default=None)

    model_config = {"frozen": True}


class MatchingData(BaseModel):
    """Is the hider's nearest POI of `category` the same as the seeker's?"""

    lat: Latitude
    lng: Longitude
    category: str = Field(..., min_length=1)
    same: Optional[bool] = Field(default=None)

    model_config = {"frozen": True}


class MeasuringData(BaseModel):
    """
    Is the hider closer to a POI of `category` than the seeker is?

    When `distance` is given it replaces the seeker's own distance as the
    threshold.
    """

    lat: Latitude
    lng: Longitude
    category: str = Field(..., min_length=1)
    distance: Optional[float] = Field(default=None, gt=0)
    unit: Units = Field(default=Units.MILES)
    hider_closer: Optional[bool] = Field(default=None)

    model_config = {"frozen": True}


# =============================================================================
# Tagged union
# =============================================================================

class QuestionBase(BaseModel):
    """Fields shared by every question kind."""

    key: int = Field(..., ge=0, description="Stable identity, assigned at creation")
    finalized: bool = Field(
        default=True,
        description="Draft questions (False) are only previewed in planning mode",
    )

    answer_field: ClassVar[str] = ""

    model_config = {"frozen": True}

    @property
    def answer(self) -> Any:
        return getattr(self.data, self.answer_field)

    @property
    def is_answered(self) -> bool:
        return self.answer is not None

    @property
    def reference(self) -> LatLng:
        """Where the question was asked from (the seeker's marker)."""
        data = self.data
        if isinstance(data, ThermometerData):
            return data.point_b
        return LatLng(lat=data.lat, lng=data.lng)


class RadiusQuestion(QuestionBase):
    kind: Literal["radius"] = "radius"
    data: RadiusData
    answer_field: ClassVar[str] = "within"


class ThermometerQuestion(QuestionBase):
    kind: Literal["thermometer"] = "thermometer"
    data: ThermometerData
    answer_field: ClassVar[str] = "warmer"


class TentaclesQuestion(QuestionBase):
    kind: Literal["tentacles"] = "tentacles"
    data: TentaclesData
    answer_field: ClassVar[str] = "location"


class MatchingQuestion(QuestionBase):
    kind: Literal["matching"] = "matching"
    data: MatchingData
    answer_field: ClassVar[str] = "same"


class MeasuringQuestion(QuestionBase):
    kind: Literal["measuring"] = "measuring"
    data: MeasuringData
    answer_field: ClassVar[str] = "hider_closer"


Question = Annotated[
    Union[
        RadiusQuestion,
        ThermometerQuestion,
        TentaclesQuestion,
        MatchingQuestion,
        MeasuringQuestion,
    ],
    Field(discriminator="kind"),
]

QUESTION_MODELS: Dict[str, Type[QuestionBase]] = {
    "radius": RadiusQuestion,
    "thermometer": ThermometerQuestion,
    "tentacles": TentaclesQuestion,
    "matching": MatchingQuestion,
    "measuring": MeasuringQuestion,
}

QUESTION_KINDS = tuple(QUESTION_MODELS)


# =============================================================================
# Parsing and serialization
# =============================================================================

def parse_question(payload: Any, prefix: str = "") -> Question:
    """
    Validate a single question payload.

    Raises:
        SchemaError: listing every offending field path
    """
    if not isinstance(payload, dict):
        raise SchemaError("question must be an object", fields=[prefix or "$"])

    kind = payload.get("kind")
    if kind not in QUESTION_KINDS:
        field = f"{prefix}.kind" if prefix else "kind"
        raise SchemaError(
            f"{field}: unknown question kind {kind!r}",
            fields=[field],
            question_key=payload.get("key") if isinstance(payload.get("key"), int) else None,
        )

    try:
        return QUESTION_MODELS[kind].model_validate(payload)
    except ValidationError as e:
        error = SchemaError.from_validation_error(e, prefix=prefix)
        if isinstance(payload.get("key"), int):
            error.question_key = payload["key"]
        raise error


def parse_questions(payload: Any) -> List[Question]:
    """Validate a list of question payloads and check key uniqueness."""
    if not isinstance(payload, list):
        raise SchemaError("questions must be a list", fields=["$"])

    questions = [parse_question(item, prefix=str(i)) for i, item in enumerate(payload)]
    check_unique_keys(questions)
    return questions


def check_unique_keys(questions: Iterable[QuestionBase]) -> None:
    seen = set()
    for index, question in enumerate(questions):
        if question.key in seen:
            raise SchemaError(
                f"{index}.key: duplicate question key {question.key}",
                fields=[f"{index}.key"],
                question_key=question.key,
            )
        seen.add(question.key)


def import_questions(text: str) -> List[Question]:
    """Parse questions pasted from the clipboard."""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaError(f"not valid JSON: {e.msg}", fields=["$"])
    return parse_questions(payload)


def export_questions(questions: Iterable[QuestionBase]) -> str:
    """Serialize questions for the clipboard."""
    return json.dumps([q.model_dump(mode="json") for q in questions])


def next_key(existing: Iterable[QuestionBase]) -> int:
    keys = [q.key for q in existing]
    return max(keys) + 1 if keys else 0


def create_question(
    kind: str,
    data: Dict[str, Any],
    existing: Iterable[QuestionBase],
    finalized: bool = True,
) -> Question:
    """Create a question with the next free key."""
    return parse_question({
        "key": next_key(existing),
        "kind": kind,
        "finalized": finalized,
        "data": data,
    })


def answer_question(question: QuestionBase, answer: Any) -> Question:
    """
    Return a copy of `question` with its answer replaced.

    The new payload is re-validated so a wrongly typed answer fails
    with SchemaError instead of slipping into a derivation.
    """
    payload = question.model_dump(mode="json")
    payload["data"][question.answer_field] = answer
    return parse_question(payload)
