"""
Data Models
===========

Pydantic models for hidezone.

This module re-exports all data models for convenient access.

Models:
    Geometry:
        - LatLng, Units: coordinates and distance units
        - FeatureCollection: GeoJSON interchange for every region

    Questions:
        - Question: tagged union of the five question kinds
        - RadiusQuestion, ThermometerQuestion, TentaclesQuestion,
          MatchingQuestion, MeasuringQuestion

    Output:
        - DerivationStatus: outcome of a pass (OK, EMPTY, FAILED, BUSY)
        - DerivationOutput: serialized result of a pass
"""

from hidezone.models.geometry import Feature, FeatureCollection, LatLng, Units
from hidezone.models.questions import (
    MatchingQuestion,
    MeasuringQuestion,
    Question,
    RadiusQuestion,
    TentaclesQuestion,
    ThermometerQuestion,
)
from hidezone.models.output import DerivationError, DerivationOutput
from hidezone.models.reason_codes import BusyPolicy, DerivationStatus

__all__ = [
    # Geometry
    "Feature",
    "FeatureCollection",
    "LatLng",
    "Units",
    # Questions
    "Question",
    "RadiusQuestion",
    "ThermometerQuestion",
    "TentaclesQuestion",
    "MatchingQuestion",
    "MeasuringQuestion",
    # Output
    "BusyPolicy",
    "DerivationError",
    "DerivationStatus",
    "DerivationOutput",
]
