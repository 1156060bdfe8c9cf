"""
Exclusions Module
=================

Point-of-interest registry with a disabled overlay.
"""

from hidezone.exclusions.registry import (
    ExclusionRegistry,
    ExclusionView,
    PointOfInterest,
    empty_view,
)

__all__ = [
    "ExclusionRegistry",
    "ExclusionView",
    "PointOfInterest",
    "empty_view",
]
