"""
Error Taxonomy
==============

Exceptions raised by the region engine and its collaborators.

    - SchemaError: malformed question or shape payload (never coerced)
    - GeometryError: degenerate geometry handed to a primitive or evaluator
    - BoundaryUnresolved: place lookup failed or returned nothing usable
    - CacheMiss: internal signal from the cache layer, never user-visible

SchemaError and GeometryError carry the offending question key when one is
known, so callers can point the user at the specific bad constraint.
"""

from typing import List, Optional


class HideZoneError(Exception):
    """Base class for all hidezone errors."""

    code = "HIDEZONE_ERROR"

    def __init__(self, message: str, question_key: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.question_key = question_key

    def for_question(self, key: int) -> "HideZoneError":
        """Attach a question key unless one is already set."""
        if self.question_key is None:
            self.question_key = key
        return self


class SchemaError(HideZoneError):
    """Raised when a question or shape payload fails validation."""

    code = "SCHEMA_ERROR"

    def __init__(
        self,
        message: str,
        fields: Optional[List[str]] = None,
        question_key: Optional[int] = None,
    ) -> None:
        super().__init__(message, question_key)
        self.fields = fields or []

    @classmethod
    def from_validation_error(cls, exc, prefix: str = "") -> "SchemaError":
        """Build from a pydantic ValidationError, listing every offending field."""
        fields = []
        details = []
        for err in exc.errors():
            path = ".".join(str(part) for part in err.get("loc", ()))
            if prefix:
                path = f"{prefix}.{path}" if path else prefix
            fields.append(path)
            details.append(f"{path}: {err.get('msg')}")
        return cls("; ".join(details) or str(exc), fields=fields)


class GeometryError(HideZoneError):
    """Raised for malformed or degenerate geometry."""

    code = "GEOMETRY_ERROR"


class BoundaryUnresolved(HideZoneError):
    """Raised when a place name cannot be turned into a base polygon."""

    code = "BOUNDARY_UNRESOLVED"

    def __init__(self, query: str, reason: str) -> None:
        super().__init__(f"Could not resolve boundary for '{query}': {reason}")
        self.query = query


class CacheMiss(KeyError):
    """Internal signal: the requested cache key is absent."""
