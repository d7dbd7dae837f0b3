"""Canonical Pydantic schemas shared across the matching pipeline."""

from .match_v1 import FormatValidation, MatchPosition, MatchResponseV1, MatchResult, MatchType
from .validation import JsonError, StructureCheck, ValidationResult

__all__ = [
    "FormatValidation",
    "MatchPosition",
    "MatchResponseV1",
    "MatchResult",
    "MatchType",
    "JsonError",
    "StructureCheck",
    "ValidationResult",
]
