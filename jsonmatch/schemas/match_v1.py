from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ._helpers import coerce_confidence, coerce_string_list

MatchType = Literal["exact", "semantic", "partial"]


class MatchPosition(BaseModel):
    """Character span into the analyzed text; ``end`` is exclusive."""

    model_config = ConfigDict(frozen=True)

    start: int = Field(ge=0)
    end: int = Field(ge=0)

    @model_validator(mode="after")
    def _ordered(self) -> "MatchPosition":
        if self.end < self.start:
            raise ValueError(f"position end ({self.end}) precedes start ({self.start})")
        return self


class FormatValidation(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    is_valid: bool = Field(alias="isValid")
    message: Optional[str] = None


class MatchResult(BaseModel):
    """A claimed correspondence between a text span and a schema property."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    property: str
    matched_text: str = Field(alias="matchedText")
    position: MatchPosition
    confidence: int = Field(ge=0, le=100)
    match_type: MatchType = Field(alias="matchType")
    suggestions: List[str] = Field(default_factory=list)
    data_type: Optional[str] = Field(default=None, alias="dataType")
    format_validation: Optional[FormatValidation] = Field(default=None, alias="formatValidation")

    @field_validator("property")
    @classmethod
    def _clean_property(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("property must be a non-empty path")
        return cleaned

    @field_validator("confidence", mode="before")
    @classmethod
    def _round_confidence(cls, value: object) -> object:
        return coerce_confidence(value)

    @field_validator("match_type", mode="before")
    @classmethod
    def _lower_match_type(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("suggestions", mode="before")
    @classmethod
    def _clean_suggestions(cls, value: object) -> List[str]:
        return coerce_string_list(value)

    @property
    def path(self) -> List[str]:
        return self.property.split(".")

    def to_wire(self) -> dict:
        """Serialize with the camelCase keys used on the provider wire."""
        payload = self.model_dump(by_alias=True, exclude_none=True)
        if not payload.get("suggestions"):
            payload.pop("suggestions", None)
        return payload


class MatchResponseV1(BaseModel):
    """Top-level envelope the analysis prompt asks providers to return."""

    model_config = ConfigDict(extra="ignore")

    matches: List[Any]


__all__ = ["MatchType", "MatchPosition", "FormatValidation", "MatchResult", "MatchResponseV1"]
