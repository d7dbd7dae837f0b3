from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class JsonError(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    line: Optional[int] = None
    column: Optional[int] = None


class ValidationResult(BaseModel):
    """Uniform outcome of any JSON parse/validate step."""

    model_config = ConfigDict(frozen=True)

    is_valid: bool
    error: Optional[JsonError] = None
    formatted: Optional[str] = None
    raw: Optional[str] = None


class StructureCheck(BaseModel):
    """Result of comparing an updated document against the original's shape."""

    model_config = ConfigDict(frozen=True)

    is_valid: bool
    error: Optional[str] = None


__all__ = ["JsonError", "ValidationResult", "StructureCheck"]
