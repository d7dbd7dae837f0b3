from __future__ import annotations

import math
from collections.abc import Iterable
from typing import List


def coerce_string_list(value: object) -> List[str]:
    """Convert model-provided content into a clean list of non-blank strings."""

    if value is None:
        return []
    if isinstance(value, str):
        candidate = value.strip()
        return [candidate] if candidate else []
    if isinstance(value, Iterable):
        cleaned: List[str] = []
        for item in value:
            if item is None:
                continue
            candidate = str(item).strip()
            if candidate:
                cleaned.append(candidate)
        return cleaned
    raise TypeError("Expected a string or iterable of strings")


def coerce_confidence(value: object) -> object:
    """Round float confidences (e.g. 87.5) to the integer scale used downstream."""

    if isinstance(value, bool):
        return value
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError("confidence must be a finite number")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, float):
        return int(round(value))
    return value
