from __future__ import annotations

import json
import re
from typing import Any, Iterable, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)
_WRAPPER_KEYS = ("response", "answer", "result", "output", "data", "payload", "content", "json")


def find_matching_brace(text: str, start_idx: int) -> int:
    """Index of the ``}`` closing the ``{`` at ``start_idx``, ignoring braces in strings."""

    depth = 0
    in_string = False
    escape = False
    for idx in range(start_idx, len(text)):
        ch = text[idx]
        if in_string:
            if escape:
                escape = False
                continue
            if ch == "\\":
                escape = True
                continue
            if ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
            continue
        if ch == "{":
            depth += 1
            continue
        if ch == "}":
            depth -= 1
            if depth == 0:
                return idx
    return -1


def strip_markdown_json(text: str) -> str:
    """Remove Markdown fences and discard text outside the first JSON block."""

    if text is None:
        raise ValueError("Input text must not be None")
    trimmed = text.strip()
    if not trimmed:
        raise ValueError("Input text must not be empty")

    match = _FENCE_RE.search(trimmed)
    if match:
        trimmed = match.group(1).strip()

    obj_idx = trimmed.find("{")
    arr_idx = trimmed.find("[")
    if obj_idx == -1 and arr_idx == -1:
        raise ValueError("No JSON object/array found in text")
    if obj_idx != -1 and (arr_idx == -1 or obj_idx < arr_idx):
        start_idx, end_char = obj_idx, "}"
    else:
        start_idx, end_char = arr_idx, "]"
    end_idx = trimmed.rfind(end_char)
    if end_idx == -1 or end_idx < start_idx:
        raise ValueError("Malformed JSON payload")
    return trimmed[start_idx : end_idx + 1]


def parse_json_text(raw_text: Optional[str]) -> Tuple[Any, List[str]]:
    """Parse provider text as JSON, repairing fenced or chatty wrappers.

    Raises ValueError when no JSON payload can be recovered.
    """

    if raw_text is None or not raw_text.strip():
        raise ValueError("Provider returned an empty payload")
    warnings: List[str] = []
    sanitized = raw_text.strip()
    try:
        return json.loads(sanitized), warnings
    except json.JSONDecodeError:
        pass
    cleaned = strip_markdown_json(sanitized)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Provider payload is not valid JSON: {exc.msg}") from exc
    warnings.append("json_repaired_simple")
    return data, warnings


def _maybe_parse_json_string(value: Any) -> Any:
    if isinstance(value, str):
        candidate = value.strip()
        if candidate.startswith("{") or candidate.startswith("["):
            try:
                return json.loads(candidate)
            except ValueError:
                return value
    return value


def unwrap_payload(data: Any, expected_keys: Iterable[str] = ()) -> Any:
    """Peel ``{"result": {...}}``-style wrappers until an expected key is visible."""

    expected = set(expected_keys)
    current = data
    for _ in range(8):
        if isinstance(current, str):
            parsed = _maybe_parse_json_string(current)
            if parsed is current:
                break
            current = parsed
            continue
        if not isinstance(current, dict):
            break
        if not expected or expected.intersection(current.keys()):
            break
        next_data: Any = None
        for key in _WRAPPER_KEYS:
            if key not in current:
                continue
            candidate = _maybe_parse_json_string(current[key])
            if isinstance(candidate, (dict, list)):
                next_data = candidate
                break
        if next_data is None:
            break
        current = next_data
    return current


def extract_and_validate(
    raw_text: str,
    schema_model: Type[BaseModel],
) -> Tuple[BaseModel, List[str]]:
    """Parse raw provider output, returning the schema object and warnings."""

    data, warnings = parse_json_text(raw_text)
    data = unwrap_payload(data, schema_model.model_fields.keys())

    try:
        obj = schema_model.model_validate(data, strict=True)
        return obj, warnings
    except ValidationError as strict_exc:
        try:
            obj = schema_model.model_validate(data, strict=False)
        except ValidationError as exc:
            raise exc from strict_exc
        warnings.append("validation_coerced")
        return obj, warnings


__all__ = [
    "extract_and_validate",
    "find_matching_brace",
    "parse_json_text",
    "strip_markdown_json",
    "unwrap_payload",
]
