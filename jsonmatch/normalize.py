from __future__ import annotations

"""Parse and re-serialize JSON text into canonical raw and display forms."""

import json
import re
from dataclasses import dataclass
from typing import Any

from bs4 import BeautifulSoup

from jsonmatch.schemas import JsonError, ValidationResult

_FENCE_RE = re.compile(r"^\s*```[\w+-]*[ \t]*\r?\n?(.*?)\r?\n?```\s*$", re.DOTALL)
_MARKUP_RE = re.compile(r"<[A-Za-z!/][^>]*>")
DISPLAY_INDENT = 2


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Invalid JSON constant: {name}")


def parse_json(text: str) -> Any:
    """Strict JSON parse (no NaN/Infinity) that raises ValueError on failure."""

    return json.loads(text, parse_constant=_reject_constant)


def to_raw(value: Any) -> str:
    """Compact serialization preserving key order as parsed."""

    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)


def to_display(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=DISPLAY_INDENT, allow_nan=False)


def extract_plain_text(markup: str) -> str:
    """Return the visible text content of a markup fragment (e.g. an HTML paste)."""

    soup = BeautifulSoup(markup, "html.parser")
    return soup.get_text()


def strip_code_fence(text: str) -> str:
    """Remove a surrounding fenced code block (```json ... ```) when present."""

    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text


def _has_markup(text: str) -> bool:
    return bool(_MARKUP_RE.search(text))


def validate_and_format(text: str) -> ValidationResult:
    """Validate JSON text, returning raw + formatted projections or a parse error."""

    try:
        parsed = parse_json(text)
    except json.JSONDecodeError as exc:
        message = f"{exc.msg} (line {exc.lineno} column {exc.colno})"
        return ValidationResult(
            is_valid=False,
            error=JsonError(message=message, line=exc.lineno, column=exc.colno),
        )
    except (TypeError, ValueError, RecursionError) as exc:
        return ValidationResult(is_valid=False, error=JsonError(message=str(exc) or "Invalid JSON"))
    return ValidationResult(is_valid=True, raw=to_raw(parsed), formatted=to_display(parsed))


def strip_formatting(text: str) -> str:
    """Return canonical compact JSON for ``text``, or ``text`` unchanged if it cannot be parsed.

    Direct parsing is tried first so JSON whose string values contain ``<`` is
    not run through markup extraction. Otherwise markup is reduced to its text
    content and a surrounding code fence removed before parsing again.
    """

    if not isinstance(text, str):
        return text
    candidates = [text]
    cleaned = text
    if _has_markup(cleaned):
        try:
            cleaned = extract_plain_text(cleaned)
        except Exception:
            cleaned = text
    cleaned = strip_code_fence(cleaned.strip())
    if cleaned != text:
        candidates.append(cleaned)
    for candidate in candidates:
        try:
            return to_raw(parse_json(candidate))
        except (TypeError, ValueError, RecursionError):
            continue
    return text


def format_for_display(text: str) -> str:
    """Pretty-print JSON text for display; unparseable input is returned unchanged."""

    try:
        return to_display(parse_json(strip_formatting(text)))
    except (TypeError, ValueError, RecursionError):
        return text


@dataclass(frozen=True)
class JsonDocument:
    """Parsed JSON value with its raw (compact) and display (indented) projections."""

    value: Any
    raw: str
    display: str

    @classmethod
    def from_value(cls, value: Any) -> "JsonDocument":
        return cls(value=value, raw=to_raw(value), display=to_display(value))

    @classmethod
    def from_text(cls, text: str) -> "JsonDocument":
        """Build a document from possibly-wrapped JSON text; raises ValueError if invalid."""

        result = validate_and_format(strip_formatting(text))
        if not result.is_valid or result.raw is None:
            message = result.error.message if result.error else "Invalid JSON"
            raise ValueError(message)
        return cls.from_value(parse_json(result.raw))


__all__ = [
    "JsonDocument",
    "extract_plain_text",
    "format_for_display",
    "parse_json",
    "strip_code_fence",
    "strip_formatting",
    "to_display",
    "to_raw",
    "validate_and_format",
]
