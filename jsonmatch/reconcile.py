from __future__ import annotations

"""Write accepted matches back into a JSON document."""

import copy
import logging
import math
import re
from typing import Any, Iterable, List, Literal, Optional, Sequence, Set

from jsonmatch.analysis import sort_matches
from jsonmatch.config import RuntimeSettings, load_runtime_settings
from jsonmatch.errors import InvalidResponseFormatError, NotConfiguredError
from jsonmatch.normalize import format_for_display, parse_json, strip_formatting, to_display, to_raw
from jsonmatch.prompts.prompt_builder import build_update_prompt
from jsonmatch.provider.base import CompletionOptions
from jsonmatch.provider.factory import CompletionService
from jsonmatch.provider.json_utils import parse_json_text, unwrap_payload
from jsonmatch.provider.utils import truncate_for_log
from jsonmatch.schemas import MatchResult, StructureCheck
from jsonmatch.telemetry import timed

log = logging.getLogger(__name__)

MIN_CONFIDENCE = 30
Strategy = Literal["deterministic", "delegated"]
_MISSING = object()
_INT_RE = re.compile(r"[+-]?[0-9]+\Z")
_FLOAT_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?\Z")


def select_matches(matches: Optional[Iterable[MatchResult]], threshold: int = MIN_CONFIDENCE) -> List[MatchResult]:
    """Matches at or above ``threshold``, highest confidence first (stable)."""

    return sort_matches(m for m in (matches or ()) if m.confidence >= threshold)


def coerce_value(text: str, previous: Any) -> Any:
    """Convert matched text to the type of the value it replaces."""

    value = text.strip()
    if isinstance(previous, bool):
        return value.lower() == "true"
    if isinstance(previous, (int, float)):
        try:
            if _INT_RE.match(value):
                return int(value)
            if _FLOAT_RE.match(value):
                number = float(value)
                if math.isfinite(number):
                    return number
        except ValueError:
            pass
        return previous
    return value


def _index(segment: str, container: list) -> Optional[int]:
    if segment.isascii() and segment.isdigit() and int(segment) < len(container):
        return int(segment)
    return None


def _assign(root: Any, path: Sequence[str], text: str) -> bool:
    node = root
    for segment in path[:-1]:
        if isinstance(node, dict):
            child = node.get(segment, _MISSING)
            if child is _MISSING or child is None:
                child = {}
                node[segment] = child
            node = child
        elif isinstance(node, list):
            idx = _index(segment, node)
            if idx is None:
                return False
            if node[idx] is None:
                node[idx] = {}
            node = node[idx]
        else:
            return False
        if not isinstance(node, (dict, list)):
            return False

    leaf = path[-1]
    if isinstance(node, dict):
        if isinstance(node.get(leaf), (dict, list)):
            return False
        node[leaf] = coerce_value(text, node.get(leaf))
        return True
    if isinstance(node, list):
        idx = _index(leaf, node)
        if idx is None or isinstance(node[idx], (dict, list)):
            return False
        node[idx] = coerce_value(text, node[idx])
        return True
    return False


def apply_matches(document: Any, matches: Iterable[MatchResult]) -> Any:
    """Return a copy of ``document`` with matched leaves set, highest confidence winning.

    ``matches`` must already be filtered and sorted. Intermediate objects are
    created when absent. A path blocked by an existing scalar, or one naming
    an existing object or array, is skipped so no unmatched key is lost.
    """

    updated = copy.deepcopy(document)
    if not isinstance(updated, (dict, list)):
        log.warning("Cannot apply matches to a scalar JSON document")
        return updated
    written: Set[str] = set()
    for match in matches:
        if match.property in written:
            continue
        path = match.path
        if not all(path):
            log.warning("Skipping match with malformed property path %r", match.property)
            continue
        if _assign(updated, path, match.matched_text):
            written.add(match.property)
        else:
            log.warning("Skipping match for %r: path blocked or targets an object/array", match.property)
    return updated


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _structure_error(orig: Any, upd: Any, path: str) -> Optional[str]:
    where = path or "root"
    if orig is None:
        return None
    orig_type, upd_type = _type_name(orig), _type_name(upd)
    if (orig_type == "array") != (upd_type == "array"):
        return f"Array structure mismatch at {where}"
    if orig_type != upd_type:
        return f"Type mismatch at {where}"
    if isinstance(orig, dict):
        for key, child in orig.items():
            if key not in upd:
                return f'Missing property "{key}" at {where}'
            result = _structure_error(child, upd[key], f"{path}.{key}" if path else key)
            if result:
                return result
    elif isinstance(orig, list):
        for idx, child in enumerate(orig):
            if idx >= len(upd):
                return f'Missing property "{idx}" at {where}'
            result = _structure_error(child, upd[idx], f"{path}.{idx}" if path else str(idx))
            if result:
                return result
    return None


def validated_rewrite(raw_json: str, content: Optional[str], *, label: str) -> str:
    """Parse a provider rewrite of ``raw_json`` and reject it unless the structure is preserved."""

    try:
        data, _warnings = parse_json_text(content)
        original = parse_json(raw_json)
        if isinstance(original, dict):
            data = unwrap_payload(data, original.keys())
        rewritten = to_raw(data)
    except (TypeError, ValueError, RecursionError) as exc:
        log.warning("%s: unparseable provider payload raw=%s", label, truncate_for_log(content))
        raise InvalidResponseFormatError(f"Invalid JSON response from provider: {exc}", raw_text=content) from exc
    check = check_structure(raw_json, rewritten)
    if not check.is_valid:
        raise InvalidResponseFormatError(f"Provider rewrite changed the structure: {check.error}", raw_text=content)
    return rewritten


def check_structure(original: str, updated: str) -> StructureCheck:
    """Verify that ``updated`` keeps every key, array slot and value type of ``original``.

    A ``null`` in the original is a placeholder and accepts any value.
    """

    try:
        original_obj = parse_json(strip_formatting(original))
        updated_obj = parse_json(strip_formatting(updated))
    except (TypeError, ValueError, RecursionError) as exc:
        return StructureCheck(is_valid=False, error=str(exc) or "Invalid JSON structure")
    error = _structure_error(original_obj, updated_obj, "")
    if error:
        return StructureCheck(is_valid=False, error=error)
    return StructureCheck(is_valid=True)


def rewrite_with_provider(
    original_json: str,
    matches: Sequence[MatchResult],
    service: CompletionService,
    *,
    settings: Optional[RuntimeSettings] = None,
) -> str:
    """Ask the provider to apply ``matches``; returns raw JSON that passed ``check_structure``.

    Raises InvalidResponseFormatError when the answer is empty, unparseable,
    or drops/retypes original properties.
    """

    if not service.is_configured():
        raise NotConfiguredError()
    settings = settings or load_runtime_settings()
    raw_json = strip_formatting(original_json)
    match_data = [
        {
            "property": m.property,
            "value": m.matched_text.strip(),
            "confidence": m.confidence,
            "matchType": m.match_type,
        }
        for m in matches
    ]
    prompt = build_update_prompt(
        service.provider, raw_json=raw_json, match_data=match_data, min_confidence=MIN_CONFIDENCE
    )
    options = CompletionOptions(temperature=settings.update_temperature, json_mode=True)
    with timed("update_delegated", {"provider": service.provider, "matches": len(match_data)}):
        result = service.create_completion(prompt.as_messages(), options)

    return validated_rewrite(raw_json, result.content, label="update")


def update_json(
    original_json: str,
    matches: Optional[Sequence[MatchResult]],
    *,
    service: Optional[CompletionService] = None,
    strategy: Strategy = "deterministic",
    settings: Optional[RuntimeSettings] = None,
) -> str:
    """Apply matches to ``original_json`` and return the display form.

    With no match at or above MIN_CONFIDENCE the original is returned
    reformatted. The delegated strategy falls back to the original when the
    provider's rewrite is invalid; transport errors still propagate.
    """

    valid = select_matches(matches)
    if not valid:
        return format_for_display(original_json)

    if strategy == "delegated":
        if service is None:
            raise NotConfiguredError("A configured completion service is required for delegated updates.")
        try:
            return format_for_display(rewrite_with_provider(original_json, valid, service, settings=settings))
        except InvalidResponseFormatError as exc:
            log.error("Invalid JSON response from provider, keeping original: %s", exc)
            return format_for_display(original_json)
    if strategy != "deterministic":
        raise ValueError(f"Unknown update strategy '{strategy}'")

    try:
        document = parse_json(strip_formatting(original_json))
    except (TypeError, ValueError, RecursionError) as exc:
        log.error("Original JSON is not parseable, returning it unchanged: %s", exc)
        return original_json
    with timed("update_deterministic", {"matches": len(valid)}):
        updated = apply_matches(document, valid)
    return to_display(updated)


__all__ = [
    "MIN_CONFIDENCE",
    "apply_matches",
    "check_structure",
    "coerce_value",
    "rewrite_with_provider",
    "select_matches",
    "update_json",
    "validated_rewrite",
]
