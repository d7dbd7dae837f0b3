from __future__ import annotations

import logging
import re
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError

from jsonmatch.config import RuntimeSettings, load_runtime_settings
from jsonmatch.errors import InvalidResponseFormatError, NotConfiguredError
from jsonmatch.normalize import strip_formatting
from jsonmatch.prompts.prompt_builder import build_analysis_prompt
from jsonmatch.provider.base import CompletionOptions
from jsonmatch.provider.factory import CompletionService
from jsonmatch.provider.json_utils import extract_and_validate
from jsonmatch.provider.utils import truncate_for_log
from jsonmatch.schemas import MatchResponseV1, MatchResult
from jsonmatch.telemetry import est_tokens, timed

log = logging.getLogger(__name__)


def _repair_position(entry: dict[str, Any], text: str) -> Optional[dict[str, Any]]:
    """Keep a valid span, or relocate ``matchedText`` in ``text`` when the span is off."""

    position = entry.get("position")
    matched = entry.get("matchedText", entry.get("matched_text"))
    start = end = None
    if isinstance(position, dict):
        start, end = position.get("start"), position.get("end")
    in_range = (
        isinstance(start, int)
        and isinstance(end, int)
        and not isinstance(start, bool)
        and not isinstance(end, bool)
        and 0 <= start <= end <= len(text)
    )
    if in_range:
        return entry
    if not isinstance(matched, str) or not matched:
        return None
    found = text.find(matched)
    if found != -1:
        start, end = found, found + len(matched)
    else:
        hit = re.search(re.escape(matched), text, re.IGNORECASE)
        if hit is None:
            return None
        start, end = hit.span()
    repaired = dict(entry)
    repaired["position"] = {"start": start, "end": end}
    return repaired


def parse_matches(raw_text: Optional[str], text: str) -> List[MatchResult]:
    """Parse a provider payload into validated matches.

    Raises InvalidResponseFormatError when the payload is empty, not JSON, or
    lacks a top-level ``matches`` array. Individual malformed entries are
    dropped; spans outside ``text`` are relocated by searching for the matched
    text, and dropped when it cannot be found.
    """

    if raw_text is None or not raw_text.strip():
        raise InvalidResponseFormatError("No response from provider", raw_text=raw_text)
    try:
        envelope, warnings = extract_and_validate(raw_text, MatchResponseV1)
    except ValueError as exc:
        raise InvalidResponseFormatError(
            f'Invalid response format: expected an object with a "matches" array ({exc})', raw_text=raw_text
        ) from exc
    if warnings:
        log.info("analysis payload repaired: %s", ",".join(warnings))

    results: List[MatchResult] = []
    for idx, entry in enumerate(envelope.matches):
        if not isinstance(entry, dict):
            log.warning("Dropping match %d: not an object", idx)
            continue
        repaired = _repair_position(entry, text)
        if repaired is None:
            log.warning("Dropping match %d (%s): span outside analyzed text", idx, entry.get("property"))
            continue
        try:
            results.append(MatchResult.model_validate(repaired))
        except ValidationError as exc:
            log.warning("Dropping match %d (%s): %s", idx, entry.get("property"), exc.errors()[0]["msg"])
    return results


def sort_matches(matches: Iterable[MatchResult]) -> List[MatchResult]:
    """Stable sort by descending confidence."""
    return sorted(matches, key=lambda m: m.confidence, reverse=True)


def analyze_text(
    text: str,
    json_schema: str,
    service: CompletionService,
    *,
    settings: Optional[RuntimeSettings] = None,
) -> List[MatchResult]:
    """Ask the configured provider which spans of ``text`` correspond to properties of ``json_schema``."""

    if not service.is_configured():
        raise NotConfiguredError()
    settings = settings or load_runtime_settings()
    provider = service.provider
    raw_json = strip_formatting(json_schema)
    prompt = build_analysis_prompt(provider, raw_json=raw_json, text=text)
    options = CompletionOptions(temperature=settings.analysis_temperature, json_mode=True)

    ctx = {"provider": provider, "prompt_tokens_est": est_tokens(len(prompt.system) + len(prompt.user))}
    with timed("analyze", ctx):
        result = service.create_completion(prompt.as_messages(), options)
    try:
        matches = parse_matches(result.content, text)
    except InvalidResponseFormatError:
        log.warning("analysis: unparseable provider payload raw=%s", truncate_for_log(result.content))
        raise
    log.info("analysis_complete", extra={"provider": provider, "matches": len(matches)})
    return matches


__all__ = ["analyze_text", "parse_matches", "sort_matches"]
