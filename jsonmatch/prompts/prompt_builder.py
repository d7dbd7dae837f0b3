from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from typing import Any, Optional, Sequence

__all__ = [
    "PromptParts",
    "PromptTemplateError",
    "JSON_HEADER",
    "TEXT_HEADER",
    "MATCHES_HEADER",
    "build_analysis_prompt",
    "build_update_prompt",
    "build_enhance_prompt",
]

JSON_HEADER = "JSON Structure:"
TEXT_HEADER = "Text to Analyze:"
MATCHES_HEADER = "Matches to apply:"


class PromptTemplateError(RuntimeError):
    """Raised when a requested prompt resource cannot be located."""


@dataclass(frozen=True)
class PromptParts:
    """Container for the system + user prompt pair passed to adapters."""

    system: str
    user: str

    def as_messages(self) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


_PROVIDER_ALIASES = {
    "": "openai",
    "gpt": "openai",
    "openai": "openai",
    "claude": "anthropic",
    "anthropic": "anthropic",
}


@lru_cache(maxsize=None)
def _load_text(relative_path: str) -> str:
    """Read and cache prompt text from the package resources."""

    base = resources.files("jsonmatch.prompts")
    target = base.joinpath(relative_path)
    if not target.is_file():
        raise PromptTemplateError(f"Missing prompt template: {relative_path}")
    return target.read_text(encoding="utf-8").strip()


def _try_load(relative_path: str) -> Optional[str]:
    try:
        return _load_text(relative_path)
    except PromptTemplateError:
        return None


def _normalize_provider(name: Optional[str]) -> str:
    key = (name or "").strip().lower()
    return _PROVIDER_ALIASES.get(key, key or "openai")


def _compose_system_text(category: str, provider: Optional[str]) -> str:
    shared = _try_load(f"{category}/shared_v1.md")
    if not shared:
        raise PromptTemplateError(f"No prompt content found for category '{category}'")
    parts = [shared]
    notes = _try_load(f"{category}/{_normalize_provider(provider)}_v1.md")
    if notes:
        parts.append(notes)
    return "\n\n".join(parts).strip()


def build_analysis_prompt(provider: Optional[str], *, raw_json: str, text: str) -> PromptParts:
    """Construct the property-matching prompt for a schema and a text blob."""

    system = _compose_system_text("analysis", provider)
    user = (
        "Analyze this text against the JSON structure:\n\n"
        f"{JSON_HEADER}\n{raw_json}\n\n"
        f"{TEXT_HEADER}\n{text}\n\n"
        'Remember to return the results in the exact format specified, with the "matches" array '
        "containing all found matches."
    )
    return PromptParts(system=system, user=user)


def build_update_prompt(
    provider: Optional[str],
    *,
    raw_json: str,
    match_data: Sequence[dict[str, Any]],
    min_confidence: int,
) -> PromptParts:
    """Construct the provider-delegated rewrite prompt."""

    system = _compose_system_text("update", provider)
    user = (
        "Update this JSON structure with the following matches:\n\n"
        f"Original JSON:\n{raw_json}\n\n"
        f"{MATCHES_HEADER} (only apply matches with confidence >= {min_confidence}%)\n"
        f"{json.dumps(list(match_data), indent=2, ensure_ascii=False)}\n\n"
        "Return only the updated JSON structure, ensuring all original properties are preserved and "
        "only matched properties are updated. Maintain exact types of values."
    )
    return PromptParts(system=system, user=user)


def build_enhance_prompt(
    provider: Optional[str],
    *,
    raw_json: str,
    match_context: Sequence[dict[str, Any]],
) -> PromptParts:
    """Construct the enrichment prompt."""

    system = _compose_system_text("enhance", provider)
    user = (
        "Enhance this JSON with meaningful, contextual details:\n\n"
        f"Original JSON with applied matches:\n{raw_json}\n\n"
        "Context from matches:\n"
        f"{json.dumps(list(match_context), indent=2, ensure_ascii=False)}\n\n"
        "Return ONLY a valid JSON object with no additional text or explanation."
    )
    return PromptParts(system=system, user=user)
