from __future__ import annotations

import logging
from typing import Optional, Sequence

from jsonmatch.config import RuntimeSettings, load_runtime_settings
from jsonmatch.errors import NotConfiguredError
from jsonmatch.normalize import format_for_display, strip_formatting
from jsonmatch.prompts.prompt_builder import build_enhance_prompt
from jsonmatch.provider.base import CompletionOptions
from jsonmatch.provider.factory import CompletionService
from jsonmatch.reconcile import select_matches, validated_rewrite
from jsonmatch.schemas import MatchResult
from jsonmatch.telemetry import timed

log = logging.getLogger(__name__)


def enhance_json(
    json_text: str,
    matches: Sequence[MatchResult],
    service: CompletionService,
    *,
    settings: Optional[RuntimeSettings] = None,
) -> str:
    """Enrich empty or incomplete fields of ``json_text`` and return the display form.

    Raises InvalidResponseFormatError when the provider answer is not JSON or
    drops/retypes existing properties; callers keep the pre-enhancement
    document in that case.
    """

    if not service.is_configured():
        raise NotConfiguredError()
    settings = settings or load_runtime_settings()
    raw_json = strip_formatting(json_text)
    context = [m.to_wire() for m in select_matches(matches)]
    prompt = build_enhance_prompt(service.provider, raw_json=raw_json, match_context=context)
    options = CompletionOptions(temperature=settings.enhance_temperature, json_mode=True)

    with timed("enhance", {"provider": service.provider, "matches": len(context)}):
        result = service.create_completion(prompt.as_messages(), options)
    enhanced = validated_rewrite(raw_json, result.content, label="enhance")
    log.info("enhance_complete", extra={"provider": service.provider, "chars": len(enhanced)})
    return format_for_display(enhanced)


__all__ = ["enhance_json"]
