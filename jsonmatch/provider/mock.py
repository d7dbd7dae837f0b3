from __future__ import annotations

import json
from collections import deque
from typing import Any, Deque, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from jsonmatch.prompts.prompt_builder import JSON_HEADER, TEXT_HEADER

from .base import ChatMessage, CompletionOptions, CompletionResult
from .json_utils import find_matching_brace
from .registry import register_adapter
from .telemetry import LLMTelemetry

PROVIDER = "mock"


def _first_json_object(text: str, *, after: str = "") -> Optional[Any]:
    start = text.find(after) + len(after) if after and after in text else 0
    obj_idx = text.find("{", start)
    if obj_idx == -1:
        return None
    end = find_matching_brace(text, obj_idx)
    if end == -1:
        return None
    try:
        return json.loads(text[obj_idx : end + 1])
    except ValueError:
        return None


def _iter_leaves(value: Any, prefix: str = "") -> Iterator[Tuple[str, Any]]:
    if isinstance(value, dict):
        for key, child in value.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            yield from _iter_leaves(child, path)
    elif prefix:
        yield prefix, value


def _section(text: str, header: str) -> str:
    if header not in text:
        return ""
    body = text.split(header, 1)[1]
    if body.startswith("\n"):
        body = body[1:]
    end = body.find("\n\nRemember")
    return body if end == -1 else body[:end]


def mock_matches(schema: Any, text: str) -> List[Dict[str, Any]]:
    """Exact-occurrence matches for schema leaves whose current value appears in ``text``."""

    matches: List[Dict[str, Any]] = []
    for path, value in _iter_leaves(schema):
        if isinstance(value, bool) or value is None or isinstance(value, (dict, list)):
            continue
        needle = str(value).strip()
        if not needle or value == 0:
            continue
        start = text.find(needle)
        if start == -1:
            continue
        matches.append(
            {
                "property": path,
                "matchedText": needle,
                "position": {"start": start, "end": start + len(needle)},
                "confidence": 95,
                "matchType": "exact",
            }
        )
    return matches


class MockAdapter:
    """Deterministic provider output for tests and offline runs (no network).

    Scripted responses are returned first, in order. Without a script, an
    analysis prompt yields exact-occurrence matches and any other prompt
    echoes the first JSON object of the user message.
    """

    provider = PROVIDER

    def __init__(
        self,
        *,
        api_key: str = "mock",
        timeout: float = 0.0,
        responses: Optional[Iterable[Optional[str]]] = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self._script: Deque[Optional[str]] = deque(responses or ())
        self.calls: List[Dict[str, Any]] = []

    def enqueue(self, *responses: Optional[str]) -> None:
        self._script.extend(responses)

    def _default_reply(self, messages: Sequence[ChatMessage]) -> str:
        user_text = next((m.content for m in messages if m.role == "user"), "")
        if TEXT_HEADER in user_text:
            schema = _first_json_object(user_text, after=JSON_HEADER) or {}
            return json.dumps({"matches": mock_matches(schema, _section(user_text, TEXT_HEADER))})
        echoed = _first_json_object(user_text)
        return json.dumps(echoed if echoed is not None else {})

    def create_completion(
        self,
        *,
        messages: Sequence[ChatMessage],
        model: str,
        options: CompletionOptions,
    ) -> CompletionResult:
        self.calls.append({"messages": list(messages), "model": model, "options": options})
        content = self._script.popleft() if self._script else self._default_reply(messages)
        return CompletionResult(
            content=content,
            provider=PROVIDER,
            model=f"{model}-MOCK",
            warnings=[],
            telemetry=LLMTelemetry(provider=PROVIDER, logical_model=model, api_model=f"{model}-MOCK", latency_ms=5),
        )


register_adapter(provider=PROVIDER, aliases=("offline",), factory=MockAdapter)
