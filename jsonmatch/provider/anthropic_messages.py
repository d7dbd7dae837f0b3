from __future__ import annotations

import json
import logging
import os
import threading
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from jsonmatch.errors import NetworkOrProviderError
from jsonmatch.ratelimit import RateLimiter, resolve_rate_limits

from .base import ChatMessage, CompletionOptions, CompletionResult
from .config import get_provider_capabilities
from .registry import register_adapter
from .telemetry import LLMTelemetry

_LOGGER = logging.getLogger(__name__)

PROVIDER = "anthropic"
_DEFAULT_API_BASE = "https://api.anthropic.com/v1"
_API_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096
_LIMITER_LOCK = threading.Lock()
_ANTHROPIC_RATE_LIMITER: Optional[RateLimiter] = None


def _rate_limiter() -> RateLimiter:
    global _ANTHROPIC_RATE_LIMITER
    with _LIMITER_LOCK:
        if _ANTHROPIC_RATE_LIMITER is None:
            caps = get_provider_capabilities(PROVIDER)
            rps, burst = resolve_rate_limits(PROVIDER, caps.rps if caps else 1.0, caps.burst if caps else 2)
            _ANTHROPIC_RATE_LIMITER = RateLimiter(rate_per_sec=rps, burst=burst)
        return _ANTHROPIC_RATE_LIMITER


def _default_max_tokens() -> int:
    caps = get_provider_capabilities(PROVIDER)
    return caps.max_output_tokens if caps else DEFAULT_MAX_TOKENS


def flatten_messages(messages: Sequence[ChatMessage]) -> List[Dict[str, str]]:
    """Fold system content into the first user message, system text first.

    Later user/assistant turns are kept in order after the merged message.
    """

    system_parts = [m.content for m in messages if m.role == "system"]
    turns = [m for m in messages if m.role != "system"]
    flattened: List[Dict[str, str]] = []
    merged = False
    for message in turns:
        content = message.content
        if message.role == "user" and not merged:
            content = "\n\n".join([*system_parts, content])
            merged = True
        flattened.append({"role": message.role, "content": content})
    if not merged and system_parts:
        flattened.insert(0, {"role": "user", "content": "\n\n".join(system_parts)})
    return flattened


def extract_message_text(payload: Dict[str, Any]) -> Tuple[Optional[str], List[str]]:
    """Return the first content block's text, or None when it is not text-shaped."""

    blocks = payload.get("content") if isinstance(payload, dict) else None
    if not isinstance(blocks, list) or not blocks:
        return None, ["missing_content"]
    first = blocks[0]
    if isinstance(first, dict) and first.get("type") == "text" and isinstance(first.get("text"), str):
        return first["text"], []
    return None, ["non_text_block"]


def _usage_counts(data: Dict[str, Any]) -> tuple[int, int]:
    usage = data.get("usage") or {}
    return int(usage.get("input_tokens") or 0), int(usage.get("output_tokens") or 0)


def _format_http_error(response: Optional[requests.Response]) -> str:
    if response is None:
        return "no response payload"
    detail: Optional[str] = None
    try:
        data = response.json()
        if isinstance(data, dict):
            error_obj = data.get("error")
            if isinstance(error_obj, dict):
                detail = str(error_obj.get("message") or error_obj.get("type") or "")
            if not detail:
                detail = json.dumps(data)[:500]
    except ValueError:
        pass
    if not detail:
        text = (response.text or "").strip()
        detail = text[:500] if text else "no body"
    return detail


def build_payload(
    *,
    messages: Sequence[ChatMessage],
    model: str,
    options: CompletionOptions,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = dict(options.extra)
    if options.temperature is not None:
        payload["temperature"] = options.temperature
    payload["messages"] = flatten_messages(messages)
    payload["model"] = model
    payload["max_tokens"] = options.max_tokens or _default_max_tokens()
    return payload


class AnthropicMessagesAdapter:
    """Messages API adapter; this provider family receives one flattened prompt."""

    provider = PROVIDER

    def __init__(self, *, api_key: str, timeout: float = 60.0, api_base: Optional[str] = None) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self._api_key = api_key
        self._timeout = timeout
        self._api_base = (api_base or os.getenv("ANTHROPIC_API_BASE") or _DEFAULT_API_BASE).rstrip("/")

    def create_completion(
        self,
        *,
        messages: Sequence[ChatMessage],
        model: str,
        options: CompletionOptions,
    ) -> CompletionResult:
        payload = build_payload(messages=messages, model=model, options=options)
        headers = {
            "x-api-key": self._api_key,
            "anthropic-version": _API_VERSION,
            "content-type": "application/json",
        }
        url = f"{self._api_base}/messages"

        _rate_limiter().acquire()
        t0 = time.time()
        try:
            response = requests.post(url, headers=headers, json=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            raise NetworkOrProviderError(f"Anthropic HTTP request failed: {exc}", provider=PROVIDER) from exc

        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else response.status_code
            detail = _format_http_error(exc.response if exc.response is not None else response)
            raise NetworkOrProviderError(
                f"Anthropic request failed (HTTP {status}): {detail}",
                provider=PROVIDER,
                status=status,
            ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            snippet = (response.text or "").strip()[:500]
            raise NetworkOrProviderError(
                f"Anthropic request returned non-JSON payload: {snippet}", provider=PROVIDER
            ) from exc
        latency_ms = int((time.time() - t0) * 1000)

        content, warnings = extract_message_text(data)
        if content is None:
            _LOGGER.warning("anthropic_messages: no text block (id=%s warnings=%s)", data.get("id"), warnings)
        provider_model_id = data.get("model") or model
        tokens_in, tokens_out = _usage_counts(data)
        telemetry = LLMTelemetry(
            provider=PROVIDER,
            logical_model=str(model),
            api_model=str(provider_model_id) if provider_model_id else None,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            latency_ms=latency_ms,
        )
        return CompletionResult(
            content=content,
            provider=PROVIDER,
            model=str(provider_model_id),
            warnings=warnings,
            telemetry=telemetry,
        )


register_adapter(provider=PROVIDER, aliases=("claude", "anthropic:messages"), factory=AnthropicMessagesAdapter)
