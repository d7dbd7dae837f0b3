from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import openai
from openai import OpenAI

from jsonmatch.errors import NetworkOrProviderError
from jsonmatch.ratelimit import RateLimiter, resolve_rate_limits

from .base import ChatMessage, CompletionOptions, CompletionResult
from .config import get_provider_capabilities
from .registry import register_adapter
from .telemetry import LLMTelemetry

logger = logging.getLogger(__name__)

PROVIDER = "openai"
_LIMITER_LOCK = threading.Lock()
_OPENAI_RATE_LIMITER: Optional[RateLimiter] = None


def _rate_limiter() -> RateLimiter:
    global _OPENAI_RATE_LIMITER
    with _LIMITER_LOCK:
        if _OPENAI_RATE_LIMITER is None:
            caps = get_provider_capabilities(PROVIDER)
            rps, burst = resolve_rate_limits(PROVIDER, caps.rps if caps else 2.0, caps.burst if caps else 2)
            _OPENAI_RATE_LIMITER = RateLimiter(rate_per_sec=rps, burst=burst)
        return _OPENAI_RATE_LIMITER


def _extract_usage(resp: Any) -> tuple[int, int]:
    tokens_in = 0
    tokens_out = 0
    usage = getattr(resp, "usage", None)
    if usage:
        tokens_in = int(getattr(usage, "prompt_tokens", getattr(usage, "input_tokens", 0)) or 0)
        tokens_out = int(getattr(usage, "completion_tokens", getattr(usage, "output_tokens", 0)) or 0)
    return tokens_in, tokens_out


def extract_chat_content(resp: Any) -> Tuple[Optional[str], List[str]]:
    """Return the first choice's message content; never raises on missing fields."""

    choices = getattr(resp, "choices", None) or []
    if not choices:
        return None, ["missing_choices"]
    message = getattr(choices[0], "message", None)
    if message is None:
        return None, ["missing_message"]
    content = getattr(message, "content", None)
    if isinstance(content, str):
        return content, []
    if isinstance(content, list):
        # Newer SDKs may return content parts
        for part in content:
            if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str):
                return part["text"], []
            if getattr(part, "type", None) == "text" and isinstance(getattr(part, "text", None), str):
                return part.text, []
    refusal = getattr(message, "refusal", None)
    if refusal:
        return None, ["refusal"]
    return None, ["empty_content"]


def build_request(
    *,
    messages: Sequence[ChatMessage],
    model: str,
    options: CompletionOptions,
) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = dict(options.extra)
    if options.temperature is not None:
        kwargs["temperature"] = options.temperature
    if options.max_tokens is not None:
        kwargs["max_tokens"] = options.max_tokens
    if options.json_mode and "response_format" not in kwargs:
        kwargs["response_format"] = {"type": "json_object"}
    kwargs["messages"] = [m.model_dump() for m in messages]
    kwargs["model"] = model
    return kwargs


class OpenAIChatAdapter:
    """Chat Completions adapter; requests are passed through in OpenAI's own shape."""

    provider = PROVIDER

    def __init__(self, *, api_key: str, timeout: float = 60.0, client: Any = None) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self._client = client if client is not None else OpenAI(api_key=api_key, timeout=timeout)

    def create_completion(
        self,
        *,
        messages: Sequence[ChatMessage],
        model: str,
        options: CompletionOptions,
    ) -> CompletionResult:
        kwargs = build_request(messages=messages, model=model, options=options)
        _rate_limiter().acquire()
        t0 = time.time()
        try:
            resp = self._client.chat.completions.create(**kwargs)
        except openai.APIStatusError as exc:
            raise NetworkOrProviderError(
                f"OpenAI request failed (HTTP {exc.status_code}): {exc.message}",
                provider=PROVIDER,
                status=exc.status_code,
            ) from exc
        except openai.OpenAIError as exc:
            raise NetworkOrProviderError(f"OpenAI request failed: {exc}", provider=PROVIDER) from exc
        latency_ms = int((time.time() - t0) * 1000)

        content, warnings = extract_chat_content(resp)
        if content is None:
            logger.warning(
                "openai_chat: no text content (resp_id=%s warnings=%s)",
                getattr(resp, "id", None),
                warnings,
            )
        provider_model_id = getattr(resp, "model", None) or model
        tokens_in, tokens_out = _extract_usage(resp)
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


register_adapter(provider=PROVIDER, aliases=("openai:chat", "gpt"), factory=OpenAIChatAdapter)
