from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from jsonmatch.errors import NotConfiguredError, UnsupportedProviderError

from .base import ChatMessage, CompletionAdapter, CompletionOptions, CompletionResult, coerce_messages
from .config import ProviderCapabilities, get_provider_capabilities
from .registry import get_adapter_factory, resolve_provider

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class _ActiveConfig:
    provider: str
    model: str
    api_model: str
    adapter: CompletionAdapter
    capabilities: ProviderCapabilities


class CompletionService:
    """Uniform completion entry point over the configured provider.

    The service is Unconfigured until ``configure`` succeeds. A failed
    reconfiguration drops it back to Unconfigured rather than keeping stale
    credentials. Each call snapshots the active configuration once, so a
    concurrent ``configure`` never mixes old and new settings in one request.
    """

    def __init__(self, *, timeout: float = 60.0) -> None:
        self._timeout = timeout
        self._active: Optional[_ActiveConfig] = None
        self.last_error: Optional[Exception] = None

    def configure(self, provider: str, model: str, api_key: str) -> bool:
        self._active = None
        self.last_error = None
        if not api_key or not str(api_key).strip():
            return self._reject(ValueError("API key is required"))
        try:
            provider_id = resolve_provider(provider)
        except UnsupportedProviderError as exc:
            return self._reject(exc)
        caps = get_provider_capabilities(provider_id)
        if caps is None:
            return self._reject(UnsupportedProviderError(provider))
        requested_model = (model or "").strip() or caps.default_model
        api_model = caps.resolve_api_model(requested_model)
        if api_model is None:
            return self._reject(ValueError(f"Model '{requested_model}' is not supported by provider '{provider_id}'"))
        try:
            adapter = get_adapter_factory(provider_id)(api_key=str(api_key).strip(), timeout=self._timeout)
        except Exception as exc:
            return self._reject(exc)
        self._active = _ActiveConfig(
            provider=provider_id,
            model=requested_model,
            api_model=api_model,
            adapter=adapter,
            capabilities=caps,
        )
        _LOGGER.info("completion_service_configured", extra={"provider": provider_id, "model": requested_model})
        return True

    def _reject(self, exc: Exception) -> bool:
        self.last_error = exc
        _LOGGER.error("Failed to configure completion service: %s", exc)
        return False

    def reset(self) -> None:
        self._active = None
        self.last_error = None

    def is_configured(self) -> bool:
        active = self._active
        return bool(active and active.adapter and active.provider and active.model)

    @property
    def provider(self) -> Optional[str]:
        active = self._active
        return active.provider if active else None

    @property
    def model(self) -> Optional[str]:
        active = self._active
        return active.model if active else None

    @property
    def adapter(self) -> CompletionAdapter:
        return self._snapshot().adapter

    @property
    def capabilities(self) -> ProviderCapabilities:
        return self._snapshot().capabilities

    def _snapshot(self) -> _ActiveConfig:
        active = self._active
        if active is None:
            raise NotConfiguredError()
        return active

    def create_completion(
        self,
        messages: Sequence[ChatMessage | Dict[str, Any]],
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        """Send one request to the configured provider and normalize its answer."""

        active = self._snapshot()
        request_options = options or CompletionOptions()
        if request_options.json_mode and not active.capabilities.supports_json_mode:
            request_options = request_options.model_copy(update={"json_mode": False})
        return active.adapter.create_completion(
            messages=coerce_messages(messages),
            model=active.api_model,
            options=request_options,
        )


__all__ = ["CompletionService"]
