from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from jsonmatch.errors import UnsupportedProviderError
from jsonmatch.provider.config import get_provider_capabilities
from jsonmatch.provider.registry import resolve_provider
from jsonmatch.provider.utils import infer_provider_from_model

_API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "mock": "JSONMATCH_MOCK_API_KEY",
}


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


@dataclass
class ProviderConfig:
    provider: Optional[str] = None
    model: Optional[str] = None
    api_key: str = field(default="", repr=False)

    def validate(self) -> "ProviderConfig":
        """Normalize provider/model and reject unusable configurations.

        Raises UnsupportedProviderError for unknown providers and ValueError for
        missing credentials or models the provider does not serve.
        """

        provider_id = resolve_provider(self.provider or infer_provider_from_model(self.model) or "openai")
        caps = get_provider_capabilities(provider_id)
        if caps is None:
            raise UnsupportedProviderError(self.provider)
        model = (self.model or "").strip() or caps.default_model
        if caps.resolve_api_model(model) is None:
            raise ValueError(f"Model '{model}' is not supported by provider '{provider_id}'")
        if not (self.api_key or "").strip():
            env_name = _API_KEY_ENV.get(provider_id, "API key")
            raise ValueError(f"API key is required (set {env_name} or pass --api-key)")
        self.provider = provider_id
        self.model = model
        return self


@dataclass(frozen=True)
class RuntimeSettings:
    request_timeout: float = field(default_factory=lambda: _env_float("JSONMATCH_REQUEST_TIMEOUT", 60.0))
    analysis_temperature: float = field(default_factory=lambda: _env_float("JSONMATCH_ANALYSIS_TEMPERATURE", 0.2))
    update_temperature: float = field(default_factory=lambda: _env_float("JSONMATCH_UPDATE_TEMPERATURE", 0.2))
    enhance_temperature: float = field(default_factory=lambda: _env_float("JSONMATCH_ENHANCE_TEMPERATURE", 0.7))


def load_runtime_settings() -> RuntimeSettings:
    """Return runtime settings (timeouts and sampling temperatures)."""
    return RuntimeSettings()


def _read_config_file(path: str | Path) -> Dict[str, Any]:
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text) if p.suffix in {".yaml", ".yml"} else json.loads(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{p} must contain a mapping")
    # Allow the provider block to sit under a top-level "provider" section
    nested = data.get("provider")
    if isinstance(nested, dict):
        data = nested
    return data


def load_provider_config(
    path: str | Path | None = None,
    *,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
) -> ProviderConfig:
    """Load the active provider configuration.

    Precedence: explicit arguments, then the config file, then environment
    (JSONMATCH_PROVIDER, JSONMATCH_MODEL, provider-specific API key variables).
    The result is not validated; call ``validate()`` before use.
    """

    data: Dict[str, Any] = _read_config_file(path) if path else {}
    cfg = ProviderConfig(
        provider=provider or data.get("provider") or os.getenv("JSONMATCH_PROVIDER"),
        model=model or data.get("model") or os.getenv("JSONMATCH_MODEL"),
        api_key=api_key or data.get("api_key") or "",
    )
    if not cfg.provider:
        cfg.provider = infer_provider_from_model(cfg.model)
    if not cfg.api_key:
        try:
            provider_id = resolve_provider(cfg.provider or "openai")
        except UnsupportedProviderError:
            provider_id = None
        env_name = _API_KEY_ENV.get(provider_id or "")
        if env_name:
            cfg.api_key = os.getenv(env_name, "")
    return cfg


__all__ = ["ProviderConfig", "RuntimeSettings", "load_provider_config", "load_runtime_settings"]
