from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

_LOGGER = logging.getLogger(__name__)
_CAP_LOCK = threading.Lock()
_MAX_CAPABILITY_BYTES = 64 * 1024

PROVIDER_CAPABILITIES_ENV = "JSONMATCH_PROVIDER_CAPABILITIES_PATH"


class ProviderCapabilities(BaseModel):
    provider: str
    default_model: str
    api_model_map: Dict[str, str]
    supports_json_mode: bool
    supports_system_role: bool
    max_output_tokens: int = Field(gt=0)
    default_temperature: float = 0.0
    rps: float = Field(default=2.0, gt=0)
    burst: int = Field(default=2, gt=0)
    allow_unlisted_models: bool = False

    @model_validator(mode="after")
    def _ensure_default_model(self) -> "ProviderCapabilities":
        if self.default_model not in self.api_model_map:
            raise ValueError(
                f"default_model '{self.default_model}' missing from api_model_map for provider '{self.provider}'"
            )
        return self

    def resolve_api_model(self, logical_model: str) -> Optional[str]:
        """Map a logical model name to the API id, or None when the model is unknown."""

        key = (logical_model or "").strip()
        if not key:
            return None
        if key in self.api_model_map:
            return self.api_model_map[key]
        if key in self.api_model_map.values():
            return key
        if self.allow_unlisted_models:
            return key
        return None


PROVIDERS: Dict[str, ProviderCapabilities] = {}
_CAPABILITIES_CACHE: Dict[str, ProviderCapabilities] | None = None


def _load_yaml_payload(path: Path, *, max_bytes: int) -> Any:
    size = path.stat().st_size if path.exists() else 0
    if size > max_bytes:
        raise ValueError(f"{path} exceeds {max_bytes} byte limit")
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle)


def _list_yaml_files(directory: Path) -> list[Path]:
    seen: dict[Path, Path] = {}
    for pattern in ("*.yaml", "*.yml"):
        for path in directory.glob(pattern):
            if path.is_file():
                seen.setdefault(path.resolve(), path)
    return sorted(seen.values(), key=lambda p: p.name)


def _resolve_capability_paths() -> list[Path]:
    override = os.getenv(PROVIDER_CAPABILITIES_ENV)
    if override:
        p = Path(override)
        if p.is_dir():
            return _list_yaml_files(p)
        return [p] if p.is_file() else []
    return _list_yaml_files(Path(__file__).resolve().parent)


def load_provider_capabilities(*, refresh: bool = False) -> Dict[str, ProviderCapabilities]:
    """Return ProviderCapabilities records keyed by provider id."""

    global _CAPABILITIES_CACHE
    with _CAP_LOCK:
        if _CAPABILITIES_CACHE is not None and not refresh:
            return _CAPABILITIES_CACHE

        records: Dict[str, ProviderCapabilities] = {}
        errors: list[str] = []

        for path in _resolve_capability_paths():
            try:
                raw = _load_yaml_payload(path, max_bytes=_MAX_CAPABILITY_BYTES) or {}
            except FileNotFoundError:
                continue
            except Exception as exc:
                errors.append(f"{path}: {exc}")
                continue

            if not isinstance(raw, dict) or not raw:
                errors.append(f"{path}: empty or invalid capability payload")
                continue

            try:
                caps = ProviderCapabilities.model_validate(raw)
            except ValidationError as exc:
                raise ValueError(f"Invalid provider capability file {path}: {exc}") from exc

            records[caps.provider] = caps

        if not records:
            details = f" ({'; '.join(errors)})" if errors else ""
            raise RuntimeError(
                "Provider capability files not found or empty. "
                "Add config_*.yaml under jsonmatch/provider or set "
                f"{PROVIDER_CAPABILITIES_ENV} to a YAML file/directory{details}."
            )
        for message in errors:
            _LOGGER.warning("Skipped provider capability file %s", message)

        PROVIDERS.clear()
        PROVIDERS.update(records)
        _CAPABILITIES_CACHE = records
        return _CAPABILITIES_CACHE


def get_provider_capabilities(provider: str) -> Optional[ProviderCapabilities]:
    return load_provider_capabilities().get(provider)


def reset_provider_capabilities_cache() -> None:
    """Testing helper to clear the cached capability records."""

    global _CAPABILITIES_CACHE
    _CAPABILITIES_CACHE = None


__all__ = [
    "PROVIDER_CAPABILITIES_ENV",
    "ProviderCapabilities",
    "get_provider_capabilities",
    "load_provider_capabilities",
    "reset_provider_capabilities_cache",
]
