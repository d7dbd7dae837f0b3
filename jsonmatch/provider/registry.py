from __future__ import annotations

from typing import Dict, Iterable, List

from jsonmatch.errors import UnsupportedProviderError

from . import ensure_adapters_loaded
from .base import AdapterFactory

__all__ = [
    "register_adapter",
    "get_adapter_factory",
    "resolve_provider",
    "list_registered_providers",
    "list_registered_aliases",
]

_ADAPTER_REGISTRY: Dict[str, AdapterFactory] = {}
_ALIASES: Dict[str, str] = {}


def _normalize(name: str | None) -> str:
    return (name or "").strip().lower()


def register_adapter(*, provider: str, aliases: Iterable[str] = (), factory: AdapterFactory) -> None:
    """Register an adapter factory under a provider id plus optional aliases.

    Adapter modules call this at import time so a new provider only needs to add a module.
    """

    if not callable(factory):
        raise TypeError("factory must be callable")
    key = _normalize(provider)
    if not key:
        raise ValueError("provider must be a non-empty string")

    existing = _ADAPTER_REGISTRY.get(key)
    if existing is not None and existing is not factory:
        raise ValueError(f"Provider '{key}' already registered to a different adapter")
    _ADAPTER_REGISTRY[key] = factory

    for alias in [key, *(_normalize(a) for a in aliases)]:
        if not alias:
            continue
        bound = _ALIASES.get(alias)
        if bound is not None and bound != key:
            raise ValueError(f"Alias '{alias}' already registered to provider '{bound}'")
        _ALIASES[alias] = key


def resolve_provider(name: str | None) -> str:
    """Return the canonical provider id for a provider name or alias."""

    ensure_adapters_loaded()
    key = _normalize(name)
    try:
        return _ALIASES[key]
    except KeyError as exc:
        raise UnsupportedProviderError(name) from exc


def get_adapter_factory(name: str | None) -> AdapterFactory:
    """Return the adapter factory registered for a provider id or alias."""

    return _ADAPTER_REGISTRY[resolve_provider(name)]


def list_registered_providers() -> List[str]:
    ensure_adapters_loaded()
    return sorted(_ADAPTER_REGISTRY.keys())


def list_registered_aliases() -> List[str]:
    ensure_adapters_loaded()
    return sorted(_ALIASES.keys())
