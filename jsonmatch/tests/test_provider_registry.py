from __future__ import annotations

import pytest

from jsonmatch.errors import UnsupportedProviderError
from jsonmatch.provider import registry
from jsonmatch.provider.anthropic_messages import AnthropicMessagesAdapter
from jsonmatch.provider.mock import MockAdapter
from jsonmatch.provider.openai_chat import OpenAIChatAdapter


@pytest.fixture
def scratch_registry(monkeypatch: pytest.MonkeyPatch):
    registry.ensure_adapters_loaded()
    monkeypatch.setattr(registry, "_ADAPTER_REGISTRY", dict(registry._ADAPTER_REGISTRY))
    monkeypatch.setattr(registry, "_ALIASES", dict(registry._ALIASES))
    return registry


def test_builtin_providers_registered():
    providers = registry.list_registered_providers()
    assert {"openai", "anthropic", "mock"}.issubset(providers)


@pytest.mark.parametrize(
    "name,expected",
    [
        ("openai", "openai"),
        ("GPT", "openai"),
        ("openai:chat", "openai"),
        ("claude", "anthropic"),
        (" Anthropic ", "anthropic"),
        ("anthropic:messages", "anthropic"),
        ("offline", "mock"),
    ],
)
def test_aliases_resolve(name: str, expected: str):
    assert registry.resolve_provider(name) == expected


def test_unknown_provider_rejected():
    with pytest.raises(UnsupportedProviderError) as info:
        registry.resolve_provider("gemini")
    assert isinstance(info.value, ValueError)
    assert "gemini" in str(info.value)


def test_factories_map_to_adapters():
    assert registry.get_adapter_factory("openai") is OpenAIChatAdapter
    assert registry.get_adapter_factory("claude") is AnthropicMessagesAdapter
    assert registry.get_adapter_factory("mock") is MockAdapter


def test_register_new_provider(scratch_registry):
    factory = lambda **_: MockAdapter()  # noqa: E731
    scratch_registry.register_adapter(provider="Local", aliases=("llama",), factory=factory)

    assert scratch_registry.resolve_provider("llama") == "local"
    assert scratch_registry.get_adapter_factory("local") is factory


def test_alias_conflicts_rejected(scratch_registry):
    with pytest.raises(ValueError):
        scratch_registry.register_adapter(provider="other", aliases=("claude",), factory=MockAdapter)
    with pytest.raises(ValueError):
        scratch_registry.register_adapter(provider="openai", factory=MockAdapter)
    with pytest.raises(TypeError):
        scratch_registry.register_adapter(provider="broken", factory="not callable")  # type: ignore[arg-type]
