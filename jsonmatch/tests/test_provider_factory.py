from __future__ import annotations

import pytest

from jsonmatch.errors import NotConfiguredError, UnsupportedProviderError
from jsonmatch.provider import anthropic_messages, factory
from jsonmatch.provider.base import ChatMessage, CompletionOptions, CompletionResult
from jsonmatch.provider.factory import CompletionService
from jsonmatch.provider.mock import MockAdapter


def test_unconfigured_service_raises():
    service = CompletionService()

    assert not service.is_configured()
    assert service.provider is None
    with pytest.raises(NotConfiguredError):
        service.create_completion([{"role": "user", "content": "hi"}])


@pytest.mark.parametrize("api_key", ["", "   "])
def test_empty_api_key_rejected(api_key: str):
    service = CompletionService()

    assert service.configure("openai", "gpt-4", api_key) is False
    assert not service.is_configured()
    assert isinstance(service.last_error, ValueError)


def test_unknown_provider_rejected():
    service = CompletionService()

    assert service.configure("gemini", "gemini-pro", "key") is False
    assert isinstance(service.last_error, UnsupportedProviderError)


def test_unknown_model_rejected():
    service = CompletionService()

    assert service.configure("openai", "claude-2.1", "sk-test") is False
    assert "not supported" in str(service.last_error)


def test_configure_mock_and_complete(mock_service: CompletionService):
    assert mock_service.is_configured()
    assert mock_service.provider == "mock"
    assert mock_service.model == "mock-default"
    assert isinstance(mock_service.adapter, MockAdapter)

    mock_service.adapter.enqueue('{"ok": true}')
    result = mock_service.create_completion([{"role": "user", "content": "hi"}])

    assert result.content == '{"ok": true}'
    assert result.model == "mock-1-MOCK"
    sent = mock_service.adapter.calls[0]
    assert sent["model"] == "mock-1"
    assert sent["messages"] == [ChatMessage(role="user", content="hi")]


def test_failed_reconfigure_drops_previous_config(mock_service: CompletionService):
    assert mock_service.configure("openai", "gpt-4", "") is False

    assert not mock_service.is_configured()
    with pytest.raises(NotConfiguredError):
        mock_service.create_completion([{"role": "user", "content": "hi"}])


def test_alias_and_default_model():
    service = CompletionService()

    assert service.configure("claude", "", "sk-ant-test")
    assert service.provider == "anthropic"
    assert service.model == "claude-3-5-sonnet-latest"


def test_json_mode_dropped_for_providers_without_it(monkeypatch: pytest.MonkeyPatch):
    captured = {}

    def fake_completion(self, *, messages, model, options):
        captured.update(model=model, options=options)
        return CompletionResult(content="{}", provider="anthropic", model=model)

    monkeypatch.setattr(anthropic_messages.AnthropicMessagesAdapter, "create_completion", fake_completion)
    service = CompletionService()
    assert service.configure("anthropic", "claude-3-5-haiku-latest", "sk-ant-test")

    service.create_completion(
        [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}],
        CompletionOptions(temperature=0.2, json_mode=True),
    )

    assert captured["model"] == "claude-3-5-haiku-latest"
    assert captured["options"].json_mode is False
    assert captured["options"].temperature == 0.2


def test_adapter_construction_failure_is_reported(monkeypatch: pytest.MonkeyPatch):
    def broken_factory(**_kwargs):
        raise RuntimeError("client init failed")

    monkeypatch.setattr(factory, "get_adapter_factory", lambda name: broken_factory)
    service = CompletionService()

    assert service.configure("openai", "gpt-4o", "sk-test") is False
    assert "client init failed" in str(service.last_error)


def test_reset_clears_configuration(mock_service: CompletionService):
    mock_service.reset()
    assert not mock_service.is_configured()
    assert mock_service.last_error is None
