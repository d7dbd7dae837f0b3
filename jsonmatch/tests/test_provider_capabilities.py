from __future__ import annotations

from pathlib import Path

import pytest

from jsonmatch.provider.config import (
    PROVIDER_CAPABILITIES_ENV,
    get_provider_capabilities,
    load_provider_capabilities,
)


def test_packaged_capability_files_load():
    caps = load_provider_capabilities()

    assert {"openai", "anthropic", "mock"}.issubset(caps)
    assert caps["openai"].default_model == "gpt-4o-mini"
    assert caps["openai"].supports_json_mode is True
    assert caps["anthropic"].supports_json_mode is False
    assert caps["anthropic"].supports_system_role is False
    assert caps["anthropic"].max_output_tokens == 4096


def test_resolve_api_model():
    openai_caps = get_provider_capabilities("openai")
    mock_caps = get_provider_capabilities("mock")
    assert openai_caps is not None and mock_caps is not None

    assert openai_caps.resolve_api_model("gpt-3.5-turbo-preview") == "gpt-3.5-turbo"
    assert openai_caps.resolve_api_model("gpt-4") == "gpt-4"
    assert openai_caps.resolve_api_model("claude-2.1") is None
    assert openai_caps.resolve_api_model("  ") is None
    assert mock_caps.resolve_api_model("mock-default") == "mock-1"
    assert mock_caps.resolve_api_model("anything") == "anything"


def test_env_override_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    (tmp_path / "config_local.yaml").write_text(
        "provider: local\n"
        "default_model: small\n"
        "api_model_map:\n"
        "  small: small-v1\n"
        "supports_json_mode: false\n"
        "supports_system_role: true\n"
        "max_output_tokens: 512\n",
        encoding="utf-8",
    )
    monkeypatch.setenv(PROVIDER_CAPABILITIES_ENV, str(tmp_path))

    caps = load_provider_capabilities(refresh=True)

    assert list(caps) == ["local"]
    assert caps["local"].resolve_api_model("small") == "small-v1"
    assert caps["local"].rps == 2.0


def test_default_model_must_be_mapped(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    path = tmp_path / "bad.yaml"
    path.write_text(
        "provider: bad\n"
        "default_model: missing\n"
        "api_model_map: {other: other}\n"
        "supports_json_mode: true\n"
        "supports_system_role: true\n"
        "max_output_tokens: 10\n",
        encoding="utf-8",
    )
    monkeypatch.setenv(PROVIDER_CAPABILITIES_ENV, str(path))

    with pytest.raises(ValueError, match="default_model"):
        load_provider_capabilities(refresh=True)


def test_missing_files_raise(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv(PROVIDER_CAPABILITIES_ENV, str(tmp_path / "nothing-here"))
    with pytest.raises(RuntimeError):
        load_provider_capabilities(refresh=True)
