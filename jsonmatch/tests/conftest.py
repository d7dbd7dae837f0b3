from __future__ import annotations

from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from jsonmatch.provider.config import reset_provider_capabilities_cache  # noqa: E402
from jsonmatch.provider.factory import CompletionService  # noqa: E402

_ENV_VARS = (
    "JSONMATCH_PROVIDER",
    "JSONMATCH_MODEL",
    "JSONMATCH_PROVIDER_CAPABILITIES_PATH",
    "JSONMATCH_REQUEST_TIMEOUT",
    "JSONMATCH_ANALYSIS_TEMPERATURE",
    "JSONMATCH_UPDATE_TEMPERATURE",
    "JSONMATCH_ENHANCE_TEMPERATURE",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "ANTHROPIC_API_BASE",
)


@pytest.fixture(autouse=True)
def _isolated_env(request: pytest.FixtureRequest, monkeypatch: pytest.MonkeyPatch):
    """Keep a developer's shell configuration out of the tests (live tests keep their keys)."""
    if request.node.get_closest_marker("live"):
        yield
        return
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_provider_capabilities_cache()
    yield
    reset_provider_capabilities_cache()


@pytest.fixture
def mock_service() -> CompletionService:
    service = CompletionService()
    assert service.configure("mock", "mock-default", "test-key")
    return service
