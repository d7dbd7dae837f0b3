from __future__ import annotations

import logging

import pytest

from jsonmatch.errors import NetworkOrProviderError, NotConfiguredError, RequestTimeoutError
from jsonmatch.ratelimit import RateLimiter, resolve_rate_limits
from jsonmatch.telemetry import est_tokens, timed


def test_rate_limit_env_overrides(monkeypatch: pytest.MonkeyPatch):
    assert resolve_rate_limits("openai", 2.0, 2) == (2.0, 2)

    monkeypatch.setenv("JSONMATCH_OPENAI_RPS", "0.5")
    monkeypatch.setenv("JSONMATCH_OPENAI_BURST", "oops")
    assert resolve_rate_limits("openai", 2.0, 2) == (0.5, 2)


def test_rate_limiter_validates_and_times_out():
    with pytest.raises(ValueError):
        RateLimiter(rate_per_sec=0)

    limiter = RateLimiter(rate_per_sec=0.001, burst=1)
    assert limiter.capacity == 1
    limiter.acquire()
    with pytest.raises(TimeoutError):
        limiter.acquire(timeout=0.01)


def test_timed_logs_stage(caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.INFO, logger="jsonmatch.telemetry")

    with timed("analyze", {"provider": "mock"}):
        pass

    record = caplog.records[-1]
    assert record.getMessage() == "timing"
    assert record.stage == "analyze"
    assert record.provider == "mock"
    assert record.ms >= 0


def test_est_tokens():
    assert est_tokens(0) == 0
    assert est_tokens(3) == 1
    assert est_tokens(400) == 100


def test_error_taxonomy():
    assert "not properly configured" in str(NotConfiguredError())
    assert NetworkOrProviderError("x", status=503).retryable
    assert NetworkOrProviderError("x", status=429).retryable
    assert not NetworkOrProviderError("x", status=400).retryable
    timeout = RequestTimeoutError("slow")
    assert isinstance(timeout, NetworkOrProviderError)
    assert timeout.retryable
