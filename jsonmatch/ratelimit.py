from __future__ import annotations

import logging
import os
import threading
import time
from typing import Optional

_LOGGER = logging.getLogger(__name__)


class RateLimiter:
    """Token-bucket rate limiter shared across threads."""

    def __init__(self, rate_per_sec: float, burst: int = 1) -> None:
        if rate_per_sec <= 0:
            raise ValueError("rate_per_sec must be positive")
        if burst <= 0:
            raise ValueError("burst must be positive")
        self._rate = rate_per_sec
        self._capacity = float(burst)
        self._tokens = float(burst)
        self._last = time.monotonic()
        self._lock = threading.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def capacity(self) -> int:
        return int(self._capacity)

    def acquire(self, timeout: Optional[float] = None) -> None:
        """Block until a token is available (timeout=None means wait indefinitely)."""
        end_time = None if timeout is None else (time.monotonic() + timeout)
        while True:
            with self._lock:
                now = time.monotonic()
                elapsed = now - self._last
                if elapsed > 0:
                    self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
                    self._last = now
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                wait_time = (1.0 - self._tokens) / self._rate
            if end_time is not None:
                remaining = end_time - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError("RateLimiter acquire timed out")
                wait_time = min(wait_time, remaining)
            time.sleep(wait_time)


def resolve_rate_limits(provider: str, rps: float, burst: int) -> tuple[float, int]:
    """Apply JSONMATCH_<PROVIDER>_RPS / _BURST overrides to capability defaults."""

    prefix = f"JSONMATCH_{provider.upper()}"
    rps_env = os.getenv(f"{prefix}_RPS")
    burst_env = os.getenv(f"{prefix}_BURST")
    if rps_env:
        try:
            rps = float(rps_env)
        except ValueError:
            _LOGGER.warning("Ignoring invalid %s_RPS=%r", prefix, rps_env)
    if burst_env:
        try:
            burst = int(burst_env)
        except ValueError:
            _LOGGER.warning("Ignoring invalid %s_BURST=%r", prefix, burst_env)
    if rps <= 0:
        rps = 1.0
    if burst <= 0:
        burst = 1
    return float(rps), int(burst)


__all__ = ["RateLimiter", "resolve_rate_limits"]
