from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict

log = logging.getLogger("jsonmatch.telemetry")


@contextmanager
def timed(stage: str, ctx: Dict[str, Any] | None = None):
    """Context manager that logs elapsed ms for the given pipeline stage."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        payload = {"stage": stage, "ms": elapsed_ms}
        if ctx:
            payload.update(ctx)
        log.info("timing", extra=payload)


def est_tokens(char_count: int) -> int:
    """Rough token estimate using 4 chars/token heuristic."""
    if char_count <= 0:
        return 0
    return max(1, round(char_count / 4))
