"""
Duration metrics for supervisor operations.

`timed()` wraps a connect attempt, a ping or a classification run and
emits exactly one METRIC_TIMER event when the block exits, whether it
returned or raised. Durations come from the monotonic clock; the event's
ts_ms is wall-clock.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


@contextmanager
def timed(
    name: str,
    *,
    backend: str | None = None,
    state: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[None]:
    """
    Usage:
        with timed("topology_classification", backend="redis"):
            report = await classify(...)
    """
    start_ns = time.monotonic_ns()
    try:
        yield
    finally:
        log_event({
            "ts_ms": int(time.time() * 1000),
            "event_type": "METRIC_TIMER",
            "metric": name,
            "value_ms": (time.monotonic_ns() - start_ns) // 1_000_000,
            "backend": backend,
            "state": state,
            "details": details or {},
        }, level="DEBUG")
