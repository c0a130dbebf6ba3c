"""Prometheus metrics for the LPD8 → OBS controller.

Metrics:
    lpd8_events_total             Counter by event kind and outcome
    lpd8_dispatch_seconds         Histogram of OBS request latency per action
    lpd8_scene_refresh_total      Counter of scene cache refreshes by outcome

Usage::

    from infrastructure.metrics import LatencyTimer, record_dispatch, record_event

    with LatencyTimer() as t:
        await dispatcher.dispatch(action, value, snapshot)
    record_dispatch(action="SetScene", latency_seconds=t.elapsed)
"""

from __future__ import annotations

import logging
import time

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    start_http_server,
)

logger = logging.getLogger(__name__)

_REGISTRY = CollectorRegistry()

events_total = Counter(
    "lpd8_events_total",
    "Events handled by the controller loop, by kind and outcome",
    ["kind", "outcome"],
    registry=_REGISTRY,
)

dispatch_seconds = Histogram(
    "lpd8_dispatch_seconds",
    "Time spent executing one action against OBS",
    ["action"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
    registry=_REGISTRY,
)

scene_refresh_total = Counter(
    "lpd8_scene_refresh_total",
    "Scene cache refreshes triggered by OBS scene changes",
    ["outcome"],
    registry=_REGISTRY,
)


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def record_event(*, kind: str, outcome: str) -> None:
    """Record one handled loop event.

    Args:
        kind: "program_change", "control_change" or "obs_event".
        outcome: "dispatched", "unmapped", "unresolved", "error" or "ignored".
    """
    events_total.labels(kind=kind, outcome=outcome).inc()


def record_dispatch(*, action: str, latency_seconds: float) -> None:
    """Record the latency of one dispatched action (by action class name)."""
    dispatch_seconds.labels(action=action).observe(latency_seconds)


def record_scene_refresh(*, ok: bool) -> None:
    scene_refresh_total.labels(outcome="ok" if ok else "error").inc()


def start_metrics_server(port: int, addr: str = "127.0.0.1") -> None:
    """Serve ``/metrics`` on ``addr:port`` from a background thread."""
    start_http_server(port, addr=addr, registry=_REGISTRY)
    logger.info("Prometheus metrics available on http://%s:%d/metrics", addr, port)


class LatencyTimer:
    """Context manager for measuring latency.

    Usage::

        with LatencyTimer() as t:
            do_work()
        record_dispatch(action="SetVolume", latency_seconds=t.elapsed)
    """

    def __init__(self) -> None:
        """Initialize timer."""
        self._start: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> LatencyTimer:
        """Start timing."""
        self._start = time.perf_counter()
        return self

    def __exit__(self, *_: object) -> None:
        """Stop timing and record elapsed."""
        self.elapsed = time.perf_counter() - self._start
