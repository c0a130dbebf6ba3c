"""Tests for infrastructure/ — retry and metrics.

Covers:
- retry decorator: backoff, max attempts, exception filtering, final
  exception re-raised unchanged, wait doubling and cap
- metrics: counters and histogram labels, private registry served over
  HTTP, LatencyTimer
"""

from __future__ import annotations

import time
from unittest.mock import patch

import pytest
from prometheus_client import generate_latest

from infrastructure import metrics
from infrastructure.retry import with_retry

# ---------------------------------------------------------------------------
# Retry decorator
# ---------------------------------------------------------------------------


class TestWithRetry:
    def test_succeeds_on_first_attempt(self) -> None:
        call_count = 0

        @with_retry(max_attempts=3, base_seconds=0.0)
        def fn() -> str:
            nonlocal call_count
            call_count += 1
            return "ok"

        assert fn() == "ok"
        assert call_count == 1

    def test_retries_on_failure_then_succeeds(self) -> None:
        call_count = 0

        @with_retry(max_attempts=3, base_seconds=0.0, exceptions=(ValueError,))
        def fn() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ValueError("transient")
            return "ok"

        assert fn() == "ok"
        assert call_count == 3

    def test_reraises_last_exception_after_max_attempts(self) -> None:
        call_count = 0

        @with_retry(max_attempts=3, base_seconds=0.0, exceptions=(ConnectionRefusedError,))
        def fn() -> None:
            nonlocal call_count
            call_count += 1
            raise ConnectionRefusedError(f"attempt {call_count}")

        with pytest.raises(ConnectionRefusedError, match="attempt 3"):
            fn()
        assert call_count == 3

    def test_does_not_retry_unregistered_exception(self) -> None:
        call_count = 0

        @with_retry(max_attempts=3, base_seconds=0.0, exceptions=(ValueError,))
        def fn() -> None:
            nonlocal call_count
            call_count += 1
            raise TypeError("not retried")

        with pytest.raises(TypeError):
            fn()
        assert call_count == 1

    def test_backoff_doubles_and_caps(self) -> None:
        waits: list[float] = []

        @with_retry(
            max_attempts=5,
            base_seconds=1.0,
            max_seconds=3.0,
            jitter=False,
            exceptions=(OSError,),
            sleep=waits.append,
        )
        def fn() -> None:
            raise OSError("down")

        with pytest.raises(OSError):
            fn()
        assert waits == [1.0, 2.0, 3.0, 3.0]

    def test_jitter_stays_within_quarter(self) -> None:
        waits: list[float] = []

        @with_retry(max_attempts=2, base_seconds=1.0, exceptions=(OSError,), sleep=waits.append)
        def fn() -> None:
            raise OSError("down")

        with pytest.raises(OSError):
            fn()
        assert len(waits) == 1
        assert 0.75 <= waits[0] <= 1.25

    def test_single_attempt_never_sleeps(self) -> None:
        waits: list[float] = []

        @with_retry(max_attempts=1, exceptions=(OSError,), sleep=waits.append)
        def fn() -> None:
            raise OSError("down")

        with pytest.raises(OSError):
            fn()
        assert waits == []

    def test_invalid_max_attempts(self) -> None:
        with pytest.raises(ValueError, match="max_attempts"):
            with_retry(max_attempts=0)

    def test_preserves_function_name(self) -> None:
        @with_retry(max_attempts=2, base_seconds=0.0)
        def my_function() -> None:
            pass

        assert my_function.__name__ == "my_function"


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


def _sample(name: str, labels: dict[str, str]) -> float:
    return metrics._REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetrics:
    def test_record_event_increments_labelled_counter(self) -> None:
        labels = {"kind": "control_change", "outcome": "dispatched"}
        before = _sample("lpd8_events_total", labels)

        metrics.record_event(kind="control_change", outcome="dispatched")
        metrics.record_event(kind="control_change", outcome="dispatched")

        assert _sample("lpd8_events_total", labels) == before + 2

    def test_labels_are_independent(self) -> None:
        unmapped = {"kind": "program_change", "outcome": "unmapped"}
        error = {"kind": "program_change", "outcome": "error"}
        before_error = _sample("lpd8_events_total", error)

        metrics.record_event(kind="program_change", outcome="unmapped")

        assert _sample("lpd8_events_total", unmapped) >= 1
        assert _sample("lpd8_events_total", error) == before_error

    def test_record_dispatch_observes_histogram(self) -> None:
        labels = {"action": "SetVolume"}
        count_before = _sample("lpd8_dispatch_seconds_count", labels)
        sum_before = _sample("lpd8_dispatch_seconds_sum", labels)

        metrics.record_dispatch(action="SetVolume", latency_seconds=0.02)

        assert _sample("lpd8_dispatch_seconds_count", labels) == count_before + 1
        assert _sample("lpd8_dispatch_seconds_sum", labels) == pytest.approx(sum_before + 0.02)

    def test_record_scene_refresh(self) -> None:
        ok_before = _sample("lpd8_scene_refresh_total", {"outcome": "ok"})
        error_before = _sample("lpd8_scene_refresh_total", {"outcome": "error"})

        metrics.record_scene_refresh(ok=True)
        metrics.record_scene_refresh(ok=False)
        metrics.record_scene_refresh(ok=False)

        assert _sample("lpd8_scene_refresh_total", {"outcome": "ok"}) == ok_before + 1
        assert _sample("lpd8_scene_refresh_total", {"outcome": "error"}) == error_before + 2

    def test_start_metrics_server_uses_private_registry(self) -> None:
        with patch("infrastructure.metrics.start_http_server") as start:
            metrics.start_metrics_server(9102)

        start.assert_called_once_with(9102, addr="127.0.0.1", registry=metrics._REGISTRY)

    def test_registry_exposes_controller_metrics(self) -> None:
        metrics.record_event(kind="obs_event", outcome="ignored")

        body = generate_latest(metrics._REGISTRY)

        assert b"lpd8_events_total" in body
        assert b'kind="obs_event"' in body
        assert b"python_gc" not in body

    def test_latency_timer(self) -> None:
        with metrics.LatencyTimer() as t:
            time.sleep(0.01)

        assert t.elapsed >= 0.01
        assert t.elapsed < 1.0
