"""Exponential backoff retry for connection setup.

OBS may still be starting when the controller launches, so opening the
websocket is retried a few times before giving up.  Only transport errors are
retried; an authentication failure or a protocol error is raised at once.

Usage::

    from infrastructure.retry import with_retry

    @with_retry(max_attempts=3, base_seconds=1.0, exceptions=(OSError,))
    def open_socket(url: str) -> WebSocket:
        ...
"""

from __future__ import annotations

import functools
import logging
import random
import time
from collections.abc import Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# Default exceptions that trigger a retry (transient failures)
_DEFAULT_RETRYABLE: tuple[type[Exception], ...] = (
    OSError,
    TimeoutError,
)


def with_retry(
    *,
    max_attempts: int = 3,
    base_seconds: float = 1.0,
    max_seconds: float = 10.0,
    jitter: bool = True,
    exceptions: tuple[type[Exception], ...] = _DEFAULT_RETRYABLE,
    sleep: Callable[[float], None] | None = None,
) -> Callable[[F], F]:
    """Decorator factory for exponential backoff retry.

    Args:
        max_attempts: Total attempts including the first try (default: 3).
        base_seconds: Wait before the second attempt; doubles afterwards.
        max_seconds: Maximum wait time cap in seconds (default: 10.0).
        jitter: Add random jitter ±25% (default: True).
        exceptions: Exception types that trigger a retry.  Anything else
            propagates immediately.
        sleep: Sleep function (default: ``time.sleep``).

    Returns:
        Decorator that wraps the function with retry logic.  After the last
        failed attempt the final exception is re-raised unchanged.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as exc:
                    if attempt == max_attempts:
                        raise
                    wait = min(base_seconds * (2 ** (attempt - 1)), max_seconds)
                    if jitter:
                        wait *= 1 + random.uniform(-0.25, 0.25)  # noqa: S311
                    logger.warning(
                        "retry: %s attempt %d/%d failed (%s), retrying in %.2fs",
                        func.__name__,
                        attempt,
                        max_attempts,
                        exc,
                        wait,
                    )
                    (sleep or time.sleep)(wait)
            raise AssertionError("unreachable")

        return wrapper  # type: ignore[return-value]

    return decorator
