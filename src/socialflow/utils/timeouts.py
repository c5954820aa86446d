"""Bounded calls for sync code paths."""
from __future__ import annotations

import threading
import time
from typing import Any, Callable, Optional


class CallTimeoutError(TimeoutError):
    """Raised when a bounded call does not return in time."""

    def __init__(self, timeout: float, label: str = "call"):
        self.timeout = timeout
        super().__init__(f"{label} timed out after {timeout:.1f}s")


def call_with_timeout(
    func: Callable[..., Any],
    timeout_seconds: float,
    *args: Any,
    label: str = "call",
    **kwargs: Any,
) -> Any:
    """
    Run a function in a daemon thread and wait at most ``timeout_seconds``.

    Python threads can't be killed; a timed-out call keeps running in the
    background but its result is discarded.
    """
    result_holder: list[Any] = [None]
    exception_holder: list[Optional[BaseException]] = [None]

    def target() -> None:
        try:
            result_holder[0] = func(*args, **kwargs)
        except BaseException as e:  # re-raised in the caller's thread
            exception_holder[0] = e

    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    thread.join(timeout=max(0.0, timeout_seconds))

    if thread.is_alive():
        raise CallTimeoutError(timeout_seconds, label)

    if exception_holder[0] is not None:
        raise exception_holder[0]

    return result_holder[0]


def remaining(deadline: Optional[float], cap: float) -> float:
    """Seconds left until a monotonic ``deadline``, never more than ``cap``."""
    if deadline is None:
        return cap
    return max(0.0, min(cap, deadline - time.monotonic()))
