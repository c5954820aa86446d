from __future__ import annotations

import logging
import socket
import ssl
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from socialflow.errors import PermanentPlatformError, RetryExhaustedError, TransientPlatformError

logger = logging.getLogger(__name__)

TRANSIENT_SNIPPETS = [
    "SSLEOFError",
    "UNEXPECTED_EOF_WHILE_READING",
    "ConnectionResetError",
    "RemoteDisconnected",
    "ReadTimeout",
    "TimeoutError",
    "ConnectionError",
]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget carried by a task descriptor."""

    max_attempts: int = 4
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-based)."""
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))


def is_transient_exc(e: BaseException) -> bool:
    if isinstance(e, TransientPlatformError):
        return True
    if isinstance(e, PermanentPlatformError):
        return False
    msg = repr(e)
    return any(s in msg for s in TRANSIENT_SNIPPETS) or isinstance(
        e, (ssl.SSLError, TimeoutError, ConnectionError, socket.timeout, socket.gaierror)
    )


def retry_call(
    fn: Callable[[int], Any],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
    deadline: Optional[float] = None,
) -> Any:
    """
    Call ``fn(attempt)`` until it succeeds, fails permanently, or the budget runs out.

    Transient failures that outlive the budget are raised as RetryExhaustedError.
    ``deadline`` is a time.monotonic() value; no retry is started past it.
    """
    attempts = max(1, policy.max_attempts)
    for i in range(1, attempts + 1):
        try:
            return fn(i)
        except Exception as e:
            if not is_transient_exc(e):
                raise
            if i == attempts:
                raise RetryExhaustedError(e, i) from e
            delay = policy.delay_for(i)
            if deadline is not None and time.monotonic() + delay >= deadline:
                raise RetryExhaustedError(e, i) from e
            logger.warning(
                "[retry] Transient error (%s). Retrying in %.1fs (%d/%d)...",
                e.__class__.__name__, delay, i, attempts,
            )
            sleep(delay)
    raise AssertionError("unreachable")
