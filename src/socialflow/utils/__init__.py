"""Shared helpers."""
from socialflow.utils.retry import RetryPolicy, is_transient_exc, retry_call
from socialflow.utils.timeouts import CallTimeoutError, call_with_timeout, remaining

__all__ = [
    "RetryPolicy",
    "is_transient_exc",
    "retry_call",
    "CallTimeoutError",
    "call_with_timeout",
    "remaining",
]
