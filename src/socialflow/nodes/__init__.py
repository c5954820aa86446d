"""
Node executors.

This package provides:
- NodeExecutor: the per-type execution contract
- EXECUTORS / dispatch: the exhaustive table over NodeType
- FallbackCache: last-good generator outputs
"""

from .base import NodeContext, NodeExecutor, NodeOutcome, NodeServices
from .cache import FallbackCache, InMemoryFallbackCache, RedisFallbackCache
from .dispatch import EXECUTORS, dispatch, get_executor

__all__ = [
    "NodeContext",
    "NodeExecutor",
    "NodeOutcome",
    "NodeServices",
    "FallbackCache",
    "InMemoryFallbackCache",
    "RedisFallbackCache",
    "EXECUTORS",
    "dispatch",
    "get_executor",
]
