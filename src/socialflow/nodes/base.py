"""
Node executor contract.

Every node type has exactly one executor. ``execute`` receives the
resolved inputs (port name -> ContentValue), the node's validated
configuration and an execution context, and returns a NodeOutcome or
raises a NodeExecutionError. The coordinator turns both into NodeResults.

SYNC SAFE: executors are synchronous and run in the coordinator's pool.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from socialflow.collaborators import ConnectionLookup, ContentGenerator
from socialflow.config import Settings
from socialflow.content import ContentValue
from socialflow.errors import MalformedInputError, NodeTimeoutError
from socialflow.graph.node_types import NodeConfig, NodeType
from socialflow.jobs import TriggerPayload
from socialflow.platforms import Publisher

from .cache import FallbackCache


@dataclass
class NodeServices:
    """Collaborators available to executors."""

    generator: ContentGenerator
    connections: ConnectionLookup
    publisher: Publisher
    fallback_cache: FallbackCache


@dataclass
class NodeContext:
    """Per-node execution context."""

    execution_id: str
    workflow_id: str
    node_id: str
    node_type: NodeType
    deadline: float
    settings: Settings
    services: NodeServices
    trigger: Optional[TriggerPayload] = None
    clock: Callable[[], float] = time.monotonic

    @property
    def dedupe_key(self) -> str:
        """Key for external effects of this node in this execution."""
        return f"{self.execution_id}:{self.node_id}"

    def remaining(self, cap: Optional[float] = None) -> float:
        """Seconds left before the node deadline, optionally capped."""
        left = self.deadline - self.clock()
        if cap is not None:
            left = min(left, cap)
        return max(0.0, left)

    def check_deadline(self) -> None:
        if self.clock() >= self.deadline:
            raise NodeTimeoutError(f"Node {self.node_id} exceeded its deadline")


@dataclass
class NodeOutcome:
    """
    Result of a node that did not fail.

    ``skipped`` marks a node that chose not to produce output (generator
    fallback policy ``skip``); its downstream nodes are skipped as well.
    """

    outputs: Dict[str, ContentValue] = field(default_factory=dict)
    degraded: bool = False
    fallback: Optional[str] = None
    skipped: bool = False
    skip_reason: Optional[str] = None
    attempts: int = 1
    detail: Dict[str, Any] = field(default_factory=dict)


class NodeExecutor(ABC):
    """Base class for node executors."""

    node_type: NodeType

    @abstractmethod
    def execute(
        self,
        inputs: Dict[str, ContentValue],
        config: NodeConfig,
        context: NodeContext,
    ) -> NodeOutcome:
        """Run the node."""

    @staticmethod
    def require_input(inputs: Dict[str, ContentValue], port: str) -> ContentValue:
        value = inputs.get(port)
        if value is None:
            raise MalformedInputError(f"Missing input '{port}'")
        return value


__all__ = ["NodeServices", "NodeContext", "NodeOutcome", "NodeExecutor"]
