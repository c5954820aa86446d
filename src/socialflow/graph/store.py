"""Versioned graph storage. Stored versions are never modified."""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import redis

from socialflow.errors import StructuralError
from socialflow.observability import get_logger

from .models import WorkflowGraph
from .validator import validate

logger = get_logger(__name__)


class GraphStore(ABC):
    """Immutable, versioned storage of workflow graphs."""

    def save(self, graph: WorkflowGraph) -> WorkflowGraph:
        """
        Validate and store ``graph`` as the next version of its workflow.

        Returns:
            The stored graph carrying its assigned version

        Raises:
            StructuralError: the graph is invalid; nothing is stored
        """
        result = validate(graph)
        if not result.ok:
            raise StructuralError(result.errors)
        stored = self._append(graph)
        logger.info(
            "Graph version stored",
            extra={"workflow_id": stored.workflow_id, "version": stored.version},
        )
        return stored

    @abstractmethod
    def _append(self, graph: WorkflowGraph) -> WorkflowGraph:
        """Assign the next version number and persist."""

    @abstractmethod
    def get(self, workflow_id: str, version: Optional[int] = None) -> Optional[WorkflowGraph]:
        """Return a version of a workflow graph, the latest by default."""

    @abstractmethod
    def versions(self, workflow_id: str) -> List[int]:
        """All stored version numbers, ascending."""


class InMemoryGraphStore(GraphStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._graphs: Dict[str, List[WorkflowGraph]] = {}

    def _append(self, graph: WorkflowGraph) -> WorkflowGraph:
        with self._lock:
            history = self._graphs.setdefault(graph.workflow_id, [])
            stored = graph.model_copy(update={"version": len(history) + 1})
            history.append(stored)
            return stored

    def get(self, workflow_id: str, version: Optional[int] = None) -> Optional[WorkflowGraph]:
        with self._lock:
            history = self._graphs.get(workflow_id)
            if not history:
                return None
            if version is None:
                return history[-1]
            if 1 <= version <= len(history):
                return history[version - 1]
            return None

    def versions(self, workflow_id: str) -> List[int]:
        with self._lock:
            return list(range(1, len(self._graphs.get(workflow_id, [])) + 1))


class RedisGraphStore(GraphStore):
    """Versions in a hash per workflow; an INCR counter allocates version numbers."""

    def __init__(self, redis_client: redis.Redis, prefix: str = "socialflow:graph:"):
        self.redis_client = redis_client
        self._prefix = prefix

    def _versions_key(self, workflow_id: str) -> str:
        return f"{self._prefix}{workflow_id}:versions"

    def _counter_key(self, workflow_id: str) -> str:
        return f"{self._prefix}{workflow_id}:counter"

    def _append(self, graph: WorkflowGraph) -> WorkflowGraph:
        version = int(self.redis_client.incr(self._counter_key(graph.workflow_id)))
        stored = graph.model_copy(update={"version": version})
        self.redis_client.hsetnx(
            self._versions_key(graph.workflow_id), str(version), stored.model_dump_json()
        )
        return stored

    def get(self, workflow_id: str, version: Optional[int] = None) -> Optional[WorkflowGraph]:
        if version is None:
            latest = self.redis_client.get(self._counter_key(workflow_id))
            if latest is None:
                return None
            version = int(latest)
        raw = self.redis_client.hget(self._versions_key(workflow_id), str(version))
        if raw is None:
            return None
        return WorkflowGraph.model_validate_json(raw)

    def versions(self, workflow_id: str) -> List[int]:
        keys = self.redis_client.hkeys(self._versions_key(workflow_id))
        return sorted(int(k) for k in keys)


__all__ = ["GraphStore", "InMemoryGraphStore", "RedisGraphStore"]
