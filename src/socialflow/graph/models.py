"""
Graph Models - Serializable structure of a workflow graph.

A graph version is immutable once published; edits produce a new
version (see ``socialflow.graph.edits``).
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class NodePosition(BaseModel):
    """Node position in the editor canvas."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    x: float = 0
    y: float = 0


class Node(BaseModel):
    """
    A typed unit of work.

    ``type`` is kept as a plain string so that graphs produced by external
    generators can be loaded and rejected by the validator rather than by
    the parser.
    """
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., min_length=1, description="Node id, unique within the graph")
    type: str = Field(..., description="Node type tag, see NodeType")
    name: Optional[str] = Field(None, description="Display label")
    config: Dict[str, Any] = Field(default_factory=dict)
    position: NodePosition = Field(default_factory=NodePosition)


class Connection(BaseModel):
    """Directed edge from an output port to an input port."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    source_node: str
    source_port: str
    target_node: str
    target_port: str

    def __str__(self) -> str:
        return f"{self.source_node}.{self.source_port} -> {self.target_node}.{self.target_port}"


class WorkflowGraph(BaseModel):
    """
    Versioned set of nodes and connections.
    """
    model_config = ConfigDict(extra="forbid", frozen=True)

    workflow_id: str = Field(..., min_length=1)
    version: int = Field(1, ge=1)
    name: str = Field("Untitled workflow")
    nodes: List[Node] = Field(default_factory=list)
    connections: List[Connection] = Field(default_factory=list)

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def incoming(self, node_id: str) -> List[Connection]:
        return [c for c in self.connections if c.target_node == node_id]

    def outgoing(self, node_id: str) -> List[Connection]:
        return [c for c in self.connections if c.source_node == node_id]

    def nodes_of_type(self, *node_types: str) -> List[Node]:
        wanted = {str(getattr(t, "value", t)) for t in node_types}
        return [node for node in self.nodes if node.type in wanted]

    def export_json(self) -> str:
        """Serialize to the canonical JSON exchange format."""
        return json.dumps(self.model_dump(mode="json"), sort_keys=True, indent=2)

    @classmethod
    def import_json(cls, raw: str | bytes | Dict[str, Any]) -> "WorkflowGraph":
        """Parse the JSON exchange format. Structural validation is separate."""
        if isinstance(raw, dict):
            return cls.model_validate(raw)
        return cls.model_validate_json(raw)


__all__ = [
    "Node",
    "NodePosition",
    "Connection",
    "WorkflowGraph",
]
