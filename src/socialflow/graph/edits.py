"""
Graph Edits - Validated edit operations.

``apply_edit`` never mutates its input: it builds the candidate next
version, validates it and returns it only when it is valid. A rejected
edit leaves the caller holding the unchanged previous version.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, Field

from socialflow.errors import StructuralError
from socialflow.validation import ValidationIssue

from .models import Connection, Node, WorkflowGraph
from .validator import validate


class AddNode(BaseModel):
    op: Literal["add_node"] = "add_node"
    node: Node


class RemoveNode(BaseModel):
    """Remove a node together with every connection touching it."""
    op: Literal["remove_node"] = "remove_node"
    node_id: str


class Connect(BaseModel):
    op: Literal["connect"] = "connect"
    connection: Connection


class Disconnect(BaseModel):
    op: Literal["disconnect"] = "disconnect"
    connection: Connection


class UpdateConfig(BaseModel):
    op: Literal["update_config"] = "update_config"
    node_id: str
    config: Dict[str, Any]


GraphEdit = Annotated[
    Union[AddNode, RemoveNode, Connect, Disconnect, UpdateConfig],
    Field(discriminator="op"),
]


def _unknown_node(node_id: str) -> StructuralError:
    return StructuralError([ValidationIssue(
        code="unknown_node",
        message=f"Node {node_id} does not exist",
        node_ids=[node_id],
    )])


def _candidate(graph: WorkflowGraph, edit: GraphEdit) -> WorkflowGraph:
    nodes: List[Node] = list(graph.nodes)
    connections: List[Connection] = list(graph.connections)

    if isinstance(edit, AddNode):
        nodes.append(edit.node)

    elif isinstance(edit, RemoveNode):
        if graph.get_node(edit.node_id) is None:
            raise _unknown_node(edit.node_id)
        nodes = [n for n in nodes if n.id != edit.node_id]
        connections = [
            c for c in connections
            if edit.node_id not in (c.source_node, c.target_node)
        ]

    elif isinstance(edit, Connect):
        if edit.connection in connections:
            raise StructuralError([ValidationIssue(
                code="duplicate_connection",
                message=f"Connection {edit.connection} already exists",
                node_ids=[edit.connection.source_node, edit.connection.target_node],
                connection=str(edit.connection),
            )])
        connections.append(edit.connection)

    elif isinstance(edit, Disconnect):
        if edit.connection not in connections:
            raise StructuralError([ValidationIssue(
                code="unknown_connection",
                message=f"Connection {edit.connection} does not exist",
                connection=str(edit.connection),
            )])
        connections.remove(edit.connection)

    elif isinstance(edit, UpdateConfig):
        node = graph.get_node(edit.node_id)
        if node is None:
            raise _unknown_node(edit.node_id)
        updated = node.model_copy(update={"config": dict(edit.config)})
        nodes = [updated if n.id == edit.node_id else n for n in nodes]

    else:
        raise TypeError(f"Unsupported edit: {edit!r}")

    return graph.model_copy(update={
        "version": graph.version + 1,
        "nodes": nodes,
        "connections": connections,
    })


def apply_edit(graph: WorkflowGraph, edit: GraphEdit) -> WorkflowGraph:
    """
    Apply one edit and return the next graph version.

    Raises:
        StructuralError: the edited graph would be invalid
    """
    candidate = _candidate(graph, edit)
    result = validate(candidate)
    if not result.ok:
        raise StructuralError(result.errors)
    return candidate


def apply_edits(graph: WorkflowGraph, edits: List[GraphEdit]) -> WorkflowGraph:
    """Apply a batch atomically; intermediate states are not validated."""
    candidate = graph
    for edit in edits:
        candidate = _candidate(candidate, edit)
    candidate = candidate.model_copy(update={"version": graph.version + 1})
    result = validate(candidate)
    if not result.ok:
        raise StructuralError(result.errors)
    return candidate


__all__ = [
    "AddNode",
    "RemoveNode",
    "Connect",
    "Disconnect",
    "UpdateConfig",
    "GraphEdit",
    "apply_edit",
    "apply_edits",
]
