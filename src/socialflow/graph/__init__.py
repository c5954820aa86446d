"""
Workflow graph model.

This package provides:
- WorkflowGraph, Node, Connection: the serializable graph
- NODE_TYPES: the closed catalogue of node types and their schemas
- validate: pure structural and semantic validation
- apply_edit: validated edits producing new versions
- GraphStore: immutable versioned storage
"""

from .models import Connection, Node, NodePosition, WorkflowGraph
from .node_types import (
    NODE_TYPES,
    FallbackPolicy,
    NodeCategory,
    NodeType,
    get_type_spec,
    parse_config,
    ports_compatible,
)
from .compiled import CompiledGraph
from .validator import validate
from .edits import AddNode, Connect, Disconnect, GraphEdit, RemoveNode, UpdateConfig, apply_edit, apply_edits
from .store import GraphStore, InMemoryGraphStore, RedisGraphStore

__all__ = [
    # Models
    "WorkflowGraph",
    "Node",
    "NodePosition",
    "Connection",
    # Types
    "NODE_TYPES",
    "NodeType",
    "NodeCategory",
    "FallbackPolicy",
    "get_type_spec",
    "parse_config",
    "ports_compatible",
    # Validation
    "CompiledGraph",
    "validate",
    # Edits
    "GraphEdit",
    "AddNode",
    "RemoveNode",
    "Connect",
    "Disconnect",
    "UpdateConfig",
    "apply_edit",
    "apply_edits",
    # Storage
    "GraphStore",
    "InMemoryGraphStore",
    "RedisGraphStore",
]
