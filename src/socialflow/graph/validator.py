"""
Graph Validator - Structural and semantic checks for workflow graphs.

Validation is pure. It runs before a graph version is stored and again
before every execution; a graph with any error is never executed.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Tuple

from pydantic import ValidationError

from socialflow.validation import ValidationIssue, ValidationResult, format_pydantic_errors

from .compiled import CompiledGraph
from .models import Connection, WorkflowGraph
from .node_types import NodeCategory, get_type_spec, ports_compatible


def validate(graph: WorkflowGraph) -> ValidationResult:
    """
    Validate a workflow graph.

    Checks, in order:
      a. acyclicity (Kahn's algorithm)
      b. at most one incoming connection per input port
      c. port type compatibility; triggers accept no inputs
      d. node configuration against the node type's schema
      e. no dangling connection endpoints, unique node ids
    """
    compiled = CompiledGraph(graph)
    errors: List[ValidationIssue] = []
    errors.extend(_check_acyclic(compiled))
    errors.extend(_check_single_incoming(graph, compiled))
    errors.extend(_check_compatibility(graph, compiled))
    errors.extend(_check_configs(graph))
    errors.extend(_check_dangling(graph, compiled))
    return ValidationResult(errors=errors)


def _check_acyclic(compiled: CompiledGraph) -> List[ValidationIssue]:
    _, residual = compiled.topological_order()
    if not residual:
        return []
    members = compiled.cycle_members(residual) or residual
    ids = [compiled.node_at(i).id for i in members]
    return [ValidationIssue(
        code="cycle",
        message=f"Graph contains a cycle through: {', '.join(ids)}",
        node_ids=ids,
    )]


def _check_single_incoming(graph: WorkflowGraph, compiled: CompiledGraph) -> List[ValidationIssue]:
    by_port: Dict[Tuple[str, str], List[Connection]] = defaultdict(list)
    for conn in graph.connections:
        if compiled.index_of(conn.target_node) is not None:
            by_port[(conn.target_node, conn.target_port)].append(conn)

    issues = []
    for (node_id, port), conns in by_port.items():
        if len(conns) > 1:
            sources = sorted({c.source_node for c in conns})
            issues.append(ValidationIssue(
                code="multiple_incoming",
                message=f"Input {node_id}.{port} has {len(conns)} incoming connections",
                node_ids=[node_id, *sources],
            ))
    return issues


def _check_compatibility(graph: WorkflowGraph, compiled: CompiledGraph) -> List[ValidationIssue]:
    issues = []
    for conn in graph.connections:
        src_i = compiled.index_of(conn.source_node)
        dst_i = compiled.index_of(conn.target_node)
        if src_i is None or dst_i is None:
            continue
        src_spec = get_type_spec(compiled.node_at(src_i).type)
        dst_spec = get_type_spec(compiled.node_at(dst_i).type)
        if src_spec is None or dst_spec is None:
            continue

        if dst_spec.category == NodeCategory.TRIGGER:
            issues.append(ValidationIssue(
                code="trigger_has_input",
                message=f"Trigger {conn.target_node} cannot receive connections",
                node_ids=[conn.target_node],
                connection=str(conn),
            ))
            continue

        out_port = src_spec.output_port(conn.source_port)
        in_port = dst_spec.input_port(conn.target_port)
        if out_port is None or in_port is None:
            continue
        if not ports_compatible(out_port.type, in_port.type):
            issues.append(ValidationIssue(
                code="incompatible_ports",
                message=(
                    f"Cannot connect {out_port.type.value} output to "
                    f"{in_port.type.value} input ({conn})"
                ),
                node_ids=[conn.source_node, conn.target_node],
                connection=str(conn),
            ))
    return issues


def _check_configs(graph: WorkflowGraph) -> List[ValidationIssue]:
    issues = []
    for node in graph.nodes:
        spec = get_type_spec(node.type)
        if spec is None:
            issues.append(ValidationIssue(
                code="unknown_node_type",
                message=f"Node {node.id} has unknown type {node.type!r}",
                node_ids=[node.id],
            ))
            continue
        try:
            spec.config_model.model_validate(node.config)
        except ValidationError as e:
            issues.append(ValidationIssue(
                code="invalid_config",
                message=f"Node {node.id} ({node.type}): {format_pydantic_errors(e)}",
                node_ids=[node.id],
            ))
    return issues


def _check_dangling(graph: WorkflowGraph, compiled: CompiledGraph) -> List[ValidationIssue]:
    issues = []

    seen: Dict[str, int] = {}
    for node in graph.nodes:
        seen[node.id] = seen.get(node.id, 0) + 1
    for node_id, count in seen.items():
        if count > 1:
            issues.append(ValidationIssue(
                code="duplicate_node_id",
                message=f"Node id {node_id} is used {count} times",
                node_ids=[node_id],
            ))

    for conn in graph.connections:
        problems = []
        src_i = compiled.index_of(conn.source_node)
        dst_i = compiled.index_of(conn.target_node)
        if src_i is None:
            problems.append(f"unknown source node {conn.source_node}")
        else:
            src_spec = get_type_spec(compiled.node_at(src_i).type)
            if src_spec is not None and src_spec.output_port(conn.source_port) is None:
                problems.append(f"{conn.source_node} has no output port {conn.source_port!r}")
        if dst_i is None:
            problems.append(f"unknown target node {conn.target_node}")
        else:
            dst_spec = get_type_spec(compiled.node_at(dst_i).type)
            if (
                dst_spec is not None
                and dst_spec.category != NodeCategory.TRIGGER
                and dst_spec.input_port(conn.target_port) is None
            ):
                problems.append(f"{conn.target_node} has no input port {conn.target_port!r}")
        if problems:
            issues.append(ValidationIssue(
                code="dangling_connection",
                message=f"Connection {conn}: {'; '.join(problems)}",
                node_ids=[n for n in (conn.source_node, conn.target_node) if n in compiled.index],
                connection=str(conn),
            ))
    return issues


__all__ = [
    "ValidationIssue",
    "ValidationResult",
    "validate",
    "format_pydantic_errors",
]
