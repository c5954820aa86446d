"""
Compiled Graph - Index-based view of a workflow graph.

Nodes live in an arena addressed by their position in ``graph.nodes``.
Adjacency, ordering and traversal all work on those indices; connections
whose endpoints are unknown are left out of the adjacency (the validator
reports them).
"""

from __future__ import annotations

import heapq
from typing import Dict, List, Optional, Set, Tuple

from .models import Connection, Node, WorkflowGraph


class CompiledGraph:
    """
    Arena representation with topological ordering.

    Usage:
        compiled = CompiledGraph(graph)
        order, residual = compiled.topological_order()
    """

    def __init__(self, graph: WorkflowGraph):
        self.graph = graph
        self.nodes: List[Node] = list(graph.nodes)
        self.index: Dict[str, int] = {}
        for i, node in enumerate(self.nodes):
            # Duplicate ids keep their first occurrence
            self.index.setdefault(node.id, i)

        size = len(self.nodes)
        self.upstream: List[List[int]] = [[] for _ in range(size)]
        self.downstream: List[List[int]] = [[] for _ in range(size)]
        self.inbound: List[List[Connection]] = [[] for _ in range(size)]

        for conn in graph.connections:
            src = self.index.get(conn.source_node)
            dst = self.index.get(conn.target_node)
            if src is None or dst is None:
                continue
            self.inbound[dst].append(conn)
            if src not in self.upstream[dst]:
                self.upstream[dst].append(src)
            if dst not in self.downstream[src]:
                self.downstream[src].append(dst)

    def __len__(self) -> int:
        return len(self.nodes)

    def node_at(self, i: int) -> Node:
        return self.nodes[i]

    def index_of(self, node_id: str) -> Optional[int]:
        return self.index.get(node_id)

    def topological_order(self) -> Tuple[List[int], List[int]]:
        """
        Kahn's algorithm, ties broken by declaration order.

        Returns:
            (order, residual) - ``residual`` holds the indices that could not
            be ordered; it is non-empty exactly when the graph has a cycle.
        """
        in_degree = [len(ups) for ups in self.upstream]
        heap = [i for i, degree in enumerate(in_degree) if degree == 0 and self._is_primary(i)]
        heapq.heapify(heap)
        order: List[int] = []

        while heap:
            i = heapq.heappop(heap)
            order.append(i)
            for d in self.downstream[i]:
                in_degree[d] -= 1
                if in_degree[d] == 0:
                    heapq.heappush(heap, d)

        placed = set(order)
        residual = [i for i in range(len(self.nodes)) if i not in placed and self._is_primary(i)]
        return order, residual

    def evaluation_order(self) -> List[int]:
        """Node indices in evaluation order. Raises ValueError on a cycle."""
        order, residual = self.topological_order()
        if residual:
            raise ValueError(
                "Workflow has cycles involving: "
                + ", ".join(self.nodes[i].id for i in residual)
            )
        return order

    def execution_order(self) -> List[str]:
        """Node ids in evaluation order. Raises ValueError on a cycle."""
        return [self.nodes[i].id for i in self.evaluation_order()]

    def descendants(self, i: int) -> Set[int]:
        """All nodes transitively reachable from ``i``."""
        seen: Set[int] = set()
        stack = list(self.downstream[i])
        while stack:
            d = stack.pop()
            if d in seen:
                continue
            seen.add(d)
            stack.extend(self.downstream[d])
        return seen

    def cycle_members(self, residual: List[int]) -> List[int]:
        """
        Narrow a Kahn residual down to nodes that actually sit on a cycle.

        The residual also contains nodes merely downstream of a cycle.
        """
        return [i for i in residual if i in self.descendants(i)]

    def _is_primary(self, i: int) -> bool:
        return self.index.get(self.nodes[i].id) == i


__all__ = ["CompiledGraph"]
