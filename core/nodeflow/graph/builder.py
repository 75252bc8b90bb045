"""
Graph Builder - turns node and edge lists into an executable graph.

Structural checks run before any node executes:
1. Duplicate node ids are fatal
2. At least one trigger node must exist (fatal otherwise)
3. More than one trigger is a warning; execution starts at the first
4. Edges pointing at unknown nodes are a warning and are dropped
5. Non-trigger nodes that no edge touches are reported as orphaned
6. A directed cycle anywhere in the graph is fatal
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from nodeflow.errors import CircularDependencyError, NoTriggerError, StructuralError
from nodeflow.graph.node import Edge, Node

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GraphDiagnostics:
    """Non-fatal findings from structural validation."""

    warnings: tuple[str, ...] = ()
    orphaned: tuple[str, ...] = ()
    dangling_edges: tuple[tuple[str, str], ...] = ()

    @property
    def ok(self) -> bool:
        return not self.warnings


@dataclass
class ExecutionGraph:
    """Adjacency map plus node lookup. Read-only once built."""

    nodes: dict[str, Node]
    adjacency: dict[str, list[str]]
    triggers: list[Node]
    diagnostics: GraphDiagnostics = field(default_factory=GraphDiagnostics)

    @property
    def start(self) -> Node:
        return self.triggers[0]

    def children(self, node_id: str) -> list[Node]:
        """Child nodes of ``node_id`` in edge declaration order."""
        return [self.nodes[t] for t in self.adjacency.get(node_id, [])]

    def get(self, node_id: str) -> Node | None:
        return self.nodes.get(node_id)


def _coerce_nodes(nodes: Iterable[Node | dict[str, Any]]) -> list[Node]:
    return [n if isinstance(n, Node) else Node.model_validate(n) for n in nodes]


def _coerce_edges(edges: Iterable[Edge | dict[str, Any]]) -> list[Edge]:
    return [e if isinstance(e, Edge) else Edge.model_validate(e) for e in edges]


class GraphBuilder:
    """
    Builds and validates execution graphs.

    Example:
        builder = GraphBuilder()
        diagnostics = builder.validate(nodes, edges)   # raises StructuralError
        graph = builder.build(nodes, edges)
    """

    def __init__(self, trigger_marker: str = "trigger"):
        self.trigger_marker = trigger_marker

    def is_trigger(self, node: Node) -> bool:
        return self.trigger_marker in node.type

    def validate(
        self,
        nodes: Iterable[Node | dict[str, Any]],
        edges: Iterable[Edge | dict[str, Any]],
    ) -> GraphDiagnostics:
        """Check the graph structure; raise StructuralError on fatal problems."""
        node_list = _coerce_nodes(nodes)
        edge_list = _coerce_edges(edges)
        return self._analyse(node_list, edge_list)[1]

    def build(
        self,
        nodes: Iterable[Node | dict[str, Any]],
        edges: Iterable[Edge | dict[str, Any]],
    ) -> ExecutionGraph:
        """Validate and return the executable graph."""
        node_list = _coerce_nodes(nodes)
        edge_list = _coerce_edges(edges)
        adjacency, diagnostics = self._analyse(node_list, edge_list)
        for warning in diagnostics.warnings:
            logger.warning(warning)

        return ExecutionGraph(
            nodes={n.id: n for n in node_list},
            adjacency=adjacency,
            triggers=[n for n in node_list if self.is_trigger(n)],
            diagnostics=diagnostics,
        )

    def _analyse(
        self, nodes: list[Node], edges: list[Edge]
    ) -> tuple[dict[str, list[str]], GraphDiagnostics]:
        by_id: dict[str, Node] = {}
        for node in nodes:
            if node.id in by_id:
                raise StructuralError(f"Duplicate node id: {node.id}")
            by_id[node.id] = node

        triggers = [n for n in nodes if self.is_trigger(n)]
        if not triggers:
            raise NoTriggerError()

        warnings: list[str] = []
        if len(triggers) > 1:
            warnings.append(
                f"Workflow has {len(triggers)} trigger nodes. "
                f"Execution starts at the first one ({triggers[0].id})."
            )

        adjacency: dict[str, list[str]] = {n.id: [] for n in nodes}
        dangling: list[tuple[str, str]] = []
        for edge in edges:
            if edge.source not in by_id or edge.target not in by_id:
                dangling.append((edge.source, edge.target))
                warnings.append(f"Edge {edge.source} -> {edge.target} references an unknown node")
                continue
            adjacency[edge.source].append(edge.target)

        # Dangling edges were dropped above and connect nothing
        connected = {source for source, targets in adjacency.items() if targets}
        connected.update(t for targets in adjacency.values() for t in targets)
        orphaned = [
            n.id for n in nodes if not self.is_trigger(n) and n.id not in connected
        ]
        if orphaned:
            warnings.append(f"Found {len(orphaned)} orphaned nodes: {', '.join(orphaned)}")

        self._check_cycles([n.id for n in nodes], adjacency)

        return adjacency, GraphDiagnostics(
            warnings=tuple(warnings),
            orphaned=tuple(orphaned),
            dangling_edges=tuple(dangling),
        )

    def _check_cycles(self, order: list[str], adjacency: dict[str, list[str]]) -> None:
        # Iterative DFS: long linear workflows must not hit the recursion limit
        visited: set[str] = set()
        on_stack: set[str] = set()

        for root in order:
            if root in visited:
                continue
            visited.add(root)
            on_stack.add(root)
            path = [root]
            pending = [iter(adjacency.get(root, []))]

            while pending:
                child = next(pending[-1], None)
                if child is None:
                    pending.pop()
                    on_stack.discard(path.pop())
                    continue
                if child in on_stack:
                    raise CircularDependencyError(path[path.index(child) :] + [child])
                if child not in visited:
                    visited.add(child)
                    on_stack.add(child)
                    path.append(child)
                    pending.append(iter(adjacency.get(child, [])))
