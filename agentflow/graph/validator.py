"""Structural validation and ordering for agent graphs.

A graph is runnable when every node kind is registered, every edge
endpoint exists, and the edges form a DAG. ``compute_order`` turns a
runnable graph into the sequence the executor visits.
"""

import logging
from collections import deque
from dataclasses import dataclass, field

from agentflow.errors import GraphIntegrityError
from agentflow.graph.edge import GraphSpec
from agentflow.graph.registry import NodeRegistry

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of validating a graph."""

    valid: bool
    errors: list[str] = field(default_factory=list)

    @property
    def error(self) -> str:
        """Get combined error message."""
        return "; ".join(self.errors) if self.errors else ""


def validate_graph(graph: GraphSpec, registry: NodeRegistry) -> ValidationResult:
    """
    Check a graph for unknown kinds, dangling edges, duplicate ids and cycles.

    Pure: the same graph always yields the same result.
    """
    errors: list[str] = []

    seen_ids: set[str] = set()
    for node in graph.nodes:
        if node.id in seen_ids:
            errors.append(f"Duplicate node ID '{node.id}'")
        seen_ids.add(node.id)
        if node.kind not in registry:
            errors.append(f"Node '{node.id}' has unknown kind '{node.kind}'")

    dangling = False
    seen_edges: set[str] = set()
    for edge in graph.edges:
        if edge.id in seen_edges:
            errors.append(f"Duplicate edge ID '{edge.id}'")
        seen_edges.add(edge.id)
        if edge.source not in seen_ids:
            errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            dangling = True
        if edge.target not in seen_ids:
            errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")
            dangling = True

    # Cycle search only over well-formed edges; dangling ones are already reported
    if not dangling:
        cycle = find_cycle(graph)
        if cycle:
            errors.append(f"Graph contains a cycle: {' -> '.join(cycle)}")

    return ValidationResult(valid=not errors, errors=errors)


def find_cycle(graph: GraphSpec) -> list[str] | None:
    """Return one cycle as a closed node path (first == last), or None."""
    adjacency: dict[str, list[str]] = {node_id: [] for node_id in graph.node_ids()}
    for edge in graph.edges:
        if edge.source in adjacency and edge.target in adjacency:
            adjacency[edge.source].append(edge.target)

    WHITE, GREY, BLACK = 0, 1, 2
    color = dict.fromkeys(adjacency, WHITE)
    parent: dict[str, str] = {}

    for root in adjacency:
        if color[root] != WHITE:
            continue
        # Iterative DFS; the stack holds (node, iterator over successors)
        stack = [(root, iter(adjacency[root]))]
        color[root] = GREY
        while stack:
            current, successors = stack[-1]
            advanced = False
            for nxt in successors:
                if color[nxt] == WHITE:
                    parent[nxt] = current
                    color[nxt] = GREY
                    stack.append((nxt, iter(adjacency[nxt])))
                    advanced = True
                    break
                if color[nxt] == GREY:
                    path = [current]
                    while path[-1] != nxt:
                        path.append(parent[path[-1]])
                    path.reverse()
                    return [*path, nxt]
            if not advanced:
                color[current] = BLACK
                stack.pop()
    return None


def is_reachable(graph: GraphSpec, start: str, goal: str) -> list[str] | None:
    """Breadth-first search along edges; returns the path start..goal or None."""
    if start == goal:
        return [start]
    parent: dict[str, str] = {}
    queue = deque([start])
    visited = {start}
    while queue:
        current = queue.popleft()
        for edge in graph.get_outgoing_edges(current):
            if edge.target in visited:
                continue
            parent[edge.target] = current
            if edge.target == goal:
                path = [goal]
                while path[-1] != start:
                    path.append(parent[path[-1]])
                return list(reversed(path))
            visited.add(edge.target)
            queue.append(edge.target)
    return None


def compute_order(graph: GraphSpec) -> list[str]:
    """
    Topological order via Kahn's algorithm.

    Nodes with no remaining incoming edges are released in the order they
    appear in the graph, so the result is deterministic for a given graph.

    Raises:
        GraphIntegrityError: If nodes remain unvisited (the graph is cyclic)
    """
    node_ids = graph.node_ids()
    position = {node_id: index for index, node_id in enumerate(node_ids)}
    in_degree = dict.fromkeys(node_ids, 0)
    adjacency: dict[str, list[str]] = {node_id: [] for node_id in node_ids}

    for edge in graph.edges:
        if edge.source not in in_degree or edge.target not in in_degree:
            continue
        adjacency[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    ready = sorted((n for n, d in in_degree.items() if d == 0), key=position.__getitem__)
    order: list[str] = []
    while ready:
        current = ready.pop(0)
        order.append(current)
        released = []
        for neighbour in adjacency[current]:
            in_degree[neighbour] -= 1
            if in_degree[neighbour] == 0:
                released.append(neighbour)
        if released:
            ready = sorted([*ready, *released], key=position.__getitem__)

    if len(order) != len(node_ids):
        remaining = [n for n in node_ids if n not in set(order)]
        raise GraphIntegrityError(
            f"Topological sort left {len(remaining)} node(s) unvisited: {remaining}"
        )
    return order
