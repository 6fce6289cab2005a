"""
AgentGraph - the editable graph behind one agent.

Every mutation checks its preconditions before touching state, so an
operation either applies fully or raises a ``GraphEditError`` and leaves
the graph exactly as it was. In particular ``connect`` refuses any edge
that would close a cycle, which is what lets the executor assume a DAG.

Example:
    graph = AgentGraph(agent_id="support-bot")
    inp = graph.add_node("input")
    llm = graph.add_node("llm", data={"model": "claude-sonnet-4-6"})
    out = graph.add_node("output")
    graph.connect(inp.id, llm.id)
    graph.connect(llm.id, out.id)

    spec = graph.snapshot()   # frozen copy handed to the coordinator
"""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Any

from agentflow.errors import CycleDetected, InvalidEndpoint
from agentflow.graph.edge import Edge, GraphSpec
from agentflow.graph.node import Node, Position
from agentflow.graph.registry import NodeRegistry, default_registry
from agentflow.graph.validator import ValidationResult, is_reachable, validate_graph

logger = logging.getLogger(__name__)


def _short_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


class AgentGraph:
    """Mutable set of nodes and directed edges for one agent."""

    def __init__(self, agent_id: str = "", registry: NodeRegistry | None = None):
        self.agent_id = agent_id
        self.registry = registry if registry is not None else default_registry()
        self._nodes: dict[str, Node] = {}
        self._edges: dict[str, Edge] = {}

    # === QUERIES ===

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    @property
    def edges(self) -> list[Edge]:
        return list(self._edges.values())

    def get_node(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def get_edge(self, edge_id: str) -> Edge | None:
        return self._edges.get(edge_id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    # === MUTATIONS ===

    def add_node(
        self,
        kind: str,
        position: Position | dict[str, float] | None = None,
        data: dict[str, Any] | None = None,
        node_id: str | None = None,
    ) -> Node:
        """
        Insert a node of ``kind`` with registry default data.

        Raises:
            UnknownNodeKind: If the kind is not registered
            InvalidEndpoint: If ``node_id`` is already taken
        """
        definition = self.registry.lookup(kind)
        node_id = node_id or _short_id("node")
        if node_id in self._nodes:
            raise InvalidEndpoint(f"Node ID '{node_id}' already exists")

        if position is None:
            position = Position()
        elif isinstance(position, dict):
            position = Position(**position)

        node = Node(id=node_id, kind=kind, position=position, data=definition.new_data(data))
        self._nodes[node_id] = node
        logger.debug(f"Added node {node_id} ({kind})")
        return node

    def remove_node(self, node_id: str) -> Node:
        """Remove a node and every edge that references it."""
        self._require_node(node_id)
        node = self._nodes.pop(node_id)
        dropped = [edge_id for edge_id, edge in self._edges.items() if edge.touches(node_id)]
        for edge_id in dropped:
            del self._edges[edge_id]
        logger.debug(f"Removed node {node_id} and {len(dropped)} edge(s)")
        return node

    def connect(
        self,
        source_id: str,
        target_id: str,
        source_port: str | None = None,
        target_port: str | None = None,
        edge_id: str | None = None,
    ) -> Edge:
        """
        Add a directed edge ``source -> target``.

        Reconnecting an existing link returns the existing edge.

        Raises:
            InvalidEndpoint: If either node is missing, or the source is terminal
            CycleDetected: If the target can already reach the source
        """
        self._require_node(source_id)
        self._require_node(target_id)

        source = self._nodes[source_id]
        definition = self.registry.get(source.kind)
        if definition is not None and definition.is_terminal:
            raise InvalidEndpoint(
                f"Node '{source_id}' ({source.kind}) is terminal and cannot have outgoing edges"
            )

        candidate = Edge(
            id=edge_id or _short_id("e"),
            source=source_id,
            target=target_id,
            source_port=source_port,
            target_port=target_port,
        )
        for existing in self._edges.values():
            if existing.same_link(candidate):
                return existing
        if candidate.id in self._edges:
            raise InvalidEndpoint(f"Edge ID '{candidate.id}' already exists")

        if source_id == target_id:
            raise CycleDetected(source_id, target_id, [source_id, source_id])
        back_path = is_reachable(self._as_spec(), target_id, source_id)
        if back_path is not None:
            raise CycleDetected(source_id, target_id, [*back_path, target_id])

        self._edges[candidate.id] = candidate
        logger.debug(f"Connected {source_id} -> {target_id} ({candidate.id})")
        return candidate

    def disconnect(self, edge_id: str) -> Edge:
        """Remove a single edge."""
        if edge_id not in self._edges:
            raise InvalidEndpoint(f"Edge '{edge_id}' not found")
        return self._edges.pop(edge_id)

    def update_node_data(self, node_id: str, partial: dict[str, Any]) -> Node:
        """Merge ``partial`` into the node's configuration. Edges are untouched."""
        self._require_node(node_id)
        node = self._nodes[node_id]
        merged = {**node.data, **copy.deepcopy(partial)}
        updated = node.model_copy(update={"data": merged})
        self._nodes[node_id] = updated
        return updated

    def move_node(self, node_id: str, position: Position | dict[str, float]) -> Node:
        self._require_node(node_id)
        if isinstance(position, dict):
            position = Position(**position)
        updated = self._nodes[node_id].model_copy(update={"position": position})
        self._nodes[node_id] = updated
        return updated

    # === VALIDATION / SNAPSHOT ===

    def validate(self) -> ValidationResult:
        """Check kinds, edge endpoints and acyclicity. Does not mutate."""
        return validate_graph(self._as_spec(), self.registry)

    def snapshot(self) -> GraphSpec:
        """Deep, frozen copy of the current nodes and edges."""
        return GraphSpec(
            agent_id=self.agent_id,
            nodes=tuple(n.model_copy(deep=True) for n in self._nodes.values()),
            edges=tuple(e.model_copy(deep=True) for e in self._edges.values()),
        )

    def to_spec(self) -> GraphSpec:
        return self.snapshot()

    @classmethod
    def from_spec(cls, spec: GraphSpec, registry: NodeRegistry | None = None) -> AgentGraph:
        """
        Rebuild an editable graph from a stored snapshot.

        Nodes and edges are loaded as-is, without per-edge cycle checks;
        call ``validate()`` before running a graph loaded from storage.
        """
        graph = cls(agent_id=spec.agent_id, registry=registry)
        for node in spec.nodes:
            graph._nodes[node.id] = node.model_copy(deep=True)
        for edge in spec.edges:
            graph._edges[edge.id] = edge.model_copy(deep=True)
        return graph

    def _as_spec(self) -> GraphSpec:
        # Shallow view for read-only checks; no copies needed
        return GraphSpec(
            agent_id=self.agent_id,
            nodes=tuple(self._nodes.values()),
            edges=tuple(self._edges.values()),
        )

    def _require_node(self, node_id: str) -> None:
        if node_id not in self._nodes:
            raise InvalidEndpoint(f"Node '{node_id}' not found in graph")
