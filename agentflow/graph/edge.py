"""
Edge Protocol - How nodes connect in a graph.

An edge is a directed data dependency: the target node receives the
source node's output. Ports discriminate between channels when a node has
more than one input or output.

``GraphSpec`` is the frozen snapshot of nodes and edges that the
coordinator executes. It is produced by ``AgentGraph.snapshot()`` so that
edits to the live graph never reach a run in flight.
"""

from pydantic import BaseModel, Field

from agentflow.graph.node import Node


class Edge(BaseModel):
    """
    A directed link between two nodes of the same graph.

    Example:
        Edge(id="e-1", source="memory-1", target="llm-1")
    """

    id: str
    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    source_port: str | None = Field(default=None, description="Output channel on the source")
    target_port: str | None = Field(default=None, description="Input channel on the target")

    def touches(self, node_id: str) -> bool:
        return self.source == node_id or self.target == node_id

    def same_link(self, other: "Edge") -> bool:
        return (
            self.source == other.source
            and self.target == other.target
            and self.source_port == other.source_port
            and self.target_port == other.target_port
        )


class GraphSpec(BaseModel):
    """
    Immutable snapshot of an agent's graph.

    Node order is preserved from the editor so that topological ordering
    can break ties deterministically.
    """

    agent_id: str = ""
    nodes: tuple[Node, ...] = ()
    edges: tuple[Edge, ...] = ()

    model_config = {"frozen": True}

    def get_node(self, node_id: str) -> Node | None:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def node_ids(self) -> list[str]:
        return [node.id for node in self.nodes]

    def get_outgoing_edges(self, node_id: str) -> list[Edge]:
        """Get all edges leaving a node."""
        return [e for e in self.edges if e.source == node_id]

    def get_incoming_edges(self, node_id: str) -> list[Edge]:
        """Get all edges entering a node."""
        return [e for e in self.edges if e.target == node_id]

    def predecessors(self, node_id: str) -> list[str]:
        """Distinct direct predecessors of a node, in edge order."""
        seen: list[str] = []
        for edge in self.get_incoming_edges(node_id):
            if edge.source not in seen:
                seen.append(edge.source)
        return seen

    def terminal_nodes(self) -> list[str]:
        """IDs of nodes with no outgoing edges, in node order."""
        sources = {e.source for e in self.edges}
        return [n.id for n in self.nodes if n.id not in sources]
