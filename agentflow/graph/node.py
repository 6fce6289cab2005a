"""Node - a typed unit of work placed in an agent's graph."""

from typing import Any

from pydantic import BaseModel, Field


class Position(BaseModel):
    """Canvas coordinates. Opaque to execution."""

    x: float = 0.0
    y: float = 0.0


class Node(BaseModel):
    """
    A node instance inside one graph.

    ``data`` holds kind-specific configuration (model name, temperature,
    memory window size, ...). It starts as a copy of the registry defaults
    for the kind and is edited through ``AgentGraph.update_node_data``.
    """

    id: str
    kind: str = Field(description="Registry key for this node's capability")
    position: Position = Field(default_factory=Position)
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def label(self) -> str:
        """Human label for traces; falls back to the kind."""
        return str(self.data.get("label") or self.kind)
