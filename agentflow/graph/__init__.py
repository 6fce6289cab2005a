"""Graph structures: node kinds, nodes, edges, validation and execution."""

from agentflow.graph.edge import Edge, GraphSpec
from agentflow.graph.executor import GraphExecutor
from agentflow.graph.flow import AgentGraph
from agentflow.graph.node import Node, Position
from agentflow.graph.registry import (
    BUILTIN_DEFINITIONS,
    NodeDefinition,
    NodeRegistry,
    ShapeTag,
    default_registry,
)
from agentflow.graph.validator import (
    ValidationResult,
    compute_order,
    find_cycle,
    is_reachable,
    validate_graph,
)

__all__ = [
    # Registry
    "NodeRegistry",
    "NodeDefinition",
    "ShapeTag",
    "BUILTIN_DEFINITIONS",
    "default_registry",
    # Model
    "Node",
    "Position",
    "Edge",
    "GraphSpec",
    "AgentGraph",
    # Validation
    "ValidationResult",
    "validate_graph",
    "compute_order",
    "find_cycle",
    "is_reachable",
    # Executor
    "GraphExecutor",
]
