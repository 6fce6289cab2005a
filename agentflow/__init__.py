"""
agentflow - visual agent graphs, traced execution and rated training runs.

Build a graph with ``AgentGraph``, run it through ``ExecutionCoordinator``,
read finished runs from ``ExecutionLedger`` and collect reviewer ratings
with ``TrainingFeedbackLoop``.
"""

from agentflow.errors import (
    AgentFlowError,
    AlreadyRunning,
    Cancelled,
    CycleDetected,
    GraphEditError,
    GraphIntegrityError,
    InvalidEndpoint,
    InvalidGraph,
    NodeRuntimeError,
    NotFound,
    UnknownNodeKind,
)
from agentflow.graph import AgentGraph, GraphSpec, NodeRegistry, default_registry
from agentflow.runtime import EventBus, EventType, KindDispatchRuntime, NodeResult, builtin_runtime
from agentflow.runtime.coordinator import ExecutionCoordinator
from agentflow.schemas import ExecutionRecord, ExecutionStatus, StepRecord
from agentflow.storage import ExecutionLedger, LedgerFilter
from agentflow.training import TrainingFeedbackLoop, TrainingStore

__version__ = "0.1.0"

__all__ = [
    # Errors
    "AgentFlowError",
    "GraphEditError",
    "UnknownNodeKind",
    "InvalidEndpoint",
    "CycleDetected",
    "InvalidGraph",
    "GraphIntegrityError",
    "AlreadyRunning",
    "Cancelled",
    "NotFound",
    "NodeRuntimeError",
    # Graph
    "AgentGraph",
    "GraphSpec",
    "NodeRegistry",
    "default_registry",
    # Execution
    "ExecutionCoordinator",
    "EventBus",
    "EventType",
    "KindDispatchRuntime",
    "NodeResult",
    "builtin_runtime",
    "ExecutionRecord",
    "ExecutionStatus",
    "StepRecord",
    # Storage
    "ExecutionLedger",
    "LedgerFilter",
    # Training
    "TrainingFeedbackLoop",
    "TrainingStore",
]
