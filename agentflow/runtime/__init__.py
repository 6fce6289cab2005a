"""Runtime pieces shared by the executor: the event bus and the node runtime.

``ExecutionCoordinator`` lives in ``agentflow.runtime.coordinator``.
"""

from agentflow.runtime.event_bus import AgentEvent, EventBus, EventType
from agentflow.runtime.node_runtime import (
    KindDispatchRuntime,
    MemoryBuffer,
    NodeContext,
    NodeResult,
    NodeRuntime,
    builtin_runtime,
)

__all__ = [
    "AgentEvent",
    "EventBus",
    "EventType",
    "KindDispatchRuntime",
    "MemoryBuffer",
    "NodeContext",
    "NodeResult",
    "NodeRuntime",
    "builtin_runtime",
]
