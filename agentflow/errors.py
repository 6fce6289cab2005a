"""Exception taxonomy for graph editing, execution and feedback.

Editor-time errors (``GraphEditError`` subclasses) are raised before any
mutation is applied, so the graph is always left unchanged.
"""

from __future__ import annotations


class AgentFlowError(Exception):
    """Base class for every error raised by agentflow."""


class GraphEditError(AgentFlowError):
    """An editor operation was rejected; the graph is unchanged."""


class UnknownNodeKind(GraphEditError):
    """A node references a kind that is not in the registry."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown node kind '{kind}'")


class InvalidEndpoint(GraphEditError):
    """An edge or node operation referenced a node that is not in the graph."""


class CycleDetected(GraphEditError):
    """Adding an edge would close a cycle."""

    def __init__(self, source: str, target: str, path: list[str] | None = None):
        self.source = source
        self.target = target
        self.path = path or []
        detail = f" via {' -> '.join(self.path)}" if self.path else ""
        super().__init__(f"Edge '{source}' -> '{target}' would create a cycle{detail}")


class InvalidGraph(AgentFlowError):
    """Pre-execution validation failed; the run was not started."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Graph is invalid: " + "; ".join(self.errors))


class GraphIntegrityError(AgentFlowError):
    """A cycle was found at execution time despite prior validation."""


class AlreadyRunning(AgentFlowError):
    """The agent already has an execution in flight."""

    def __init__(self, agent_id: str, execution_id: str):
        self.agent_id = agent_id
        self.execution_id = execution_id
        super().__init__(
            f"Agent '{agent_id}' already has a running execution ({execution_id})"
        )


class Cancelled(AgentFlowError):
    """The execution was cancelled by the user."""

    def __init__(self, message: str = "Execution cancelled"):
        super().__init__(message)


class NotFound(AgentFlowError):
    """A session, run or record lookup missed."""


class NodeRuntimeError(AgentFlowError):
    """The node runtime could not perform a node's work."""
