"""Record shapes exchanged between the coordinator, ledger and training loop."""

from agentflow.schemas.agent import AgentConfig, AgentDefinition, AgentMetrics
from agentflow.schemas.execution import ExecutionRecord, ExecutionStatus, StepRecord
from agentflow.schemas.training import TrainingRun, TrainingSession, TrainingSessionConfig

__all__ = [
    "AgentConfig",
    "AgentDefinition",
    "AgentMetrics",
    "ExecutionRecord",
    "ExecutionStatus",
    "StepRecord",
    "TrainingRun",
    "TrainingSession",
    "TrainingSessionConfig",
]
