"""
Execution Schema - the traced record of one run of an agent's graph.

An ExecutionRecord is created when a run starts, mutated only by the
executor that owns the run, and immutable once it reaches a terminal
status. Each visited node contributes exactly one StepRecord, appended in
visit order.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, computed_field


class ExecutionStatus(StrEnum):
    """Status of a run or of a single step."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING


def _duration_ms(started_at: datetime, completed_at: datetime | None) -> int:
    if completed_at is None:
        return 0
    return int((completed_at - started_at).total_seconds() * 1000)


class StepRecord(BaseModel):
    """Trace entry for one node's execution within one run."""

    id: str
    node_id: str
    node_kind: str = ""
    label: str = ""
    status: ExecutionStatus = ExecutionStatus.RUNNING
    input: Any = None
    output: Any = None
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None
    tokens: int = 0
    error: str | None = None

    @computed_field
    @property
    def duration_ms(self) -> int:
        """Wall time of the node invocation in milliseconds."""
        return _duration_ms(self.started_at, self.completed_at)

    def complete(self, output: Any, tokens: int = 0) -> None:
        self.output = output
        self.tokens = tokens
        self.status = ExecutionStatus.COMPLETED
        self.completed_at = datetime.now()

    def fail(self, error: str) -> None:
        self.error = error
        self.status = ExecutionStatus.FAILED
        self.completed_at = datetime.now()


class ExecutionRecord(BaseModel):
    """
    Full trace and outcome of one run.

    ``error`` is always a human-readable cause when ``status`` is failed;
    ``cancelled`` distinguishes a user cancel from a node failure.
    """

    id: str
    agent_id: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    input: Any = None
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None
    steps: list[StepRecord] = Field(default_factory=list)
    result: Any = None
    error: str | None = None
    cancelled: bool = False

    @computed_field
    @property
    def duration_ms(self) -> int:
        return _duration_ms(self.started_at, self.completed_at)

    @computed_field
    @property
    def total_tokens(self) -> int:
        return sum(step.tokens for step in self.steps)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def completed_steps(self) -> list[StepRecord]:
        return [s for s in self.steps if s.status == ExecutionStatus.COMPLETED]

    def append_step(self, step: StepRecord) -> None:
        self._ensure_mutable()
        self.steps.append(step)

    def complete(self, result: Any) -> None:
        self._ensure_mutable()
        self.result = result
        self.status = ExecutionStatus.COMPLETED
        self.completed_at = datetime.now()

    def fail(self, error: str, cancelled: bool = False) -> None:
        self._ensure_mutable()
        self.error = error
        self.cancelled = cancelled
        self.status = ExecutionStatus.FAILED
        self.completed_at = datetime.now()

    def _ensure_mutable(self) -> None:
        if self.is_terminal:
            raise RuntimeError(f"Execution {self.id} is already {self.status}")
