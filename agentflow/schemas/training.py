"""
Training Schema - rated input/output samples used to refine an agent.

A TrainingSession groups the sample runs a reviewer makes against one agent.
Runs are appended unrated; a reviewer later sets ``rating`` and
``feedback`` in place. Nothing else on a run changes after creation.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, computed_field

MIN_RATING = 1
MAX_RATING = 5


def _normalise(text: str) -> str:
    return text.strip().lower()


class TrainingRun(BaseModel):
    """One sample run against an agent, optionally rated by a reviewer."""

    id: str
    agent_id: str = ""
    input: Any = ""
    output: Any = ""
    expected: str | None = None
    rating: int | None = None
    feedback: str = ""
    tokens: int = 0
    latency_ms: int = 0
    execution_id: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)

    @computed_field
    @property
    def verdict(self) -> Literal["pass", "fail"] | None:
        """Loose match against ``expected``: either normalised text contains the other."""
        if not self.expected or not self.expected.strip():
            return None
        actual = _normalise(str(self.output or ""))
        wanted = _normalise(self.expected)
        return "pass" if wanted in actual or actual in wanted else "fail"

    @property
    def is_rated(self) -> bool:
        return self.rating is not None


class TrainingSessionConfig(BaseModel):
    """Reviewer-supplied context for a session."""

    examples: list[dict[str, Any]] = Field(default_factory=list)
    system_prompt: str = ""
    evaluation_criteria: list[str] = Field(default_factory=list)

    model_config = {"extra": "allow"}


class TrainingSession(BaseModel):
    """A group of training runs against one agent."""

    id: str
    agent_id: str
    status: Literal["active", "archived"] = "active"
    created_at: datetime = Field(default_factory=datetime.now)
    runs: list[TrainingRun] = Field(default_factory=list)
    config: TrainingSessionConfig = Field(default_factory=TrainingSessionConfig)

    def get_run(self, run_id: str) -> TrainingRun | None:
        for run in self.runs:
            if run.id == run_id:
                return run
        return None
