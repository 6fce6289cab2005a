"""
Agent Schema - the persisted shape of an agent.

An agent's persisted state is its graph plus the records it accumulates
(executions in the ledger, training runs in the training store). Only
these shapes are load-bearing; the storage medium is up to the host.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from agentflow.config import DEFAULT_MAX_TOKENS, RuntimeConfig
from agentflow.graph.edge import GraphSpec


class AgentConfig(BaseModel):
    """Default model settings for the agent's llm nodes."""

    provider: str = "anthropic"
    model: str = "claude-sonnet-4-6"
    temperature: float = 0.7
    max_tokens: int = DEFAULT_MAX_TOKENS

    def runtime_config(self) -> RuntimeConfig:
        """Agent-wide model defaults; the API key still comes from configuration."""
        return RuntimeConfig(
            model=f"{self.provider}/{self.model}",
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )


class AgentMetrics(BaseModel):
    """Aggregates over an agent's ledger entries."""

    total_runs: int = 0
    success_rate: float = 0.0
    avg_latency_ms: float = 0.0
    avg_tokens: float = 0.0
    last_run: datetime | None = None


class AgentDefinition(BaseModel):
    """An agent: identity, graph and model defaults."""

    id: str
    name: str = "Untitled Agent"
    description: str = ""
    version: str = "0.1.0"
    graph: GraphSpec = Field(default_factory=GraphSpec)
    config: AgentConfig = Field(default_factory=AgentConfig)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    model_config = {"extra": "allow"}
