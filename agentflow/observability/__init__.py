"""
Observability: structured logging with automatic execution correlation.

- ContextVar-based propagation of execution_id / agent_id / node_id
- JSON logging for production, human-readable logging for development
"""

from agentflow.observability.logging import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
)

__all__ = [
    "configure_logging",
    "get_trace_context",
    "set_trace_context",
    "clear_trace_context",
]
