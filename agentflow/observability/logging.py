"""
Structured logging with automatic execution context propagation.

The coordinator sets ``execution_id`` and ``agent_id`` once when a run
starts and the executor adds ``node_id`` as it visits each node. Every
``logger.info(...)`` issued underneath picks those fields up from a
ContextVar, so no ids have to be threaded through call signatures.

    ExecutionCoordinator.start() -> set_trace_context(execution_id, agent_id)
        |  (copied into the run's asyncio.Task)
    GraphExecutor.run() -> set_trace_context(node_id=...)
        |
    NodeRuntime handler -> logger.info("...")  # carries all of the above
"""

import json
import logging
import os
import re
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# ContextVar values are copied into each asyncio.Task, so concurrent runs
# for different agents never see each other's ids.
trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

# Attributes passed through ``extra=`` that are copied into JSON output.
EXTRA_FIELDS = ("event", "step_id", "node_kind", "duration_ms", "tokens_used")


def strip_ansi_codes(text: str) -> str:
    """Remove ANSI escape codes from text for clean JSON logging."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


class StructuredFormatter(logging.Formatter):
    """JSON formatter: one object per line with the current trace context merged in."""

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}

        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
        }
        log_entry.update(context)

        for name in EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value

        if record.exc_info:
            log_entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Colourised single-line formatter for local development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}

        prefix_parts = []
        if context.get("agent_id"):
            prefix_parts.append(f"agent:{context['agent_id']}")
        if context.get("execution_id"):
            prefix_parts.append(f"exec:{context['execution_id'][-8:]}")
        if context.get("node_id"):
            prefix_parts.append(f"node:{context['node_id']}")
        context_prefix = f"[{' | '.join(prefix_parts)}] " if prefix_parts else ""

        color = self.COLORS.get(record.levelname, "")
        level = f"{record.levelname:<8}"

        event = getattr(record, "event", None)
        suffix = f" [{event}]" if event is not None else ""

        line = f"{color}[{level}]{self.RESET} {context_prefix}{record.getMessage()}{suffix}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
) -> None:
    """
    Configure logging for the process. Call once at startup.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: "json" for machine-parseable output, "human" for colourised
            output, "auto" to pick JSON when LOG_FORMAT=json or ENV=production
    """
    if format == "auto":
        log_format_env = os.getenv("LOG_FORMAT", "").lower()
        env = os.getenv("ENV", "development").lower()
        format = "json" if log_format_env == "json" or env == "production" else "human"

    if format == "json":
        formatter: logging.Formatter = StructuredFormatter()
        os.environ["NO_COLOR"] = "1"
    else:
        formatter = HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())


def set_trace_context(**kwargs: Any) -> None:
    """
    Merge fields into the trace context of the current task.

    Called by the framework only: the coordinator sets ``execution_id`` and
    ``agent_id``, the executor sets ``node_id`` per visited node.
    """
    current = trace_context.get() or {}
    trace_context.set({**current, **kwargs})


def get_trace_context() -> dict:
    """Return a copy of the current trace context (empty dict if unset)."""
    context = trace_context.get() or {}
    return context.copy()


def clear_trace_context() -> None:
    """Clear the trace context. Mostly useful between tests."""
    trace_context.set(None)
