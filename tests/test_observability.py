"""Tests for structured logging and trace context propagation."""

import asyncio
import json
import logging

import pytest

from agentflow.observability import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
)
from agentflow.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    strip_ansi_codes,
)


def make_record(message: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("agentflow.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def fresh_context():
    clear_trace_context()
    yield
    clear_trace_context()


class TestTraceContext:
    def test_set_merges_fields(self):
        set_trace_context(execution_id="exec_1", agent_id="bot")
        set_trace_context(node_id="n1")

        assert get_trace_context() == {"execution_id": "exec_1", "agent_id": "bot", "node_id": "n1"}

    def test_get_returns_copy(self):
        set_trace_context(agent_id="bot")

        get_trace_context()["agent_id"] = "other"

        assert get_trace_context()["agent_id"] == "bot"

    @pytest.mark.asyncio
    async def test_tasks_do_not_share_context(self):
        async def run(agent_id: str) -> dict:
            set_trace_context(agent_id=agent_id)
            await asyncio.sleep(0)
            return get_trace_context()

        a, b = await asyncio.gather(asyncio.create_task(run("a")), asyncio.create_task(run("b")))

        assert a["agent_id"] == "a"
        assert b["agent_id"] == "b"
        assert get_trace_context() == {}


class TestFormatters:
    def test_structured_formatter_includes_context_and_extras(self):
        set_trace_context(execution_id="exec_1", agent_id="bot")

        record = make_record("\033[32mdone\033[0m", event="step_completed")
        line = StructuredFormatter().format(record)
        entry = json.loads(line)

        assert entry["message"] == "done"
        assert entry["level"] == "info"
        assert entry["execution_id"] == "exec_1"
        assert entry["event"] == "step_completed"

    def test_human_formatter_prefix(self):
        set_trace_context(execution_id="exec_0123456789ab", agent_id="bot", node_id="n1")

        line = strip_ansi_codes(HumanReadableFormatter().format(make_record("working")))

        assert "[agent:bot | exec:456789ab | node:n1] working" in line

    def test_configure_logging_json(self, restore_logging, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "0")
        configure_logging(level="debug", format="json")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)

    def test_configure_logging_auto_reads_env(self, restore_logging, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "")
        monkeypatch.setenv("ENV", "development")

        configure_logging(format="auto")

        assert isinstance(logging.getLogger().handlers[0].formatter, HumanReadableFormatter)
