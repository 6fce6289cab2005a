import logging

import pytest

from agentflow.observability import clear_trace_context


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point configuration at an empty location so a developer's file never leaks in."""
    monkeypatch.setenv("AGENTFLOW_CONFIG", str(tmp_path / "no-config.json"))


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    clear_trace_context()
