"""Tests for the node kind catalog."""

import pytest

from agentflow.errors import UnknownNodeKind
from agentflow.graph.registry import (
    BUILTIN_DEFINITIONS,
    NodeDefinition,
    NodeRegistry,
    ShapeTag,
    default_registry,
)


class TestNodeRegistry:
    def test_lookup_known_kind(self):
        registry = NodeRegistry([NodeDefinition(kind="llm", is_async=True)])

        definition = registry.lookup("llm")

        assert definition.kind == "llm"
        assert definition.is_async is True

    def test_lookup_unknown_kind_raises(self):
        registry = NodeRegistry()

        with pytest.raises(UnknownNodeKind) as exc_info:
            registry.lookup("teleport")

        assert exc_info.value.kind == "teleport"

    def test_get_returns_none_for_unknown(self):
        assert NodeRegistry().get("teleport") is None

    def test_duplicate_registration_rejected(self):
        registry = NodeRegistry([NodeDefinition(kind="llm")])

        with pytest.raises(ValueError, match="already registered"):
            registry.register(NodeDefinition(kind="llm"))

    def test_frozen_registry_rejects_registration(self):
        registry = NodeRegistry().freeze()

        assert registry.frozen
        with pytest.raises(RuntimeError):
            registry.register(NodeDefinition(kind="late"))

    def test_by_category(self):
        registry = NodeRegistry(
            [
                NodeDefinition(kind="a", category="io"),
                NodeDefinition(kind="b", category="ai"),
                NodeDefinition(kind="c", category="io"),
            ]
        )

        assert [d.kind for d in registry.by_category("io")] == ["a", "c"]

    def test_new_data_copies_defaults(self):
        definition = NodeDefinition(kind="tool", default_data={"config": {"retries": 1}})

        first = definition.new_data()
        first["config"]["retries"] = 5

        assert definition.new_data()["config"]["retries"] == 1
        assert definition.new_data({"label": "Search"})["label"] == "Search"


class TestBuiltinCatalog:
    def test_default_registry_is_frozen(self):
        registry = default_registry()

        assert registry.frozen
        assert len(registry) == len(BUILTIN_DEFINITIONS)

    def test_builtin_kinds_present(self):
        registry = default_registry()

        for kind in ("input", "chat_trigger", "memory", "llm", "tool", "http", "output"):
            assert kind in registry

    def test_output_is_terminal_and_triggers_read_input(self):
        registry = default_registry()

        assert registry.lookup("output").is_terminal
        assert registry.lookup("input").is_trigger
        assert registry.lookup("chat_trigger").is_trigger
        assert registry.lookup("input").accepts == ShapeTag.NONE

    def test_network_kinds_are_async(self):
        registry = default_registry()

        assert registry.lookup("llm").is_async
        assert registry.lookup("http").is_async
        assert not registry.lookup("transform").is_async
