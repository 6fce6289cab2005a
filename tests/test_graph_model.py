"""Tests for AgentGraph editing: every rejected edit leaves the graph unchanged."""

import pytest

from agentflow.errors import CycleDetected, InvalidEndpoint, UnknownNodeKind
from agentflow.graph.flow import AgentGraph
from agentflow.graph.node import Position


def chain(graph: AgentGraph, *kinds: str) -> list[str]:
    """Add nodes of ``kinds`` and connect them in a line. Returns their ids."""
    ids = [graph.add_node(kind).id for kind in kinds]
    for source, target in zip(ids, ids[1:]):
        graph.connect(source, target)
    return ids


def fingerprint(graph: AgentGraph):
    return graph.snapshot().model_dump()


class TestAddRemove:
    def test_add_node_applies_registry_defaults(self):
        graph = AgentGraph(agent_id="bot")

        node = graph.add_node("memory", position={"x": 10, "y": 20})

        assert node.id in graph
        assert node.data["max_messages"] == 20
        assert node.position == Position(x=10, y=20)

    def test_add_node_overrides_merge_with_defaults(self):
        graph = AgentGraph()

        node = graph.add_node("llm", data={"temperature": 0.1})

        assert node.data["temperature"] == 0.1
        assert node.data["provider"] == "anthropic"

    def test_unknown_kind_rejected(self):
        graph = AgentGraph()

        with pytest.raises(UnknownNodeKind):
            graph.add_node("teleport")

        assert len(graph) == 0

    def test_duplicate_node_id_rejected(self):
        graph = AgentGraph()
        graph.add_node("input", node_id="n1")

        with pytest.raises(InvalidEndpoint):
            graph.add_node("output", node_id="n1")

        assert graph.get_node("n1").kind == "input"

    def test_remove_node_cascades_edges(self):
        graph = AgentGraph()
        a, b, c = chain(graph, "input", "transform", "output")

        graph.remove_node(b)

        assert b not in graph
        assert graph.edges == []
        assert {n.id for n in graph.nodes} == {a, c}

    def test_remove_missing_node_rejected(self):
        with pytest.raises(InvalidEndpoint):
            AgentGraph().remove_node("ghost")


class TestConnect:
    def test_connect_creates_edge(self):
        graph = AgentGraph()
        a = graph.add_node("input").id
        b = graph.add_node("output").id

        edge = graph.connect(a, b)

        assert (edge.source, edge.target) == (a, b)
        assert graph.get_edge(edge.id) == edge

    def test_connect_same_link_is_idempotent(self):
        graph = AgentGraph()
        a = graph.add_node("input").id
        b = graph.add_node("output").id

        first = graph.connect(a, b)
        second = graph.connect(a, b)

        assert first.id == second.id
        assert len(graph.edges) == 1

    def test_missing_endpoint_rejected(self):
        graph = AgentGraph()
        a = graph.add_node("input").id
        before = fingerprint(graph)

        with pytest.raises(InvalidEndpoint):
            graph.connect(a, "ghost")

        assert fingerprint(graph) == before

    def test_terminal_source_rejected(self):
        graph = AgentGraph()
        out = graph.add_node("output").id
        t = graph.add_node("transform").id

        with pytest.raises(InvalidEndpoint, match="terminal"):
            graph.connect(out, t)

    def test_self_loop_rejected(self):
        graph = AgentGraph()
        t = graph.add_node("transform").id

        with pytest.raises(CycleDetected):
            graph.connect(t, t)

        assert graph.edges == []

    def test_back_edge_rejected_and_graph_unchanged(self):
        graph = AgentGraph()
        a = graph.add_node("transform").id
        b = graph.add_node("transform").id
        graph.connect(a, b)
        before = fingerprint(graph)

        with pytest.raises(CycleDetected) as exc_info:
            graph.connect(b, a)

        assert fingerprint(graph) == before
        assert exc_info.value.source == b
        assert exc_info.value.target == a

    def test_long_cycle_rejected_with_path(self):
        graph = AgentGraph()
        a, b, c, d = chain(graph, "transform", "transform", "transform", "transform")

        with pytest.raises(CycleDetected) as exc_info:
            graph.connect(d, a)

        assert exc_info.value.path == [a, b, c, d, a]

    def test_disconnect(self):
        graph = AgentGraph()
        a = graph.add_node("input").id
        b = graph.add_node("output").id
        edge = graph.connect(a, b)

        graph.disconnect(edge.id)

        assert graph.edges == []
        with pytest.raises(InvalidEndpoint):
            graph.disconnect(edge.id)


class TestUpdateAndSnapshot:
    def test_update_node_data_merges(self):
        graph = AgentGraph()
        node = graph.add_node("llm")

        updated = graph.update_node_data(node.id, {"model": "claude-haiku-4-5"})

        assert updated.data["model"] == "claude-haiku-4-5"
        assert updated.data["temperature"] == 0.7

    def test_update_node_data_keeps_edges(self):
        graph = AgentGraph()
        a, b = chain(graph, "input", "output")

        graph.update_node_data(b, {"output_format": "json"})

        assert len(graph.edges) == 1

    def test_move_node(self):
        graph = AgentGraph()
        node = graph.add_node("input")

        graph.move_node(node.id, {"x": 5, "y": 6})

        assert graph.get_node(node.id).position == Position(x=5, y=6)

    def test_snapshot_is_isolated_from_later_edits(self):
        graph = AgentGraph(agent_id="bot")
        a, b = chain(graph, "input", "output")
        snapshot = graph.snapshot()

        graph.update_node_data(a, {"default_value": "changed"})
        graph.add_node("transform")

        assert len(snapshot.nodes) == 2
        assert snapshot.get_node(a).data["default_value"] == ""

    def test_round_trip_through_spec(self):
        graph = AgentGraph(agent_id="bot")
        chain(graph, "input", "memory", "output")

        rebuilt = AgentGraph.from_spec(graph.to_spec())

        assert fingerprint(rebuilt) == fingerprint(graph)
        assert rebuilt.validate().valid
