"""Tests for the EventBus pub/sub channel."""

import asyncio

import pytest

from agentflow.runtime.event_bus import AgentEvent, EventBus, EventType
from agentflow.schemas.execution import StepRecord


def step(node_id: str = "n1") -> StepRecord:
    return StepRecord(id=f"s-{node_id}", node_id=node_id, node_kind="transform")


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_publish_reaches_matching_subscriber(self):
        bus = EventBus()
        received: list[AgentEvent] = []

        async def handler(event):
            received.append(event)

        bus.subscribe([EventType.STEP_STARTED], handler)
        await bus.emit_step(EventType.STEP_STARTED, "bot", "exec-1", step())
        await bus.emit_step(EventType.STEP_COMPLETED, "bot", "exec-1", step())

        assert [e.type for e in received] == [EventType.STEP_STARTED]

    @pytest.mark.asyncio
    async def test_execution_filter(self):
        bus = EventBus()
        received = []

        async def handler(event):
            received.append(event.execution_id)

        bus.subscribe([EventType.STEP_STARTED], handler, filter_execution="exec-2")
        await bus.emit_step(EventType.STEP_STARTED, "bot", "exec-1", step())
        await bus.emit_step(EventType.STEP_STARTED, "bot", "exec-2", step())

        assert received == ["exec-2"]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = EventBus()
        received = []

        async def handler(event):
            received.append(event)

        sub_id = bus.subscribe([EventType.CUSTOM], handler)

        assert bus.unsubscribe(sub_id) is True
        assert bus.unsubscribe(sub_id) is False
        await bus.publish(AgentEvent(type=EventType.CUSTOM, agent_id="bot", execution_id="x"))
        assert received == []

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_break_publish(self):
        bus = EventBus()
        received = []

        async def broken(event):
            raise RuntimeError("subscriber bug")

        async def healthy(event):
            received.append(event)

        bus.subscribe([EventType.CUSTOM], broken)
        bus.subscribe([EventType.CUSTOM], healthy)
        await bus.publish(AgentEvent(type=EventType.CUSTOM, agent_id="bot", execution_id="x"))

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_step_event_carries_snapshot(self):
        bus = EventBus()
        received = []

        async def handler(event):
            received.append(event)

        bus.subscribe([EventType.STEP_STARTED], handler)
        live = step()
        await bus.emit_step(EventType.STEP_STARTED, "bot", "exec-1", live)
        live.complete("done")

        assert received[0].step.output is None
        assert received[0].node_id == "n1"

    @pytest.mark.asyncio
    async def test_cancelled_run_emits_cancelled_event(self):
        bus = EventBus()

        await bus.emit_execution_failed("bot", "exec-1", "Execution cancelled", cancelled=True)

        assert bus.get_history()[0].type == EventType.EXECUTION_CANCELLED


class TestHistory:
    @pytest.mark.asyncio
    async def test_history_newest_first_and_bounded(self):
        bus = EventBus(max_history=3)
        for i in range(5):
            await bus.emit_step(EventType.STEP_STARTED, "bot", "exec-1", step(f"n{i}"))

        history = bus.get_history()

        assert [e.node_id for e in history] == ["n4", "n3", "n2"]
        assert bus.get_stats()["total_events"] == 3

    @pytest.mark.asyncio
    async def test_to_dict(self):
        bus = EventBus()
        await bus.emit_step(EventType.STEP_STARTED, "bot", "exec-1", step())

        data = bus.get_history()[0].to_dict()

        assert data["type"] == "step_started"
        assert data["step"]["node_id"] == "n1"


class TestWaitingAndStreaming:
    @pytest.mark.asyncio
    async def test_wait_for_times_out(self):
        bus = EventBus()

        assert await bus.wait_for(EventType.EXECUTION_COMPLETED, timeout=0.01) is None

    @pytest.mark.asyncio
    async def test_wait_for_receives_event(self):
        bus = EventBus()
        waiter = asyncio.create_task(
            bus.wait_for(EventType.EXECUTION_COMPLETED, execution_id="exec-1", timeout=1)
        )
        await asyncio.sleep(0)

        await bus.emit_execution_completed("bot", "exec-1", "ok")

        event = await waiter
        assert event.data["result"] == "ok"

    @pytest.mark.asyncio
    async def test_stream_replays_history_then_stops_at_terminal(self):
        bus = EventBus()
        await bus.emit_execution_started("bot", "exec-1", "hi")
        await bus.emit_step(EventType.STEP_STARTED, "bot", "exec-1", step())

        async def finish_later():
            await asyncio.sleep(0.01)
            await bus.emit_step(EventType.STEP_COMPLETED, "bot", "exec-1", step())
            await bus.emit_step(EventType.STEP_STARTED, "bot", "other", step())
            await bus.emit_execution_completed("bot", "exec-1", "done")

        task = asyncio.create_task(finish_later())
        seen = [event.type async for event in bus.stream("exec-1")]
        await task

        assert seen == [
            EventType.EXECUTION_STARTED,
            EventType.STEP_STARTED,
            EventType.STEP_COMPLETED,
            EventType.EXECUTION_COMPLETED,
        ]
