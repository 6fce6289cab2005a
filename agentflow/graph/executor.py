"""
Graph Executor - Runs one traversal of an agent graph.

The executor:
1. Takes a frozen GraphSpec, its topological order and a running record
2. Visits nodes strictly one at a time, in order
3. Feeds each node the outputs of its direct predecessors
4. Appends one StepRecord per visited node and publishes every transition
5. Stops at the first failure or at the first node boundary after a cancel

Scheduling, the one-run-per-agent rule and the ledger live in
``agentflow.runtime.coordinator``; this module only walks the graph.
"""

import asyncio
import logging
import uuid
from typing import Any

from agentflow.config import RuntimeConfig
from agentflow.errors import Cancelled
from agentflow.graph.edge import GraphSpec
from agentflow.graph.node import Node
from agentflow.graph.registry import NodeRegistry
from agentflow.observability import set_trace_context
from agentflow.runtime.event_bus import EventBus, EventType
from agentflow.runtime.node_runtime import NodeContext, NodeRuntime
from agentflow.schemas.execution import ExecutionRecord, StepRecord


class GraphExecutor:
    """
    Executes one run of a graph against a triggering input.

    Example:
        executor = GraphExecutor(runtime=builtin_runtime(), event_bus=bus)
        record = ExecutionRecord(id="exec-1", agent_id="bot", input="hello")
        await executor.run(spec, compute_order(spec), record, asyncio.Event())
        assert record.status == ExecutionStatus.COMPLETED
    """

    def __init__(
        self,
        runtime: NodeRuntime,
        registry: NodeRegistry | None = None,
        event_bus: EventBus | None = None,
        node_timeout_seconds: float | None = None,
        runtime_config: RuntimeConfig | None = None,
    ):
        """
        Initialize the executor.

        Args:
            runtime: Capability that performs each node's work
            registry: Used to recognise trigger kinds; optional
            event_bus: Receives STEP_* and EXECUTION_STARTED events
            node_timeout_seconds: Per-node deadline; expiry is a node failure
            runtime_config: Model defaults; each node gets them as ``context.settings``
        """
        self.runtime = runtime
        self.registry = registry
        self.node_timeout_seconds = node_timeout_seconds
        self.runtime_config = runtime_config
        self.logger = logging.getLogger(__name__)
        self._event_bus = event_bus

    async def run(
        self,
        graph: GraphSpec,
        order: list[str],
        record: ExecutionRecord,
        cancel_requested: asyncio.Event,
    ) -> ExecutionRecord:
        """
        Visit ``order`` and drive ``record`` to a terminal status.

        Never raises for node failures or cancels; those end up on the
        record. Task cancellation (shutdown) is recorded, then re-raised.
        """
        outputs: dict[str, Any] = {}

        if self._event_bus is not None:
            await self._event_bus.emit_execution_started(record.agent_id, record.id, record.input)

        self.logger.info(f"🚀 Executing {len(order)} node(s) for agent '{record.agent_id}'")

        for index, node_id in enumerate(order, start=1):
            if cancel_requested.is_set():
                self.logger.info(f"⏹ Cancelled before step {index}/{len(order)}")
                record.fail(str(Cancelled()), cancelled=True)
                return record

            node = graph.get_node(node_id)
            if node is None:
                # Order and snapshot come from the same GraphSpec
                raise KeyError(f"Node '{node_id}' missing from graph snapshot")

            predecessors = graph.predecessors(node_id)
            node_input = self._gather_input(node, predecessors, outputs, record.input)

            step = StepRecord(
                id=uuid.uuid4().hex[:12],
                node_id=node.id,
                node_kind=node.kind,
                label=node.label,
                input=node_input,
            )
            record.append_step(step)
            set_trace_context(node_id=node.id)
            await self._emit(EventType.STEP_STARTED, record, step)

            context = NodeContext(
                agent_id=record.agent_id,
                execution_id=record.id,
                node_id=node.id,
                trigger_input=record.input,
                predecessor_ids=predecessors,
                settings=self._settings_for(node),
            )

            try:
                result = await self._invoke(node, node_input, context)
            except asyncio.CancelledError:
                step.fail("Cancelled")
                record.fail("Execution cancelled during shutdown", cancelled=True)
                await self._emit(EventType.STEP_FAILED, record, step)
                raise
            except Exception as e:
                cause = self._describe(e)
                step.fail(cause)
                await self._emit(EventType.STEP_FAILED, record, step)
                self.logger.error(
                    f"❌ Step {index}/{len(order)} '{node.label}' failed: {cause}",
                    extra={"event": "step_failed", "step_id": step.id, "node_kind": node.kind},
                )
                record.fail(f"Node '{node.label}' ({node.id}) failed: {cause}")
                return record

            step.complete(result.output, tokens=result.tokens_used)
            outputs[node.id] = result.output
            await self._emit(EventType.STEP_COMPLETED, record, step)
            self.logger.info(
                f"✓ Step {index}/{len(order)} '{node.label}' completed",
                extra={
                    "event": "step_completed",
                    "step_id": step.id,
                    "node_kind": node.kind,
                    "duration_ms": step.duration_ms,
                    "tokens_used": step.tokens,
                },
            )

        record.complete(self._final_result(graph, outputs))
        self.logger.info(
            f"🏁 Execution completed in {record.duration_ms}ms ({record.total_tokens} tokens)"
        )
        return record

    def _gather_input(
        self,
        node: Node,
        predecessors: list[str],
        outputs: dict[str, Any],
        trigger_input: Any,
    ) -> Any:
        """Trigger kinds and roots read the run input; fan-in yields {source_id: output}."""
        definition = self.registry.get(node.kind) if self.registry is not None else None
        if (definition is not None and definition.is_trigger) or not predecessors:
            return trigger_input
        if len(predecessors) == 1:
            return outputs.get(predecessors[0])
        return {source_id: outputs.get(source_id) for source_id in predecessors}

    async def _invoke(self, node: Node, node_input: Any, context: NodeContext):
        call = self.runtime.invoke(node.kind, dict(node.data), node_input, context)
        if self.node_timeout_seconds is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.node_timeout_seconds)
        except TimeoutError as e:
            raise TimeoutError(f"timed out after {self.node_timeout_seconds:g}s") from e

    def _settings_for(self, node: Node) -> RuntimeConfig | None:
        if self.runtime_config is None:
            return None
        return self.runtime_config.for_node(node.data)

    def _final_result(self, graph: GraphSpec, outputs: dict[str, Any]) -> Any:
        terminals = graph.terminal_nodes()
        if not terminals:
            return None
        if len(terminals) == 1:
            return outputs.get(terminals[0])
        return {node_id: outputs.get(node_id) for node_id in terminals}

    @staticmethod
    def _describe(error: Exception) -> str:
        message = str(error).strip()
        return message if message else type(error).__name__

    async def _emit(self, event_type: EventType, record: ExecutionRecord, step: StepRecord) -> None:
        if self._event_bus is not None:
            await self._event_bus.emit_step(event_type, record.agent_id, record.id, step)
