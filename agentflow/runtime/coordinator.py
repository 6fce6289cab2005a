"""
Execution Coordinator - starts, tracks and cancels agent runs.

Each agent is its own scheduling domain: at most one run per agent is in
flight, while runs for different agents proceed concurrently. A run is an
``asyncio.Task`` driving a ``GraphExecutor`` over a frozen snapshot of the
graph taken at ``start()``, so editing the live graph never reaches a run
already in progress.

Lifecycle of a run:
    start()  -> validate, claim the agent slot, order, create record, spawn task
    task     -> GraphExecutor.run() publishes EXECUTION_STARTED and STEP_* events
    finalize -> append to ledger, release slot, publish the terminal event
"""

import asyncio
import copy
import logging
import uuid
from collections.abc import AsyncIterator
from typing import Any

from agentflow.config import CoordinatorConfig, RuntimeConfig
from agentflow.errors import AlreadyRunning, GraphIntegrityError, InvalidGraph
from agentflow.graph.edge import GraphSpec
from agentflow.graph.executor import GraphExecutor
from agentflow.graph.flow import AgentGraph
from agentflow.graph.registry import NodeRegistry, default_registry
from agentflow.graph.validator import compute_order, validate_graph
from agentflow.observability import set_trace_context
from agentflow.runtime.event_bus import STEP_EVENTS, AgentEvent, EventBus, EventHandler
from agentflow.runtime.node_runtime import NodeRuntime
from agentflow.schemas.execution import ExecutionRecord, ExecutionStatus
from agentflow.storage.ledger import ExecutionLedger

logger = logging.getLogger(__name__)


class ExecutionCoordinator:
    """
    Turns a graph plus a triggering input into a traced ExecutionRecord.

    Example:
        coordinator = ExecutionCoordinator(runtime=builtin_runtime())

        async def on_step(event):
            render(event.execution_id, event.step)

        coordinator.subscribe(on_step)
        exec_id = await coordinator.start(graph, "hello")
        record = await coordinator.wait_for_completion(exec_id)
    """

    def __init__(
        self,
        runtime: NodeRuntime,
        registry: NodeRegistry | None = None,
        ledger: ExecutionLedger | None = None,
        event_bus: EventBus | None = None,
        config: CoordinatorConfig | None = None,
        runtime_config: RuntimeConfig | None = None,
    ):
        """
        Initialize the coordinator.

        Args:
            runtime: Node runtime every run delegates node work to
            registry: Node kinds used for validation (default: built-in catalog)
            ledger: Receives each record once terminal (default: in-memory ledger
                rooted at ``config.storage_path``)
            event_bus: Live event channel (default: a private EventBus)
            config: Execution settings (default: loaded from configuration file)
            runtime_config: Model defaults passed to node handlers (default: loaded
                from configuration file)
        """
        self.config = config if config is not None else CoordinatorConfig()
        self.runtime = runtime
        if runtime_config is None:
            runtime_config = RuntimeConfig()
        self.runtime_config = runtime_config
        self.registry = registry if registry is not None else default_registry()
        if ledger is None:
            ledger = ExecutionLedger(base_path=self.config.storage_path)
        self.ledger = ledger
        if event_bus is None:
            event_bus = EventBus(max_history=self.config.max_event_history)
        self.event_bus = event_bus

        # Execution tracking, keyed per execution and per agent
        self._records: dict[str, ExecutionRecord] = {}
        self._running_by_agent: dict[str, str] = {}
        self._cancel_flags: dict[str, asyncio.Event] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._completion_events: dict[str, asyncio.Event] = {}
        self._lock = asyncio.Lock()

    # === RUN CONTROL ===

    async def start(
        self,
        graph: AgentGraph | GraphSpec,
        input_data: Any = None,
        agent_id: str | None = None,
    ) -> str:
        """
        Start a run and return its execution id without waiting for it.

        Raises:
            InvalidGraph: If validation fails; nothing is started
            AlreadyRunning: If the agent already has a run in flight
            GraphIntegrityError: If ordering finds a cycle validation missed
        """
        if isinstance(graph, AgentGraph):
            spec = graph.snapshot()
        else:
            spec = graph.model_copy(deep=True)
        agent_id = agent_id or spec.agent_id
        if not agent_id:
            raise ValueError("An agent_id is required to start an execution")

        validation = validate_graph(spec, self.registry)
        if not validation.valid:
            logger.warning(f"Refusing to start agent '{agent_id}': {validation.error}")
            raise InvalidGraph(validation.errors)

        async with self._lock:
            current = self._running_by_agent.get(agent_id)
            if current is not None:
                raise AlreadyRunning(agent_id, current)

            try:
                order = compute_order(spec)
            except GraphIntegrityError:
                logger.critical(
                    f"Graph for agent '{agent_id}' passed validation but is cyclic",
                    exc_info=True,
                )
                raise

            execution_id = f"exec_{uuid.uuid4().hex[:12]}"
            record = ExecutionRecord(
                id=execution_id, agent_id=agent_id, input=copy.deepcopy(input_data)
            )
            cancel_flag = asyncio.Event()

            self._records[execution_id] = record
            self._running_by_agent[agent_id] = execution_id
            self._cancel_flags[execution_id] = cancel_flag
            self._completion_events[execution_id] = asyncio.Event()
            self._tasks[execution_id] = asyncio.create_task(
                self._run_execution(spec, order, record, cancel_flag),
                name=execution_id,
            )

        logger.info(f"Started execution {execution_id} for agent '{agent_id}'")
        return execution_id

    def cancel(self, execution_id: str) -> bool:
        """
        Request cooperative cancellation; takes effect at the next node boundary.

        Returns:
            True if the run is in flight and the request was registered, False
            otherwise. A run whose last node has already started still completes.
        """
        record = self._records.get(execution_id)
        flag = self._cancel_flags.get(execution_id)
        if record is None or flag is None or record.is_terminal:
            return False
        flag.set()
        logger.info(f"Cancellation requested for execution {execution_id}")
        return True

    async def _run_execution(
        self,
        spec: GraphSpec,
        order: list[str],
        record: ExecutionRecord,
        cancel_flag: asyncio.Event,
    ) -> None:
        """Run a single execution and finalize it whatever happens."""
        set_trace_context(execution_id=record.id, agent_id=record.agent_id)
        executor = GraphExecutor(
            runtime=self.runtime,
            registry=self.registry,
            event_bus=self.event_bus,
            node_timeout_seconds=self.config.node_timeout_seconds,
            runtime_config=self.runtime_config,
        )
        try:
            await executor.run(spec, order, record, cancel_flag)
        except asyncio.CancelledError:
            if not record.is_terminal:
                record.fail("Execution cancelled during shutdown", cancelled=True)
            raise
        except Exception as e:
            logger.exception(f"Execution {record.id} crashed: {e}")
            if not record.is_terminal:
                record.fail(f"Internal error: {e}")
        finally:
            await self._finalize(record)

    async def _finalize(self, record: ExecutionRecord) -> None:
        try:
            await self.ledger.append_async(record)
        except Exception as e:
            # The in-memory record is still terminal; only persistence failed
            logger.error(f"Failed to persist execution {record.id}: {e}")

        async with self._lock:
            if self._running_by_agent.get(record.agent_id) == record.id:
                del self._running_by_agent[record.agent_id]
            self._cancel_flags.pop(record.id, None)
            self._tasks.pop(record.id, None)

        if record.status == ExecutionStatus.COMPLETED:
            await self.event_bus.emit_execution_completed(record.agent_id, record.id, record.result)
        else:
            await self.event_bus.emit_execution_failed(
                record.agent_id, record.id, record.error or "", cancelled=record.cancelled
            )

        logger.info(f"Execution {record.id} finished: {record.status}")
        completion = self._completion_events.pop(record.id, None)
        self._records.pop(record.id, None)
        if completion is not None:
            completion.set()

    # === QUERIES ===

    def get_record(self, execution_id: str) -> ExecutionRecord | None:
        """Point-in-time copy of a record; partial while the run is in flight."""
        record = self._records.get(execution_id)
        if record is not None:
            return record.model_copy(deep=True)
        return self.ledger.get(execution_id)

    def is_running(self, agent_id: str) -> bool:
        return agent_id in self._running_by_agent

    def running_execution(self, agent_id: str) -> str | None:
        return self._running_by_agent.get(agent_id)

    def active_executions(self) -> dict[str, str]:
        """Map of agent_id -> execution_id for runs in flight."""
        return dict(self._running_by_agent)

    async def wait_for_completion(
        self, execution_id: str, timeout: float | None = None
    ) -> ExecutionRecord | None:
        """
        Wait for a run to finish.

        Returns:
            The terminal record, or None on timeout or unknown id
        """
        event = self._completion_events.get(execution_id)
        if event is not None:
            try:
                if timeout is not None:
                    await asyncio.wait_for(event.wait(), timeout=timeout)
                else:
                    await event.wait()
            except TimeoutError:
                return None
        return self.ledger.get(execution_id)

    # === LIVE FEED ===

    def subscribe(
        self,
        handler: EventHandler,
        execution_id: str | None = None,
        agent_id: str | None = None,
    ) -> str:
        """Receive every step transition (as AgentEvent with ``step`` set) in trace order."""
        return self.event_bus.subscribe(
            event_types=list(STEP_EVENTS),
            handler=handler,
            filter_agent=agent_id,
            filter_execution=execution_id,
        )

    def unsubscribe(self, subscription_id: str) -> bool:
        return self.event_bus.unsubscribe(subscription_id)

    def stream(self, execution_id: str) -> AsyncIterator[AgentEvent]:
        """All events of one run, replayed from history then live, until terminal."""
        return self.event_bus.stream(execution_id)

    # === SHUTDOWN ===

    async def shutdown(self) -> None:
        """Cancel every in-flight run and wait for each to be finalized."""
        tasks = list(self._tasks.values())
        for task in tasks:
            if not task.done():
                task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info(f"Coordinator shut down ({len(tasks)} run(s) interrupted)")
