"""
Event Bus - Pub/sub channel for live execution events.

The executor publishes one event per StepRecord transition (running ->
completed/failed) plus run lifecycle events. ``publish`` is awaited by the
executor before it moves on, so every subscriber observes events in exactly
the order the steps were appended to the record.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from agentflow.schemas.execution import StepRecord

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Types of events that can be published."""

    # Execution lifecycle
    EXECUTION_STARTED = "execution_started"
    EXECUTION_COMPLETED = "execution_completed"
    EXECUTION_FAILED = "execution_failed"
    EXECUTION_CANCELLED = "execution_cancelled"

    # Step transitions
    STEP_STARTED = "step_started"
    STEP_COMPLETED = "step_completed"
    STEP_FAILED = "step_failed"

    # Custom events
    CUSTOM = "custom"


STEP_EVENTS = frozenset({EventType.STEP_STARTED, EventType.STEP_COMPLETED, EventType.STEP_FAILED})
TERMINAL_EVENTS = frozenset(
    {EventType.EXECUTION_COMPLETED, EventType.EXECUTION_FAILED, EventType.EXECUTION_CANCELLED}
)


@dataclass
class AgentEvent:
    """An event about one execution."""

    type: EventType
    agent_id: str
    execution_id: str
    node_id: str | None = None
    step: StepRecord | None = None  # Snapshot of the step at this transition
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "type": self.type.value,
            "agent_id": self.agent_id,
            "execution_id": self.execution_id,
            "node_id": self.node_id,
            "step": self.step.model_dump(mode="json") if self.step else None,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


# Type for event handlers
EventHandler = Callable[[AgentEvent], Awaitable[None]]


@dataclass
class Subscription:
    """A subscription to events."""

    id: str
    event_types: set[EventType]
    handler: EventHandler
    filter_agent: str | None = None  # Only receive events for this agent
    filter_execution: str | None = None  # Only receive events for this execution
    filter_node: str | None = None  # Only receive events from this node


class EventBus:
    """
    Pub/sub event bus for execution events.

    Features:
    - Async event handling, awaited by the publisher
    - Type-based subscriptions with agent/execution/node filters
    - Bounded event history for late readers and debugging

    Example:
        bus = EventBus()

        async def on_step(event: AgentEvent):
            print(event.step.node_id, event.step.status)

        bus.subscribe(event_types=list(STEP_EVENTS), handler=on_step)
    """

    def __init__(
        self,
        max_history: int = 1000,
        max_concurrent_handlers: int = 10,
    ):
        """
        Initialize event bus.

        Args:
            max_history: Maximum events to keep in history
            max_concurrent_handlers: Maximum concurrent handler executions
        """
        self._subscriptions: dict[str, Subscription] = {}
        self._event_history: list[AgentEvent] = []
        self._max_history = max_history
        self._semaphore = asyncio.Semaphore(max_concurrent_handlers)
        self._subscription_counter = 0
        self._lock = asyncio.Lock()

    def subscribe(
        self,
        event_types: list[EventType],
        handler: EventHandler,
        filter_agent: str | None = None,
        filter_execution: str | None = None,
        filter_node: str | None = None,
    ) -> str:
        """
        Subscribe to events.

        Returns:
            Subscription ID (use to unsubscribe)
        """
        self._subscription_counter += 1
        sub_id = f"sub_{self._subscription_counter}"

        self._subscriptions[sub_id] = Subscription(
            id=sub_id,
            event_types=set(event_types),
            handler=handler,
            filter_agent=filter_agent,
            filter_execution=filter_execution,
            filter_node=filter_node,
        )
        logger.debug(f"Subscription {sub_id} registered for {sorted(event_types)}")
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a subscription. Returns True if it existed."""
        if subscription_id in self._subscriptions:
            del self._subscriptions[subscription_id]
            logger.debug(f"Subscription {subscription_id} removed")
            return True
        return False

    async def publish(self, event: AgentEvent) -> None:
        """Publish an event and wait until every matching handler has run."""
        async with self._lock:
            self._event_history.append(event)
            if len(self._event_history) > self._max_history:
                self._event_history = self._event_history[-self._max_history :]

        matching_handlers = [
            sub.handler for sub in list(self._subscriptions.values()) if self._matches(sub, event)
        ]
        if matching_handlers:
            await self._execute_handlers(event, matching_handlers)

    def _matches(self, subscription: Subscription, event: AgentEvent) -> bool:
        """Check if a subscription matches an event."""
        if event.type not in subscription.event_types:
            return False
        if subscription.filter_agent and subscription.filter_agent != event.agent_id:
            return False
        if subscription.filter_execution and subscription.filter_execution != event.execution_id:
            return False
        if subscription.filter_node and subscription.filter_node != event.node_id:
            return False
        return True

    async def _execute_handlers(self, event: AgentEvent, handlers: list[EventHandler]) -> None:
        """Run handlers concurrently; a failing handler never affects the run."""

        async def run_handler(handler: EventHandler) -> None:
            async with self._semaphore:
                try:
                    await handler(event)
                except Exception as e:
                    logger.error(f"Handler error for {event.type}: {e}")

        await asyncio.gather(*[run_handler(h) for h in handlers], return_exceptions=True)

    # === CONVENIENCE PUBLISHERS ===

    async def emit_execution_started(
        self, agent_id: str, execution_id: str, input_data: Any = None
    ) -> None:
        await self.publish(
            AgentEvent(
                type=EventType.EXECUTION_STARTED,
                agent_id=agent_id,
                execution_id=execution_id,
                data={"input": input_data},
            )
        )

    async def emit_step(
        self, event_type: EventType, agent_id: str, execution_id: str, step: StepRecord
    ) -> None:
        """Emit a step transition carrying a copy of the step as it is now."""
        await self.publish(
            AgentEvent(
                type=event_type,
                agent_id=agent_id,
                execution_id=execution_id,
                node_id=step.node_id,
                step=step.model_copy(deep=True),
            )
        )

    async def emit_execution_completed(self, agent_id: str, execution_id: str, result: Any) -> None:
        await self.publish(
            AgentEvent(
                type=EventType.EXECUTION_COMPLETED,
                agent_id=agent_id,
                execution_id=execution_id,
                data={"result": result},
            )
        )

    async def emit_execution_failed(
        self, agent_id: str, execution_id: str, error: str, cancelled: bool = False
    ) -> None:
        await self.publish(
            AgentEvent(
                type=EventType.EXECUTION_CANCELLED if cancelled else EventType.EXECUTION_FAILED,
                agent_id=agent_id,
                execution_id=execution_id,
                data={"error": error},
            )
        )

    # === QUERY OPERATIONS ===

    def get_history(
        self,
        event_type: EventType | None = None,
        agent_id: str | None = None,
        execution_id: str | None = None,
        limit: int = 100,
    ) -> list[AgentEvent]:
        """
        Get event history with optional filtering.

        Returns:
            List of matching events (most recent first)
        """
        events = self._event_history[::-1]
        if event_type:
            events = [e for e in events if e.type == event_type]
        if agent_id:
            events = [e for e in events if e.agent_id == agent_id]
        if execution_id:
            events = [e for e in events if e.execution_id == execution_id]
        return events[:limit]

    def get_stats(self) -> dict:
        """Get event bus statistics."""
        type_counts: dict[str, int] = {}
        for event in self._event_history:
            type_counts[event.type.value] = type_counts.get(event.type.value, 0) + 1
        return {
            "total_events": len(self._event_history),
            "subscriptions": len(self._subscriptions),
            "events_by_type": type_counts,
        }

    # === WAITING OPERATIONS ===

    async def wait_for(
        self,
        event_type: EventType,
        execution_id: str | None = None,
        agent_id: str | None = None,
        timeout: float | None = None,
    ) -> AgentEvent | None:
        """
        Wait for a specific event to occur.

        Returns:
            The event if received, None if timeout
        """
        result: AgentEvent | None = None
        event_received = asyncio.Event()

        async def handler(event: AgentEvent) -> None:
            nonlocal result
            result = event
            event_received.set()

        sub_id = self.subscribe(
            event_types=[event_type],
            handler=handler,
            filter_agent=agent_id,
            filter_execution=execution_id,
        )
        try:
            if timeout:
                try:
                    await asyncio.wait_for(event_received.wait(), timeout=timeout)
                except TimeoutError:
                    return None
            else:
                await event_received.wait()
            return result
        finally:
            self.unsubscribe(sub_id)

    async def stream(self, execution_id: str) -> AsyncIterator[AgentEvent]:
        """
        Iterate one execution's events in publish order, ending after the
        terminal lifecycle event.

        Events already in history are replayed first, so a reader that
        attaches after ``start()`` returned still sees the whole run as
        long as it fits in ``max_history``.
        """
        queue: asyncio.Queue[AgentEvent] = asyncio.Queue()

        async def handler(event: AgentEvent) -> None:
            queue.put_nowait(event)

        # Subscribe and snapshot history with no await in between: every event
        # lands in exactly one of the two.
        sub_id = self.subscribe(
            event_types=list(EventType),
            handler=handler,
            filter_execution=execution_id,
        )
        for past in [e for e in self._event_history if e.execution_id == execution_id]:
            queue.put_nowait(past)
        try:
            while True:
                event = await queue.get()
                yield event
                if event.type in TERMINAL_EVENTS:
                    return
        finally:
            self.unsubscribe(sub_id)
