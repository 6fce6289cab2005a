"""
Node Runtime - the capability that performs a node's actual work.

The executor never knows how a kind is implemented; it calls
``NodeRuntime.invoke(kind, data, input, context)`` and gets back a
``NodeResult`` or an exception. ``KindDispatchRuntime`` is a dispatch
table keyed by kind string. Model and HTTP handlers are supplied by the
host application; ``builtin_runtime()`` covers the local kinds that need
no external service. Handlers read model settings from ``ctx.settings``.

Example:
    runtime = builtin_runtime()

    async def call_model(data, node_input, ctx):
        text = await my_client.complete(ctx.settings.model, node_input)
        return NodeResult(output=text, tokens_used=len(text.split()))

    runtime.register("llm", call_model)
"""

from __future__ import annotations

import inspect
import json
import logging
import re
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from agentflow.config import RuntimeConfig
from agentflow.errors import NodeRuntimeError

logger = logging.getLogger(__name__)


@dataclass
class NodeResult:
    """Outcome of one successful node invocation."""

    output: Any = None
    tokens_used: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class NodeContext:
    """Read-only facts about the invocation, for handlers that need them."""

    agent_id: str
    execution_id: str
    node_id: str
    trigger_input: Any = None
    predecessor_ids: list[str] = field(default_factory=list)
    settings: RuntimeConfig | None = None


@runtime_checkable
class NodeRuntime(Protocol):
    """External capability keyed by node kind."""

    async def invoke(
        self, kind: str, data: dict[str, Any], node_input: Any, context: NodeContext
    ) -> NodeResult: ...


# Returns a NodeResult, a bare output value, or an awaitable of either
NodeHandler = Callable[[dict[str, Any], Any, NodeContext], Any]


class KindDispatchRuntime:
    """
    NodeRuntime backed by a table of handlers keyed by kind.

    Handlers may be sync or async and may return a ``NodeResult`` or a bare
    value (treated as output with zero tokens). Exceptions propagate to the
    executor, which records them as the node's failure.
    """

    def __init__(self, handlers: dict[str, NodeHandler] | None = None):
        self._handlers: dict[str, NodeHandler] = dict(handlers or {})

    def register(self, kind: str, handler: NodeHandler) -> None:
        """Bind ``handler`` to ``kind``, replacing any previous binding."""
        self._handlers[kind] = handler
        logger.debug(f"Runtime handler bound for kind '{kind}'")

    def supports(self, kind: str) -> bool:
        return kind in self._handlers

    def kinds(self) -> list[str]:
        return list(self._handlers)

    async def invoke(
        self, kind: str, data: dict[str, Any], node_input: Any, context: NodeContext
    ) -> NodeResult:
        handler = self._handlers.get(kind)
        if handler is None:
            raise NodeRuntimeError(f"No runtime handler registered for node kind '{kind}'")

        result = handler(data, node_input, context)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, NodeResult):
            return result
        return NodeResult(output=result)


# ---------------------------------------------------------------------------
# Built-in handlers for pure kinds
# ---------------------------------------------------------------------------


def stringify(value: Any) -> str:
    """Render a value as text for piping between text-shaped nodes."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, indent=2, default=str)
    except (TypeError, ValueError):
        return str(value)


def _input_handler(data: dict[str, Any], node_input: Any, ctx: NodeContext) -> Any:
    return data.get("default_value") or ctx.trigger_input


def _trigger_handler(data: dict[str, Any], node_input: Any, ctx: NodeContext) -> Any:
    return ctx.trigger_input


def _output_handler(data: dict[str, Any], node_input: Any, ctx: NodeContext) -> Any:
    if data.get("output_format") == "json" and isinstance(node_input, str):
        try:
            return json.loads(node_input)
        except json.JSONDecodeError:
            return node_input
    return node_input


_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}


def _compile(pattern: str, flags: str = "") -> re.Pattern[str]:
    bits = 0
    for flag in flags:
        bits |= _REGEX_FLAGS.get(flag, 0)
    try:
        return re.compile(pattern, bits)
    except re.error as e:
        raise NodeRuntimeError(f"Invalid regex {pattern!r}: {e}") from e


def _as_json(node_input: Any) -> Any:
    if not isinstance(node_input, str):
        return node_input
    try:
        return json.loads(node_input)
    except json.JSONDecodeError as e:
        raise NodeRuntimeError(f"Invalid JSON input: {e.msg}") from e


def _select_path(value: Any, path: str) -> Any:
    """Follow a dotted path (``user.emails.0``); missing steps give None."""
    for part in path.removeprefix("$").strip(".").split("."):
        if not part or value is None:
            continue
        if isinstance(value, list):
            value = value[int(part)] if part.isdigit() and int(part) < len(value) else None
        elif isinstance(value, dict):
            value = value.get(part)
        else:
            value = None
    return value


def _tool_handler(data: dict[str, Any], node_input: Any, ctx: NodeContext) -> Any:
    tool_type = data.get("tool_type", "passthrough")
    config = data.get("config") or {}

    if tool_type == "passthrough":
        return node_input
    if tool_type == "template":
        template = str(config.get("template") or "{{input}}")
        return template.replace("{{input}}", stringify(node_input))
    if tool_type == "json_parse":
        try:
            return json.loads(stringify(node_input))
        except json.JSONDecodeError:
            return {"error": "Invalid JSON", "raw": node_input}
    if tool_type == "json_stringify":
        return json.dumps(node_input, indent=2, default=str)
    if tool_type == "regex":
        pattern = _compile(config.get("pattern") or ".*", config.get("flags", ""))
        return "\n".join(m.group(0) for m in pattern.finditer(stringify(node_input)) if m.group(0))
    raise NodeRuntimeError(f"Unknown tool_type '{tool_type}'")


def _transform_handler(data: dict[str, Any], node_input: Any, ctx: NodeContext) -> Any:
    transform_type = data.get("transform_type", "template")
    expression = str(data.get("expression") or "")
    text = stringify(node_input)

    if transform_type == "template":
        return (expression or "{{input}}").replace("{{input}}", text)
    if transform_type == "uppercase":
        return text.upper()
    if transform_type == "lowercase":
        return text.lower()
    if transform_type == "trim":
        return text.strip()
    if transform_type == "json_parse":
        return _as_json(text)
    if transform_type == "json_stringify":
        return json.dumps(node_input, indent=2, default=str)
    if transform_type == "jsonpath":
        return _select_path(_as_json(node_input), expression)
    if transform_type == "regex":
        match = _compile(expression).search(text)
        return match.group(0) if match else ""
    if transform_type == "split":
        return text.split(expression or ",")
    if transform_type == "join":
        items = _as_json(node_input)
        if not isinstance(items, list):
            raise NodeRuntimeError(f"join expects a list, got {type(items).__name__}")
        return (expression or ", ").join(stringify(item) for item in items)
    raise NodeRuntimeError(f"Unknown transform_type '{transform_type}'")


def _merge_items(node_input: Any, ctx: NodeContext) -> list[Any]:
    if isinstance(node_input, dict) and len(ctx.predecessor_ids) > 1:
        return [node_input.get(pid) for pid in ctx.predecessor_ids]
    if isinstance(node_input, list):
        return list(node_input)
    return [node_input]


def _merge_handler(data: dict[str, Any], node_input: Any, ctx: NodeContext) -> Any:
    merge_mode = data.get("merge_mode", "append")
    items = _merge_items(node_input, ctx)

    if merge_mode == "append":
        separator = data.get("separator", "\n\n")
        return separator.join(part for part in map(stringify, items) if part)
    if merge_mode == "first":
        return next((item for item in items if item is not None and item != ""), "")
    if merge_mode == "merge":
        if items and all(isinstance(item, dict) for item in items):
            merged: dict[str, Any] = {}
            for item in items:
                merged.update(item)
            return merged
        return "\n".join(stringify(item) for item in items)
    if merge_mode == "zip":
        columns = [item if isinstance(item, list) else [item] for item in items]
        width = max((len(column) for column in columns), default=0)
        return [
            [column[i] if i < len(column) else None for column in columns] for i in range(width)
        ]
    raise NodeRuntimeError(f"Unknown merge_mode '{merge_mode}'")


class MemoryBuffer:
    """
    Rolling per-agent message buffer backing the ``memory`` kind.

    Each invocation appends the node's input to the agent's window and trims
    it to ``max_messages``. With ``emit: "input"`` (the default) the node
    passes its input through unchanged; with ``emit: "history"`` it emits
    the whole window rendered as ``[role]: content`` lines.
    """

    def __init__(self) -> None:
        self._buffers: dict[str, deque[dict[str, str]]] = defaultdict(deque)

    def key(self, ctx: NodeContext, data: dict[str, Any]) -> str:
        return f"{ctx.agent_id}:{data.get('memory_type', 'buffer')}"

    def history(self, key: str) -> list[dict[str, str]]:
        return list(self._buffers.get(key, ()))

    def clear(self, agent_id: str | None = None) -> None:
        if agent_id is None:
            self._buffers.clear()
            return
        for key in [k for k in self._buffers if k.startswith(f"{agent_id}:")]:
            del self._buffers[key]

    def __call__(self, data: dict[str, Any], node_input: Any, ctx: NodeContext) -> Any:
        key = self.key(ctx, data)
        max_messages = int(data.get("max_messages", 20))
        window = self._buffers[key]

        text = stringify(node_input)
        if text:
            window.append({"role": "user", "content": text})
        while len(window) > max_messages:
            window.popleft()

        if data.get("emit") == "history":
            return "\n".join(f"[{m['role']}]: {m['content']}" for m in window)
        return node_input


def builtin_runtime(memory: MemoryBuffer | None = None) -> KindDispatchRuntime:
    """Runtime with handlers for every kind that needs no external service."""
    return KindDispatchRuntime(
        {
            "input": _input_handler,
            "chat_trigger": _trigger_handler,
            "memory": memory if memory is not None else MemoryBuffer(),
            "tool": _tool_handler,
            "transform": _transform_handler,
            "merge": _merge_handler,
            "output": _output_handler,
        }
    )
