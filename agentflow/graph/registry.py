"""
Node Registry - the static catalog of node kinds.

Maps a node kind to its capability contract: what input shape it accepts,
what output shape it produces, whether it ends a flow and whether its
runtime may suspend. The registry is populated once at process start and
frozen; after that it is read-only.
"""

from __future__ import annotations

import copy
import logging
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from agentflow.errors import UnknownNodeKind

logger = logging.getLogger(__name__)


class ShapeTag(StrEnum):
    """Coarse shape of the data flowing in or out of a node."""

    NONE = "none"
    TEXT = "text"
    JSON = "json"
    ANY = "any"


class NodeDefinition(BaseModel):
    """Capability contract for one node kind."""

    kind: str
    label: str = ""
    category: str = "general"
    accepts: ShapeTag = ShapeTag.ANY
    produces: ShapeTag = ShapeTag.ANY
    is_terminal: bool = Field(default=False, description="Ends a flow; no outgoing edges")
    is_async: bool = Field(default=False, description="Runtime may suspend (network, model)")
    is_trigger: bool = Field(
        default=False, description="Reads the triggering input instead of predecessor output"
    )
    default_data: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    def new_data(self, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        """Fresh configuration for a new node: defaults plus overrides."""
        data = copy.deepcopy(self.default_data)
        if overrides:
            data.update(copy.deepcopy(overrides))
        return data


class NodeRegistry:
    """
    Catalog of node kinds.

    Example:
        registry = NodeRegistry()
        registry.register(NodeDefinition(kind="llm", is_async=True))
        registry.freeze()

        registry.lookup("llm")      # NodeDefinition
        registry.lookup("nope")     # raises UnknownNodeKind
    """

    def __init__(self, definitions: list[NodeDefinition] | None = None):
        self._definitions: dict[str, NodeDefinition] = {}
        self._frozen = False
        for definition in definitions or []:
            self.register(definition)

    def register(self, definition: NodeDefinition) -> None:
        """Add a node kind. Only allowed before ``freeze()``."""
        if self._frozen:
            raise RuntimeError("NodeRegistry is frozen; register kinds at process start")
        if definition.kind in self._definitions:
            raise ValueError(f"Node kind '{definition.kind}' is already registered")
        self._definitions[definition.kind] = definition
        logger.debug(f"Registered node kind '{definition.kind}'")

    def freeze(self) -> NodeRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def lookup(self, kind: str) -> NodeDefinition:
        """Return the definition for ``kind`` or raise UnknownNodeKind."""
        definition = self._definitions.get(kind)
        if definition is None:
            raise UnknownNodeKind(kind)
        return definition

    def get(self, kind: str) -> NodeDefinition | None:
        return self._definitions.get(kind)

    def kinds(self) -> list[str]:
        return list(self._definitions)

    def by_category(self, category: str) -> list[NodeDefinition]:
        return [d for d in self._definitions.values() if d.category == category]

    def __contains__(self, kind: object) -> bool:
        return kind in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)


# ---------------------------------------------------------------------------
# Built-in catalog
# ---------------------------------------------------------------------------

BUILTIN_DEFINITIONS: list[NodeDefinition] = [
    NodeDefinition(
        kind="input",
        label="Input",
        category="io",
        accepts=ShapeTag.NONE,
        produces=ShapeTag.TEXT,
        is_trigger=True,
        default_data={"label": "Input", "input_type": "text", "default_value": ""},
    ),
    NodeDefinition(
        kind="chat_trigger",
        label="Chat Trigger",
        category="trigger",
        accepts=ShapeTag.NONE,
        produces=ShapeTag.TEXT,
        is_trigger=True,
        default_data={"label": "Chat Trigger"},
    ),
    NodeDefinition(
        kind="memory",
        label="Memory",
        category="context",
        accepts=ShapeTag.TEXT,
        produces=ShapeTag.TEXT,
        default_data={
            "label": "Memory",
            "memory_type": "buffer",
            "max_messages": 20,
            "emit": "input",
        },
    ),
    NodeDefinition(
        kind="llm",
        label="Model",
        category="ai",
        accepts=ShapeTag.TEXT,
        produces=ShapeTag.TEXT,
        is_async=True,
        default_data={
            "label": "Model",
            "provider": "anthropic",
            "model": "claude-sonnet-4-6",
            "system_prompt": "",
            "temperature": 0.7,
            "max_tokens": 4096,
        },
    ),
    NodeDefinition(
        kind="tool",
        label="Tool",
        category="tools",
        accepts=ShapeTag.ANY,
        produces=ShapeTag.ANY,
        is_async=True,
        default_data={"label": "Tool", "tool_type": "passthrough", "config": {}},
    ),
    NodeDefinition(
        kind="http",
        label="HTTP Request",
        category="tools",
        accepts=ShapeTag.ANY,
        produces=ShapeTag.JSON,
        is_async=True,
        default_data={"label": "HTTP Request", "method": "GET", "url": "", "headers": {}},
    ),
    NodeDefinition(
        kind="transform",
        label="Transform",
        category="data",
        accepts=ShapeTag.ANY,
        produces=ShapeTag.ANY,
        default_data={
            "label": "Transform",
            "transform_type": "template",
            "expression": "{{input}}",
        },
    ),
    NodeDefinition(
        kind="merge",
        label="Merge",
        category="flow",
        accepts=ShapeTag.ANY,
        produces=ShapeTag.TEXT,
        default_data={"label": "Merge", "merge_mode": "append", "separator": "\n\n"},
    ),
    NodeDefinition(
        kind="output",
        label="Output",
        category="io",
        accepts=ShapeTag.ANY,
        produces=ShapeTag.ANY,
        is_terminal=True,
        default_data={"label": "Output", "output_format": "text"},
    ),
]


def default_registry() -> NodeRegistry:
    """Return a frozen registry holding the built-in node kinds."""
    return NodeRegistry(BUILTIN_DEFINITIONS).freeze()
