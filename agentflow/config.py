"""Shared agentflow configuration utilities.

Reads ``~/.agentflow/configuration.json`` (or the file named by the
``AGENTFLOW_CONFIG`` environment variable) so the CLI, the coordinator and
host applications share one implementation.

Example file::

    {
      "llm": {"provider": "anthropic", "model": "claude-sonnet-4-6",
              "max_tokens": 4096, "api_key_env_var": "ANTHROPIC_API_KEY"},
      "execution": {"storage_path": "~/.agentflow/data",
                    "node_timeout_seconds": 120}
    }
"""

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

DEFAULT_MAX_TOKENS = 4096
DEFAULT_MODEL = "anthropic/claude-sonnet-4-6"

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

AGENTFLOW_CONFIG_FILE = Path.home() / ".agentflow" / "configuration.json"


def get_config_path() -> Path:
    """Return the configuration file path, honouring AGENTFLOW_CONFIG."""
    override = os.environ.get("AGENTFLOW_CONFIG")
    return Path(override).expanduser() if override else AGENTFLOW_CONFIG_FILE


def get_agentflow_config() -> dict[str, Any]:
    """Load the configuration file; missing or unreadable files yield {}."""
    config_path = get_config_path()
    if not config_path.exists():
        return {}
    try:
        with open(config_path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_preferred_model() -> str:
    """Return the preferred model string (e.g. 'anthropic/claude-sonnet-4-6')."""
    llm = get_agentflow_config().get("llm", {})
    if llm.get("provider") and llm.get("model"):
        return f"{llm['provider']}/{llm['model']}"
    return DEFAULT_MODEL


def get_max_tokens() -> int:
    """Return the configured max_tokens, falling back to DEFAULT_MAX_TOKENS."""
    return get_agentflow_config().get("llm", {}).get("max_tokens", DEFAULT_MAX_TOKENS)


def get_api_key() -> str | None:
    """Return the API key from the environment variable named in configuration."""
    llm = get_agentflow_config().get("llm", {})
    api_key_env_var = llm.get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


def _execution_setting(key: str, default: Any) -> Any:
    return get_agentflow_config().get("execution", {}).get(key, default)


def get_storage_path() -> Path | None:
    raw = _execution_setting("storage_path", None)
    return Path(raw).expanduser() if raw else None


def get_node_timeout() -> float | None:
    """Per-node deadline in seconds; None disables the deadline."""
    raw = _execution_setting("node_timeout_seconds", None)
    return float(raw) if raw else None


# ---------------------------------------------------------------------------
# Config dataclasses
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """
    Model settings handed to node handlers as ``NodeContext.settings``.

    The coordinator holds the agent-wide defaults; each node sees them with
    its own ``data`` applied through ``for_node``.
    """

    model: str = field(default_factory=get_preferred_model)
    temperature: float = 0.7
    max_tokens: int = field(default_factory=get_max_tokens)
    api_key: str | None = field(default_factory=get_api_key)
    api_base: str | None = None

    def for_node(self, data: dict[str, Any]) -> "RuntimeConfig":
        """Copy with a node's own provider/model, temperature and max_tokens applied."""
        model = self.model
        if data.get("provider") and data.get("model"):
            model = f"{data['provider']}/{data['model']}"
        temperature = data.get("temperature")
        max_tokens = data.get("max_tokens")
        return replace(
            self,
            model=model,
            temperature=self.temperature if temperature is None else float(temperature),
            max_tokens=self.max_tokens if max_tokens is None else int(max_tokens),
        )


@dataclass
class CoordinatorConfig:
    """Execution settings for ExecutionCoordinator."""

    storage_path: Path | None = field(default_factory=get_storage_path)
    node_timeout_seconds: float | None = field(default_factory=get_node_timeout)
    max_event_history: int = field(
        default_factory=lambda: int(_execution_setting("max_event_history", 1000))
    )
    log_level: str = field(default_factory=lambda: _execution_setting("log_level", "INFO"))
