"""
Command-line interface for agentflow.

Usage:
    agentflow validate agents/support-bot.json
    agentflow order agents/support-bot.json
    agentflow run agents/support-bot.json --input "hello"
    agentflow kinds

A graph file holds either a full agent definition (``{"id": ..., "graph":
{...}}``) or a bare graph snapshot (``{"agent_id": ..., "nodes": [...],
"edges": [...]}``). ``run`` uses the built-in runtime, so graphs with
model, tool or HTTP nodes fail at those nodes unless a host registers them.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from agentflow.config import CoordinatorConfig, RuntimeConfig
from agentflow.errors import AgentFlowError
from agentflow.graph.edge import GraphSpec
from agentflow.graph.registry import default_registry
from agentflow.graph.validator import compute_order, validate_graph
from agentflow.observability import configure_logging
from agentflow.runtime.coordinator import ExecutionCoordinator
from agentflow.runtime.event_bus import AgentEvent, EventType
from agentflow.runtime.node_runtime import builtin_runtime, stringify
from agentflow.schemas.agent import AgentDefinition
from agentflow.schemas.execution import ExecutionRecord, ExecutionStatus


def load_agent(path: str | Path) -> tuple[GraphSpec, AgentDefinition | None]:
    """Read a graph file; the definition is None for a bare graph snapshot."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict) and "graph" in raw:
        agent = AgentDefinition.model_validate(raw)
        graph = agent.graph
        if not graph.agent_id:
            graph = graph.model_copy(update={"agent_id": agent.id})
        return graph, agent
    return GraphSpec.model_validate(raw), None


def load_graph(path: str | Path) -> GraphSpec:
    """Read an agent definition or bare graph snapshot from a JSON file."""
    return load_agent(path)[0]


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    """Register graph and execution commands."""

    # validate
    validate_parser = subparsers.add_parser("validate", help="Check a graph for structural errors")
    validate_parser.add_argument("graph_path", help="Path to agent or graph JSON")
    validate_parser.set_defaults(func=cmd_validate)

    # order
    order_parser = subparsers.add_parser("order", help="Print the execution order of a graph")
    order_parser.add_argument("graph_path", help="Path to agent or graph JSON")
    order_parser.set_defaults(func=cmd_order)

    # run
    run_parser = subparsers.add_parser("run", help="Execute a graph with the built-in runtime")
    run_parser.add_argument("graph_path", help="Path to agent or graph JSON")
    run_parser.add_argument("--input", "-i", default="", help="Triggering input text")
    run_parser.add_argument("--agent-id", help="Override the agent id stored in the file")
    run_parser.add_argument("--storage", help="Directory for the execution ledger")
    run_parser.set_defaults(func=cmd_run)

    # kinds
    kinds_parser = subparsers.add_parser("kinds", help="List registered node kinds")
    kinds_parser.set_defaults(func=cmd_kinds)


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a graph file."""
    try:
        graph = load_graph(args.graph_path)
    except (OSError, ValueError) as e:
        print(f"Error: could not load {args.graph_path}: {e}", file=sys.stderr)
        return 1

    result = validate_graph(graph, default_registry())
    if result.valid:
        print(f"✓ Graph is valid ({len(graph.nodes)} nodes, {len(graph.edges)} edges)")
        return 0

    print("✗ Graph is invalid:")
    for error in result.errors:
        print(f"  - {error}")
    return 1


def cmd_order(args: argparse.Namespace) -> int:
    """Print nodes in the order a run would visit them."""
    try:
        graph = load_graph(args.graph_path)
    except (OSError, ValueError) as e:
        print(f"Error: could not load {args.graph_path}: {e}", file=sys.stderr)
        return 1

    result = validate_graph(graph, default_registry())
    if not result.valid:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1

    for index, node_id in enumerate(compute_order(graph), start=1):
        node = graph.get_node(node_id)
        print(f"{index:>3}. {node_id}  [{node.kind}] {node.label}")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Run a graph once and print its trace and result."""
    try:
        graph, agent = load_agent(args.graph_path)
    except (OSError, ValueError) as e:
        print(f"Error: could not load {args.graph_path}: {e}", file=sys.stderr)
        return 1

    runtime_config = agent.config.runtime_config() if agent is not None else RuntimeConfig()
    config = CoordinatorConfig()
    if args.storage:
        config.storage_path = Path(args.storage).expanduser()

    try:
        record = asyncio.run(_run_once(graph, args.input, args.agent_id, config, runtime_config))
    except AgentFlowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print()
    if record.status == ExecutionStatus.COMPLETED:
        print(f"Result ({record.duration_ms}ms, {record.total_tokens} tokens):")
        print(stringify(record.result))
        return 0
    print(f"Failed: {record.error}")
    return 1


async def _run_once(
    graph: GraphSpec,
    input_text: str,
    agent_id: str | None,
    config: CoordinatorConfig,
    runtime_config: RuntimeConfig,
) -> ExecutionRecord | None:
    coordinator = ExecutionCoordinator(
        runtime=builtin_runtime(), config=config, runtime_config=runtime_config
    )

    async def print_step(event: AgentEvent) -> None:
        step = event.step
        if event.type == EventType.STEP_STARTED:
            print(f"→ {step.label} [{step.node_kind}]")
        elif event.type == EventType.STEP_COMPLETED:
            print(f"  ✓ {step.duration_ms}ms")
        else:
            print(f"  ✗ {step.error}")

    coordinator.subscribe(print_step)
    execution_id = await coordinator.start(graph, input_text, agent_id=agent_id)
    return await coordinator.wait_for_completion(execution_id)


def cmd_kinds(args: argparse.Namespace) -> int:
    """List the node kinds in the built-in catalog."""
    registry = default_registry()
    for kind in registry.kinds():
        definition = registry.lookup(kind)
        flags = [
            name
            for name, on in (
                ("trigger", definition.is_trigger),
                ("async", definition.is_async),
                ("terminal", definition.is_terminal),
            )
            if on
        ]
        suffix = f"  ({', '.join(flags)})" if flags else ""
        print(
            f"{definition.kind:<14} {definition.category:<8} "
            f"{definition.accepts} -> {definition.produces}{suffix}"
        )
    return 0


def main():
    parser = argparse.ArgumentParser(
        prog="agentflow",
        description="agentflow - Build, validate and run agent graphs",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: from configuration, else INFO)",
    )
    parser.add_argument(
        "--log-format",
        default="auto",
        choices=["auto", "human", "json"],
        help="Log output format",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args()
    configure_logging(
        level=args.log_level or CoordinatorConfig().log_level,
        format=args.log_format,
    )

    if hasattr(args, "func"):
        sys.exit(args.func(args))


if __name__ == "__main__":
    main()
