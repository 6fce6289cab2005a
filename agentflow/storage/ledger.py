"""
Execution Ledger - append-only store of terminal execution records.

Records are held in memory and, when a ``base_path`` is given, mirrored
to disk one JSON file per run:

    {base_path}/
      executions/
        {agent_id}/
          {execution_id}.json

Records are only ever appended; the single way to remove them is the
bulk ``clear()``.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from agentflow.schemas.agent import AgentMetrics
from agentflow.schemas.execution import ExecutionRecord, ExecutionStatus
from agentflow.utils.io import atomic_write, validate_key

logger = logging.getLogger(__name__)


@dataclass
class LedgerFilter:
    """Selection criteria for ``ExecutionLedger.list``. Unset fields match everything."""

    agent_id: str | None = None
    since: datetime | None = None  # started_at >= since
    until: datetime | None = None  # started_at < until
    status: ExecutionStatus | None = None
    limit: int | None = None

    def matches(self, record: ExecutionRecord) -> bool:
        if self.agent_id and record.agent_id != self.agent_id:
            return False
        if self.since and record.started_at < self.since:
            return False
        if self.until and record.started_at >= self.until:
            return False
        if self.status and record.status != self.status:
            return False
        return True


class ExecutionLedger:
    """
    Append-only execution history.

    Example:
        ledger = ExecutionLedger(base_path=Path("~/.agentflow/data").expanduser())
        ledger.load()
        recent = ledger.list(LedgerFilter(agent_id="support-bot", limit=10))
    """

    def __init__(self, base_path: Path | None = None):
        self.base_path = Path(base_path) if base_path else None
        self._records: dict[str, ExecutionRecord] = {}

    @property
    def executions_dir(self) -> Path | None:
        return self.base_path / "executions" if self.base_path else None

    def append(self, record: ExecutionRecord) -> None:
        """
        Add a terminal record.

        Raises:
            ValueError: If the record is still running or its id is already stored
        """
        if not record.is_terminal:
            raise ValueError(f"Cannot append running execution {record.id} to the ledger")
        if record.id in self._records:
            raise ValueError(f"Execution {record.id} is already in the ledger")

        stored = record.model_copy(deep=True)
        self._records[stored.id] = stored
        if self.base_path:
            self._write(stored)
        logger.debug(f"Ledger appended {record.id} ({record.status})")

    async def append_async(self, record: ExecutionRecord) -> None:
        """Async version of append; file IO runs in a worker thread."""
        await asyncio.to_thread(self.append, record)

    def get(self, execution_id: str) -> ExecutionRecord | None:
        record = self._records.get(execution_id)
        return record.model_copy(deep=True) if record else None

    def list(self, filter: LedgerFilter | None = None) -> list[ExecutionRecord]:
        """Matching records, most recent first."""
        filter = filter or LedgerFilter()
        matched = [r for r in self._records.values() if filter.matches(r)]
        matched.sort(key=lambda r: r.started_at, reverse=True)
        if filter.limit is not None:
            matched = matched[: filter.limit]
        return [r.model_copy(deep=True) for r in matched]

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, execution_id: object) -> bool:
        return execution_id in self._records

    def metrics(self, agent_id: str) -> AgentMetrics:
        """Aggregate run count, success rate, latency and tokens for one agent."""
        records = [r for r in self._records.values() if r.agent_id == agent_id]
        if not records:
            return AgentMetrics()
        completed = sum(1 for r in records if r.status == ExecutionStatus.COMPLETED)
        return AgentMetrics(
            total_runs=len(records),
            success_rate=completed / len(records),
            avg_latency_ms=sum(r.duration_ms for r in records) / len(records),
            avg_tokens=sum(r.total_tokens for r in records) / len(records),
            last_run=max(r.started_at for r in records),
        )

    def clear(self, agent_id: str | None = None) -> int:
        """Bulk-remove all records, or one agent's. Returns how many were removed."""
        doomed = [
            execution_id
            for execution_id, record in self._records.items()
            if agent_id is None or record.agent_id == agent_id
        ]
        for execution_id in doomed:
            del self._records[execution_id]

        if self.executions_dir and self.executions_dir.exists():
            if agent_id is None:
                shutil.rmtree(self.executions_dir)
            else:
                validate_key(agent_id)
                shutil.rmtree(self.executions_dir / agent_id, ignore_errors=True)

        logger.info(f"Cleared {len(doomed)} execution record(s)")
        return len(doomed)

    # === PERSISTENCE ===

    def load(self) -> int:
        """Read every stored record from disk. Returns how many were loaded."""
        if not self.executions_dir or not self.executions_dir.exists():
            return 0

        loaded = 0
        for path in sorted(self.executions_dir.glob("*/*.json")):
            try:
                record = ExecutionRecord.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load execution record {path}: {e}")
                continue
            if record.id not in self._records:
                self._records[record.id] = record
                loaded += 1
        return loaded

    def _write(self, record: ExecutionRecord) -> None:
        validate_key(record.agent_id)
        validate_key(record.id)
        path = self.executions_dir / record.agent_id / f"{record.id}.json"
        with atomic_write(path) as f:
            f.write(record.model_dump_json(indent=2))
