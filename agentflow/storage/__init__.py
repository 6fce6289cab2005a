"""Persistence for execution records."""

from agentflow.storage.ledger import ExecutionLedger, LedgerFilter

__all__ = ["ExecutionLedger", "LedgerFilter"]
