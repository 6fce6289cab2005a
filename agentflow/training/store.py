"""
Training Store - one JSON file per training session.

    {base_path}/
      training/
        {session_id}.json
"""

import logging
from pathlib import Path

from agentflow.schemas.training import TrainingSession
from agentflow.utils.io import atomic_write, validate_key

logger = logging.getLogger(__name__)


class TrainingStore:
    """File-backed persistence for TrainingSession objects."""

    def __init__(self, base_path: Path):
        """
        Initialize training store.

        Args:
            base_path: Base path for storage (e.g., ~/.agentflow/data)
        """
        self.base_path = Path(base_path)
        self.sessions_dir = self.base_path / "training"

    def get_session_path(self, session_id: str) -> Path:
        validate_key(session_id)
        return self.sessions_dir / f"{session_id}.json"

    def save(self, session: TrainingSession) -> None:
        """Atomically write a session, replacing any previous version."""
        path = self.get_session_path(session.id)
        with atomic_write(path) as f:
            f.write(session.model_dump_json(indent=2))
        logger.debug(f"Saved training session {session.id} ({len(session.runs)} runs)")

    def load(self, session_id: str) -> TrainingSession | None:
        path = self.get_session_path(session_id)
        if not path.exists():
            return None
        return TrainingSession.model_validate_json(path.read_text(encoding="utf-8"))

    def delete(self, session_id: str) -> bool:
        path = self.get_session_path(session_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def list_sessions(self, agent_id: str | None = None) -> list[TrainingSession]:
        """All readable sessions, optionally for one agent, oldest first."""
        if not self.sessions_dir.exists():
            return []

        sessions = []
        for path in sorted(self.sessions_dir.glob("*.json")):
            try:
                session = TrainingSession.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable training session {path}: {e}")
                continue
            if agent_id is None or session.agent_id == agent_id:
                sessions.append(session)
        sessions.sort(key=lambda s: s.created_at)
        return sessions
