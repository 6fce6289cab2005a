"""
Training Feedback Loop - collect sample runs and reviewer ratings per agent.

Sessions group runs against one agent. Runs are appended unrated and are
immutable afterwards except for ``rating`` and ``feedback``, which a
reviewer sets through ``rate()``. High-rated runs are exported as few-shot
examples for refining the agent's prompt.

The loop only reads execution records; it never drives the coordinator.
"""

import logging
import uuid
from collections.abc import Iterator
from typing import Any

from agentflow.errors import NotFound
from agentflow.schemas.execution import ExecutionRecord, ExecutionStatus
from agentflow.schemas.training import (
    MAX_RATING,
    MIN_RATING,
    TrainingRun,
    TrainingSession,
    TrainingSessionConfig,
)
from agentflow.training.store import TrainingStore

logger = logging.getLogger(__name__)


class UnratedRuns:
    """
    Lazy view over an agent's unrated runs.

    Every ``iter()`` re-scans the loop's current state, so a run rated
    between two passes drops out of the second one.
    """

    def __init__(self, loop: "TrainingFeedbackLoop", agent_id: str):
        self._loop = loop
        self.agent_id = agent_id

    def __iter__(self) -> Iterator[TrainingRun]:
        for session in self._loop.sessions(self.agent_id):
            for run in session.runs:
                if not run.is_rated:
                    yield run.model_copy(deep=True)

    def __len__(self) -> int:
        return sum(1 for _ in self)


class TrainingFeedbackLoop:
    """
    Session bookkeeping and ratings for agent training.

    Example:
        loop = TrainingFeedbackLoop(store=TrainingStore(Path("~/.agentflow/data")))
        run = loop.record_execution(record, expected="hello")
        loop.rate(loop.active_session(record.agent_id).id, run.id, 5, "great")
        examples = loop.rated_examples("support-bot")
    """

    def __init__(self, store: TrainingStore | None = None):
        self.store = store
        self._sessions: dict[str, TrainingSession] = {}
        if store is not None:
            for session in store.list_sessions():
                self._sessions[session.id] = session
            logger.info(f"Loaded {len(self._sessions)} training session(s)")

    # === SESSIONS ===

    def create_session(
        self, agent_id: str, config: TrainingSessionConfig | dict[str, Any] | None = None
    ) -> TrainingSession:
        """Start a new active session; the agent's previous active session is archived."""
        for session in self._sessions.values():
            if session.agent_id == agent_id and session.status == "active":
                session.status = "archived"
                self._persist(session)

        if isinstance(config, dict):
            config = TrainingSessionConfig.model_validate(config)
        session = TrainingSession(
            id=f"train_{uuid.uuid4().hex[:12]}",
            agent_id=agent_id,
            config=config or TrainingSessionConfig(),
        )
        self._sessions[session.id] = session
        self._persist(session)
        logger.info(f"Created training session {session.id} for agent '{agent_id}'")
        return session

    def active_session(self, agent_id: str) -> TrainingSession:
        """The agent's active session, created on first use."""
        for session in reversed(self.sessions(agent_id)):
            if session.status == "active":
                return session
        return self.create_session(agent_id)

    def get_session(self, session_id: str) -> TrainingSession | None:
        return self._sessions.get(session_id)

    def sessions(self, agent_id: str | None = None) -> list[TrainingSession]:
        """Sessions in creation order, optionally for one agent."""
        found = [s for s in self._sessions.values() if agent_id is None or s.agent_id == agent_id]
        return sorted(found, key=lambda s: s.created_at)

    def remove_session(self, session_id: str) -> bool:
        """Delete a session and all its runs. Returns True if it existed."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        if self.store is not None:
            self.store.delete(session_id)
        logger.info(f"Removed training session {session_id}")
        return True

    # === RUNS ===

    def record_run(
        self,
        agent_id: str,
        input: Any,
        output: Any,
        expected: str | None = None,
        tokens: int = 0,
        latency_ms: int = 0,
        session_id: str | None = None,
        execution_id: str | None = None,
    ) -> TrainingRun:
        """
        Append an unrated run to a session (default: the agent's active one).

        Raises:
            NotFound: If ``session_id`` is given but unknown
        """
        if session_id is not None:
            session = self._require_session(session_id)
        else:
            session = self.active_session(agent_id)

        run = TrainingRun(
            id=f"run_{uuid.uuid4().hex[:12]}",
            agent_id=agent_id,
            input=input,
            output=output,
            expected=expected,
            tokens=tokens,
            latency_ms=latency_ms,
            execution_id=execution_id,
        )
        session.runs.append(run)
        self._persist(session)
        logger.debug(f"Recorded training run {run.id} in session {session.id}")
        return run.model_copy(deep=True)

    def record_execution(
        self,
        record: ExecutionRecord,
        expected: str | None = None,
        session_id: str | None = None,
    ) -> TrainingRun:
        """
        Derive a run from a finished execution.

        A failed or cancelled run stores its error message as the output.

        Raises:
            ValueError: If the execution is still running
        """
        if not record.is_terminal:
            raise ValueError(f"Execution {record.id} is still running")

        if record.status == ExecutionStatus.COMPLETED:
            output = record.result
        else:
            output = f"Error: {record.error}"

        return self.record_run(
            agent_id=record.agent_id,
            input=record.input,
            output=output,
            expected=expected,
            tokens=record.total_tokens,
            latency_ms=record.duration_ms,
            session_id=session_id,
            execution_id=record.id,
        )

    def rate(self, session_id: str, run_id: str, rating: int, feedback: str = "") -> TrainingRun:
        """
        Set a run's rating and feedback; nothing else on the run changes.

        Raises:
            NotFound: If the session or run does not exist
            ValueError: If ``rating`` is not an integer in 1..5
        """
        session = self._require_session(session_id)
        run = session.get_run(run_id)
        if run is None:
            raise NotFound(f"Training run '{run_id}' not found in session '{session_id}'")
        if isinstance(rating, bool) or not isinstance(rating, int):
            raise ValueError(f"Rating must be an integer, got {rating!r}")
        if not MIN_RATING <= rating <= MAX_RATING:
            raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}, got {rating}")

        run.rating = rating
        run.feedback = feedback
        self._persist(session)
        logger.info(f"Rated run {run_id} {rating}/{MAX_RATING}")
        return run.model_copy(deep=True)

    def get_unrated_runs(self, agent_id: str) -> UnratedRuns:
        return UnratedRuns(self, agent_id)

    # === REFINEMENT ===

    def rated_examples(self, agent_id: str, min_rating: int = 4) -> list[dict[str, Any]]:
        """High-rated runs shaped as few-shot examples, oldest first."""
        examples = []
        for session in self.sessions(agent_id):
            for run in session.runs:
                if run.rating is not None and run.rating >= min_rating:
                    examples.append(
                        {
                            "input": run.input,
                            "output": run.output,
                            "rating": run.rating,
                            "feedback": run.feedback,
                        }
                    )
        return examples

    def summary(self, agent_id: str) -> dict[str, Any]:
        """Counts, mean rating and pass/fail tally across all of an agent's sessions."""
        runs = [run for session in self.sessions(agent_id) for run in session.runs]
        ratings = [run.rating for run in runs if run.rating is not None]
        verdicts = [run.verdict for run in runs]
        return {
            "agent_id": agent_id,
            "sessions": len(self.sessions(agent_id)),
            "total_runs": len(runs),
            "rated": len(ratings),
            "unrated": len(runs) - len(ratings),
            "mean_rating": sum(ratings) / len(ratings) if ratings else None,
            "passed": verdicts.count("pass"),
            "failed": verdicts.count("fail"),
        }

    # === INTERNALS ===

    def _require_session(self, session_id: str) -> TrainingSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFound(f"Training session '{session_id}' not found")
        return session

    def _persist(self, session: TrainingSession) -> None:
        if self.store is not None:
            self.store.save(session)
