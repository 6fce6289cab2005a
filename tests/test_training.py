"""Tests for the training feedback loop and its file store."""

from pathlib import Path

import pytest

from agentflow.errors import NotFound
from agentflow.schemas.execution import ExecutionRecord, StepRecord
from agentflow.schemas.training import TrainingRun
from agentflow.training.feedback import TrainingFeedbackLoop
from agentflow.training.store import TrainingStore


def finished_record(result="hello", error: str | None = None) -> ExecutionRecord:
    record = ExecutionRecord(id="exec_1", agent_id="bot", input="hi")
    step = StepRecord(id="s1", node_id="llm", node_kind="llm")
    record.append_step(step)
    if error:
        step.fail(error)
        record.fail(error)
    else:
        step.complete(result, tokens=12)
        record.complete(result)
    return record


class TestSessions:
    def test_active_session_created_on_demand(self):
        loop = TrainingFeedbackLoop()

        session = loop.active_session("bot")

        assert session.status == "active"
        assert loop.active_session("bot").id == session.id

    def test_new_session_archives_previous(self):
        loop = TrainingFeedbackLoop()
        first = loop.create_session("bot")

        second = loop.create_session("bot", config={"system_prompt": "Be brief"})

        assert loop.get_session(first.id).status == "archived"
        assert loop.active_session("bot").id == second.id
        assert second.config.system_prompt == "Be brief"

    def test_remove_session(self):
        loop = TrainingFeedbackLoop()
        session = loop.create_session("bot")

        assert loop.remove_session(session.id) is True
        assert loop.remove_session(session.id) is False
        assert loop.get_session(session.id) is None


class TestRuns:
    def test_record_run_is_unrated(self):
        loop = TrainingFeedbackLoop()

        run = loop.record_run("bot", input="hi", output="hello", expected="hello")

        assert run.rating is None
        assert run.verdict == "pass"
        assert loop.active_session("bot").runs[0].id == run.id

    def test_record_run_unknown_session(self):
        with pytest.raises(NotFound):
            TrainingFeedbackLoop().record_run("bot", "hi", "hello", session_id="train_nope")

    def test_record_execution_copies_metrics(self):
        loop = TrainingFeedbackLoop()

        run = loop.record_execution(finished_record(), expected="HELLO")

        assert run.execution_id == "exec_1"
        assert run.output == "hello"
        assert run.tokens == 12
        assert run.verdict == "pass"

    def test_record_failed_execution_uses_error(self):
        loop = TrainingFeedbackLoop()

        run = loop.record_execution(finished_record(error="model unavailable"), expected="hello")

        assert run.output == "Error: model unavailable"
        assert run.verdict == "fail"

    def test_record_running_execution_rejected(self):
        with pytest.raises(ValueError):
            TrainingFeedbackLoop().record_execution(ExecutionRecord(id="exec_r", agent_id="bot"))

    def test_verdict_without_expected(self):
        assert TrainingRun(id="r", output="anything").verdict is None


class TestRating:
    def test_rate_changes_only_rating_and_feedback(self):
        loop = TrainingFeedbackLoop()
        run = loop.record_run("bot", input="hi", output="hello", tokens=4, latency_ms=90)
        session_id = loop.active_session("bot").id
        before = run.model_dump(exclude={"rating", "feedback"})

        loop.rate(session_id, run.id, 5, "great")

        stored = loop.get_session(session_id).get_run(run.id)
        assert stored.rating == 5
        assert stored.feedback == "great"
        assert stored.model_dump(exclude={"rating", "feedback"}) == before

    @pytest.mark.parametrize("rating", [0, 6, -1])
    def test_rating_out_of_range(self, rating):
        loop = TrainingFeedbackLoop()
        run = loop.record_run("bot", "hi", "hello")

        with pytest.raises(ValueError):
            loop.rate(loop.active_session("bot").id, run.id, rating)

        assert loop.active_session("bot").runs[0].rating is None

    def test_rate_unknown_session_or_run(self):
        loop = TrainingFeedbackLoop()
        loop.record_run("bot", "hi", "hello")

        with pytest.raises(NotFound):
            loop.rate("train_nope", "run_nope", 3)
        with pytest.raises(NotFound):
            loop.rate(loop.active_session("bot").id, "run_nope", 3)

    def test_unrated_runs_reflect_later_ratings(self):
        loop = TrainingFeedbackLoop()
        runs = [loop.record_run("bot", f"q{i}", f"a{i}") for i in range(3)]
        session_id = loop.active_session("bot").id
        unrated = loop.get_unrated_runs("bot")

        assert [r.id for r in unrated] == [r.id for r in runs]
        loop.rate(session_id, runs[1].id, 4)

        assert [r.id for r in unrated] == [runs[0].id, runs[2].id]
        assert len(unrated) == 2

    def test_unrated_runs_scoped_to_agent(self):
        loop = TrainingFeedbackLoop()
        loop.record_run("alpha", "q", "a")
        loop.record_run("beta", "q", "a")

        assert len(loop.get_unrated_runs("alpha")) == 1


class TestRefinement:
    def test_rated_examples_and_summary(self):
        loop = TrainingFeedbackLoop()
        good = loop.record_run("bot", "q1", "right", expected="right")
        bad = loop.record_run("bot", "q2", "wrong", expected="right")
        loop.record_run("bot", "q3", "pending")
        session_id = loop.active_session("bot").id
        loop.rate(session_id, good.id, 5, "great")
        loop.rate(session_id, bad.id, 2, "off topic")

        examples = loop.rated_examples("bot")
        summary = loop.summary("bot")

        assert examples == [{"input": "q1", "output": "right", "rating": 5, "feedback": "great"}]
        assert summary["total_runs"] == 3
        assert summary["rated"] == 2
        assert summary["unrated"] == 1
        assert summary["mean_rating"] == pytest.approx(3.5)
        assert (summary["passed"], summary["failed"]) == (1, 1)


class TestTrainingStore:
    def test_sessions_survive_reload(self, tmp_path: Path):
        loop = TrainingFeedbackLoop(store=TrainingStore(tmp_path))
        run = loop.record_run("bot", "hi", "hello")
        session_id = loop.active_session("bot").id
        loop.rate(session_id, run.id, 4, "fine")

        reloaded = TrainingFeedbackLoop(store=TrainingStore(tmp_path))

        stored = reloaded.get_session(session_id).get_run(run.id)
        assert stored.rating == 4
        assert (tmp_path / "training" / f"{session_id}.json").exists()

    def test_remove_deletes_file(self, tmp_path: Path):
        store = TrainingStore(tmp_path)
        loop = TrainingFeedbackLoop(store=store)
        session = loop.create_session("bot")

        loop.remove_session(session.id)

        assert store.load(session.id) is None
        assert store.list_sessions() == []

    def test_invalid_session_id_rejected(self, tmp_path: Path):
        with pytest.raises(ValueError):
            TrainingStore(tmp_path).load("../outside")
