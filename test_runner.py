"""Analysis runner tests: stepping persisted analyses and resuming them."""

from datetime import datetime, timezone

import pytest

from conftest import (
    RECOMMENDATIONS_REPLY,
    ScriptedLLM,
    evaluation_reply,
    final_reply,
    hypotheses_reply,
)
from failure_analyst.orchestration.models import OrchestratorState, TimeWindow
from failure_analyst.orchestration.orchestrator import Orchestrator
from failure_analyst.orchestration.runner import AnalysisRunner
from failure_analyst.orchestration.state_store import StateStore

REPLIES = [
    hypotheses_reply(0.8),
    final_reply(),
    "narrative",
    evaluation_reply("confirmed", "high"),
    RECOMMENDATIONS_REPLY,
]


def _runner(registry, clock, store=None) -> AnalysisRunner:
    orchestrator = Orchestrator(ScriptedLLM(list(REPLIES)), registry, clock=clock)
    return AnalysisRunner(orchestrator, store or StateStore())


@pytest.mark.asyncio
async def test_start_stores_fresh_state(registry, clock):
    runner = _runner(registry, clock)

    session_id = await runner.start("checkout errors", "incident-42")

    assert session_id == "incident-42"
    state = runner.store.get("incident-42")
    assert isinstance(state, OrchestratorState)
    assert state.hypotheses == []
    assert state.window is None


@pytest.mark.asyncio
async def test_start_persists_incident_window(registry, clock, tmp_path):
    path = tmp_path / "sessions.json"
    window = TimeWindow(
        start=datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
        end=datetime(2024, 1, 1, 11, 0, tzinfo=timezone.utc),
    )
    runner = _runner(registry, clock, StateStore(persist_path=path, auto_persist=True))

    await runner.start("checkout errors", "incident-42", window=window)
    await runner.run_step("incident-42")

    assert StateStore(persist_path=path).get("incident-42").window == window


@pytest.mark.asyncio
async def test_generated_session_ids_are_unique(registry, clock):
    runner = _runner(registry, clock)

    first = await runner.start("a")
    second = await runner.start("b")

    assert first != second


@pytest.mark.asyncio
async def test_run_completes_and_marks_session(registry, clock):
    runner = _runner(registry, clock)
    session_id = await runner.start("checkout errors")

    result = await runner.run(session_id)

    assert result.done
    assert runner.store.is_completed(session_id)
    assert runner.store.get(session_id).final_answer == result.final_answer


@pytest.mark.asyncio
async def test_resume_across_runners_matches_single_run(registry, clock, tmp_path):
    """An analysis split over several processes ends in the same state as one run."""
    direct = _runner(registry, clock)
    await direct.start("checkout errors", "s")
    expected = (await direct.run("s")).state

    path = tmp_path / "sessions.json"
    llm = ScriptedLLM(list(REPLIES))
    first = AnalysisRunner(Orchestrator(llm, registry, clock=clock), StateStore(path, auto_persist=True))
    await first.start("checkout errors", "s")
    partial = await first.run("s", max_steps=3)
    assert not partial.done

    second = AnalysisRunner(Orchestrator(llm, registry, clock=clock), StateStore(path, auto_persist=True))
    result = await second.run("s")

    assert result.done
    assert result.state.model_dump() == expected.model_dump()


@pytest.mark.asyncio
async def test_run_on_finished_session_takes_no_step(registry, clock):
    runner = _runner(registry, clock)
    session_id = await runner.start("checkout errors")
    await runner.run(session_id)
    calls = runner.orchestrator.llm.calls

    result = await runner.run(session_id)

    assert result.done
    assert runner.orchestrator.llm.calls == calls


@pytest.mark.asyncio
async def test_unknown_or_wrong_kind_session_raises(registry, clock):
    from failure_analyst.orchestration.models import SessionState

    runner = _runner(registry, clock)
    runner.store.put("react-only", SessionState(context="x"))

    with pytest.raises(KeyError):
        await runner.run_step("missing")
    with pytest.raises(KeyError):
        await runner.run("react-only")
