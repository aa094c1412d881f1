"""
End-to-end tests.

Runs whole analyses offline: a single agent session, the orchestrator with a
stub evaluator, the ``test`` profile through the factories, and the CLI.
"""

import json
from datetime import datetime, timezone

import pytest
from typer.testing import CliRunner

from conftest import (
    RECOMMENDATIONS_REPLY,
    ScriptedLLM,
    action_reply,
    final_reply,
    hypotheses_reply,
    static_tool,
)
from failure_analyst.cli import app
from failure_analyst.config import (
    StoreConfig,
    create_llm_provider,
    create_runner,
    create_telemetry_backend,
    create_tool_registry,
    load_config,
)
from failure_analyst.orchestration import (
    ConfidenceLevel,
    EvaluationResult,
    EvaluationStatus,
    FinalResultStatus,
    ReactionAgent,
    ReactionState,
    TimeWindow,
    ToolRegistry,
    VerificationStatus,
)
from failure_analyst.orchestration.orchestrator import Orchestrator
from failure_analyst.tools import InMemoryTelemetryBackend


@pytest.mark.asyncio
async def test_single_session_scenario(clock):
    """One action, then a final answer: one reasoning step and the stub's synthesis."""
    registry = ToolRegistry()
    registry.register(*static_tool("metrics_tool", "5xx_rate=12% on checkout-api"))
    llm = ScriptedLLM([
        action_reply("metrics_tool"),
        final_reply("Checkout 5xx spike"),
        "Synthesis: checkout 5xx spike caused by payment timeouts",
    ])
    agent = ReactionAgent(llm, registry, clock=clock)

    result = await agent.run(agent.new_session("checkout errors spiking"))

    assert result.done
    assert result.state.state == ReactionState.COMPLETED
    assert len(result.state.cycle_history) == 1
    assert result.state.cycle_history[0].observation == "5xx_rate=12% on checkout-api"
    assert result.final_answer == "Synthesis: checkout 5xx spike caused by payment timeouts"
    assert result.state.final_answer == result.final_answer


class StubEvaluator:
    """Confirms one hypothesis with high confidence and rejects the others."""

    def __init__(self, confirm_id: str):
        self.confirm_id = confirm_id
        self.evaluated: list[str] = []

    async def evaluate(self, hypothesis, context, history):
        self.evaluated.append(hypothesis.id)
        confirmed = hypothesis.id == self.confirm_id
        return EvaluationResult(
            hypothesis_id=hypothesis.id,
            status=EvaluationStatus.CONFIRMED if confirmed else EvaluationStatus.REJECTED,
            confidence_level=ConfidenceLevel.HIGH if confirmed else ConfidenceLevel.MEDIUM,
        )


@pytest.mark.asyncio
async def test_orchestrator_stops_after_confirmed_second_hypothesis(registry, clock):
    llm = ScriptedLLM([hypotheses_reply(0.9, 0.8, 0.7)], default=final_reply())
    evaluator = StubEvaluator("hypothesis-2")
    orchestrator = Orchestrator(llm, registry, evaluator=evaluator, clock=clock)

    state = orchestrator.new_state("checkout errors spiking")
    for _ in range(100):
        result = await orchestrator.step(state)
        state = result.state
        if result.done:
            break

    assert result.done
    assert evaluator.evaluated == ["hypothesis-1", "hypothesis-2"]
    assert state.final_result.hypothesis_id == "hypothesis-2"
    assert state.final_result.status == FinalResultStatus.CONFIRMED
    assert state.verification_states[2].status == VerificationStatus.PENDING


@pytest.mark.asyncio
async def test_offline_profile_runs_to_completion():
    """The ``test`` profile wires the mock LLM and in-memory telemetry end to end."""
    profile = load_config("test")
    llm = create_llm_provider(profile.llm)
    backend = create_telemetry_backend(profile.telemetry)

    async with llm, backend:
        registry = create_tool_registry(backend, profile.telemetry)
        runner = create_runner(profile, llm, registry)
        session_id = await runner.start("checkout errors spiking")
        result = await runner.run(session_id)

    assert result.done
    assert result.state.final_result.status == FinalResultStatus.CONFIRMED
    assert "[Mock] Roll back the last deployment" in result.final_answer
    assert ("metrics", {}) in backend.calls
    assert runner.store.is_completed(session_id)


def test_cli_analyze_json():
    result = CliRunner().invoke(
        app,
        [
            "analyze",
            "checkout errors spiking",
            "--profile",
            "test",
            "--start",
            "2024-01-01T10:00:00Z",
            "--end",
            "2024-01-01T11:00:00Z",
            "--format",
            "json",
            "--session-id",
            "cli-1",
        ],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["session_id"] == "cli-1"
    assert payload["done"] is True
    assert payload["final_result"]["status"] == "confirmed"


def test_cli_analyze_step_budget_prints_resume_hint():
    result = CliRunner().invoke(
        app, ["analyze", "checkout errors", "-p", "test", "-n", "2", "--session-id", "cli-2"]
    )

    assert result.exit_code == 0, result.output
    assert "failure-analyst resume cli-2" in result.stdout


def test_cli_rejects_bad_window_and_profile():
    runner = CliRunner()

    result = runner.invoke(
        app,
        ["analyze", "x", "-p", "test", "--start", "2024-01-01T12:00:00Z", "--end", "2024-01-01T11:00:00Z"],
    )
    assert result.exit_code == 1

    result = runner.invoke(app, ["analyze", "x", "-p", "no-such-profile"])
    assert result.exit_code == 1


def test_cli_profiles():
    result = CliRunner().invoke(app, ["profiles"])

    assert result.exit_code == 0
    assert "test" in result.stdout
    assert "LLM: mock" in result.stdout


def test_cli_resume_queries_the_stored_window(monkeypatch, tmp_path):
    """A resumed analysis keeps querying the window the first run stored."""
    profile = load_config("test").model_copy(
        update={"store": StoreConfig(persist_path=str(tmp_path / "sessions.json"))}
    )
    monkeypatch.setattr("failure_analyst.cli.load_config", lambda name=None: profile)

    windows = []
    original_query = InMemoryTelemetryBackend.query

    async def recording_query(self, source, params, window=None):
        windows.append((source, window))
        return await original_query(self, source, params, window)

    monkeypatch.setattr(InMemoryTelemetryBackend, "query", recording_query)
    runner = CliRunner()

    # Hypotheses, selection, seeding: no metrics query yet.
    result = runner.invoke(
        app,
        [
            "analyze",
            "checkout errors",
            "--start",
            "2024-01-01T10:00:00Z",
            "--end",
            "2024-01-01T11:00:00Z",
            "--max-steps",
            "3",
            "--session-id",
            "s1",
        ],
    )
    assert result.exit_code == 0, result.output
    assert "metrics" not in [source for source, _ in windows]

    result = runner.invoke(app, ["resume", "s1", "--max-steps", "2"])
    assert result.exit_code == 0, result.output

    expected = TimeWindow(
        start=datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
        end=datetime(2024, 1, 1, 11, 0, tzinfo=timezone.utc),
    )
    metrics_windows = [window for source, window in windows if source == "metrics"]
    assert metrics_windows
    assert all(window == expected for window in metrics_windows)


def test_cli_resume_rejects_window_options_and_unknown_sessions():
    runner = CliRunner()

    result = runner.invoke(app, ["resume", "s1", "-p", "test", "--start", "2024-01-01T10:00:00Z"])
    assert result.exit_code != 0

    result = runner.invoke(app, ["resume", "no-such-session", "-p", "test"])
    assert result.exit_code == 1
