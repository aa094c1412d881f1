"""Command-line interface for the failure analyst."""

import asyncio
import json
from datetime import datetime, timezone
from typing import Annotated

import typer

from . import settings  # noqa: F401  (loads .env and configures logging)
from .config.loader import ProfileConfig, load_config, list_profiles

app = typer.Typer(
    name="failure-analyst",
    help="Root-cause analysis of production incidents with an LLM agent.",
    add_completion=False,
)


def _parse_time(value: str | None) -> datetime | None:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def build_window(start: str | None, end: str | None, default_minutes: int):
    """Build the incident window from CLI options."""
    from .orchestration.models import TimeWindow

    try:
        end_time = _parse_time(end)
        start_time = _parse_time(start)
        if start_time is None:
            return TimeWindow.last(default_minutes, now=end_time)
        return TimeWindow(start=start_time, end=end_time or datetime.now(timezone.utc))
    except ValueError as e:
        typer.echo(f"Error: Invalid time window: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def analyze(
    description: Annotated[str, typer.Argument(help="Description of the failure")],
    start: Annotated[
        str,
        typer.Option("--start", help="Window start (ISO 8601); defaults to the profile window"),
    ] = None,
    end: Annotated[
        str,
        typer.Option("--end", help="Window end (ISO 8601); defaults to now"),
    ] = None,
    profile: Annotated[
        str,
        typer.Option("--profile", "-p", help="Configuration profile"),
    ] = None,
    max_steps: Annotated[
        int,
        typer.Option("--max-steps", "-n", help="Maximum orchestrator steps in this run"),
    ] = 50,
    session_id: Annotated[
        str,
        typer.Option("--session-id", help="Session ID to use; generated if omitted"),
    ] = None,
    output_format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: text or json"),
    ] = "text",
):
    """
    Analyze a production failure.

    Examples:

        # Analyze the last hour
        failure-analyst analyze "checkout errors spiking"

        # Explicit window, offline test profile
        failure-analyst analyze "checkout errors spiking" \\
            --start 2024-01-01T10:00:00Z --end 2024-01-01T11:00:00Z -p test

        # Run a few steps now, resume later
        failure-analyst analyze "checkout errors spiking" --max-steps 3
    """
    config = _load_profile(profile)
    window = build_window(start, end, config.telemetry.window_minutes)
    problem = (
        f"{description}\n\nIncident window: "
        f"{window.start.isoformat()} to {window.end.isoformat()}"
    )

    asyncio.run(_run_async(config, window, max_steps, output_format, problem=problem, session_id=session_id))


@app.command()
def resume(
    session_id: Annotated[str, typer.Argument(help="Session ID to resume")],
    profile: Annotated[
        str,
        typer.Option("--profile", "-p", help="Configuration profile"),
    ] = None,
    max_steps: Annotated[
        int,
        typer.Option("--max-steps", "-n", help="Maximum orchestrator steps in this run"),
    ] = 50,
    output_format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: text or json"),
    ] = "text",
):
    """
    Continue a stored analysis.

    The tools query the incident window stored with the session, so the
    resumed run sees the same telemetry as the first one.
    """
    config = _load_profile(profile)
    asyncio.run(_run_async(config, None, max_steps, output_format, session_id=session_id))


def _stored_window(store, session_id: str, default_minutes: int):
    """Incident window saved with a session; the default window for older sessions."""
    from .orchestration.models import OrchestratorState, TimeWindow

    state = store.get(session_id)
    if not isinstance(state, OrchestratorState):
        typer.echo(f"Error: Unknown analysis session: {session_id}", err=True)
        raise typer.Exit(1)

    if state.window is None:
        typer.echo(
            f"Warning: session {session_id} has no stored window, "
            f"using the last {default_minutes} minutes",
            err=True,
        )
        return TimeWindow.last(default_minutes)
    return state.window


async def _run_async(
    config: ProfileConfig,
    window,
    max_steps: int,
    output_format: str,
    problem: str | None = None,
    session_id: str | None = None,
):
    """Async implementation of analyze and resume.

    A new analysis (``problem`` given) stores ``window`` with the session; a
    resumed one ignores ``window`` and reads it back from the store.
    """
    from .config.factory import (
        create_llm_provider,
        create_runner,
        create_session_store,
        create_telemetry_backend,
        create_tool_registry,
    )

    store = create_session_store(config.store)

    if problem is None:
        window = _stored_window(store, session_id, config.telemetry.window_minutes)

    try:
        llm = create_llm_provider(config.llm)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    backend = create_telemetry_backend(config.telemetry)

    async with llm, backend:
        registry = create_tool_registry(backend, config.telemetry, window)
        runner = create_runner(config, llm, registry, store)

        if problem is not None:
            session_id = await runner.start(problem, session_id, window=window)

        try:
            result = await runner.run(session_id, max_steps=max_steps)
        except KeyError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)

    store.persist()

    if output_format == "json":
        typer.echo(json.dumps({
            "session_id": session_id,
            "done": result.done,
            "final_answer": result.final_answer,
            "final_result": (
                result.state.final_result.model_dump(mode="json")
                if result.state.final_result else None
            ),
            "next_action": result.next_action.value if result.next_action else None,
        }, indent=2))
        return

    if result.done:
        typer.echo(result.final_answer)
    else:
        typer.echo(f"Analysis not finished after {max_steps} steps.")
        typer.echo(f"Resume with: failure-analyst resume {session_id}")


@app.command()
def sessions(
    profile: Annotated[
        str,
        typer.Option("--profile", "-p", help="Configuration profile"),
    ] = None,
):
    """List stored sessions."""
    from .config.factory import create_session_store

    store = create_session_store(_load_profile(profile).store)
    entries = store.list_sessions()

    if not entries:
        typer.echo("No sessions found.")
        return

    stats = store.get_stats()
    typer.echo(
        f"{stats['total_sessions']} sessions "
        f"({stats['completed_sessions']} completed, {stats['active_sessions']} active):\n"
    )
    for entry in entries:
        status = "completed" if entry["completed"] else "in progress"
        typer.echo(f"  {entry['session_id']}  [{entry['kind']}] {status}  {entry['updated_at']}")


@app.command()
def show(
    session_id: Annotated[str, typer.Argument(help="Session ID to show")],
    profile: Annotated[
        str,
        typer.Option("--profile", "-p", help="Configuration profile"),
    ] = None,
):
    """Print the stored state of a session as JSON."""
    from .config.factory import create_session_store

    store = create_session_store(_load_profile(profile).store)
    state = store.get(session_id)

    if state is None:
        typer.echo(f"Error: Unknown session: {session_id}", err=True)
        raise typer.Exit(1)

    typer.echo(state.model_dump_json(indent=2))


@app.command()
def profiles():
    """List available configuration profiles."""
    from .config.loader import load_config_from_yaml, DEFAULT_CONFIG_PATH

    typer.echo("Available profiles:\n")
    for name in list_profiles():
        profile = load_config_from_yaml(DEFAULT_CONFIG_PATH, name)
        typer.echo(f"  {name}")
        typer.echo(f"    LLM: {profile.llm.backend} ({profile.llm.model or 'default model'})")
        typer.echo(f"    Telemetry: {profile.telemetry.backend}")
        typer.echo(
            f"    Cycles: {profile.agent.max_agent_cycles} | "
            f"Hypotheses: {profile.orchestrator.max_hypotheses}"
        )
        typer.echo()


def _load_profile(profile: str | None) -> ProfileConfig:
    try:
        return load_config(profile)
    except KeyError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
