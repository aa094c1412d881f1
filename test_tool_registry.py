"""Tool registry tests: registration, validation and descriptions."""

import pytest

from conftest import static_tool
from failure_analyst.orchestration.models import ToolDescriptor, ToolParameter
from failure_analyst.orchestration.tool_registry import (
    MissingRequiredParameterError,
    ToolNotFoundError,
    ToolRegistry,
    ToolRegistryError,
)


@pytest.mark.asyncio
async def test_execute_unknown_tool_raises():
    registry = ToolRegistry()

    with pytest.raises(ToolNotFoundError) as exc_info:
        await registry.execute("nope", {})

    assert exc_info.value.name == "nope"
    assert isinstance(exc_info.value, ToolRegistryError)


@pytest.mark.asyncio
async def test_missing_required_parameter_never_invokes_executor():
    """Absent and null required parameters are rejected before the executor runs."""
    calls = []
    registry = ToolRegistry()
    registry.register(*static_tool("kb_tool", "doc", calls, required=("query",)))

    with pytest.raises(MissingRequiredParameterError) as exc_info:
        await registry.execute("kb_tool", {})
    assert exc_info.value.parameter == "query"

    with pytest.raises(MissingRequiredParameterError):
        await registry.execute("kb_tool", {"query": None})

    assert calls == []


@pytest.mark.asyncio
async def test_execute_passes_parameters_and_returns_text():
    calls = []
    registry = ToolRegistry()
    registry.register(*static_tool("kb_tool", "doc", calls, required=("query",)))

    result = await registry.execute("kb_tool", {"query": "latency", "max_results": 2})

    assert result == "doc"
    assert calls == [("kb_tool", {"query": "latency", "max_results": 2})]


@pytest.mark.asyncio
async def test_executor_errors_surface_to_caller():
    registry = ToolRegistry()

    async def broken(params):
        raise RuntimeError("backend down")

    registry.register(ToolDescriptor(name="broken", description="fails"), broken)

    with pytest.raises(RuntimeError, match="backend down"):
        await registry.execute("broken")


@pytest.mark.asyncio
async def test_duplicate_registration_last_write_wins():
    registry = ToolRegistry()
    registry.register(*static_tool("a", "first"))
    registry.register(*static_tool("b", "other"))
    registry.register(*static_tool("a", "second"))

    assert await registry.execute("a", {}) == "second"
    assert [d.name for d in registry.describe()] == ["a", "b"]


def test_describe_keeps_registration_order():
    registry = ToolRegistry()
    for name in ("metrics_tool", "logs_tool", "kb_tool"):
        registry.register(*static_tool(name, ""))

    assert [d.name for d in registry.describe()] == ["metrics_tool", "logs_tool", "kb_tool"]
    assert registry.has_tool("logs_tool")
    assert not registry.has_tool("trace_tool")


def test_describe_text():
    registry = ToolRegistry()
    registry.register(
        ToolDescriptor(
            name="kb_tool",
            description="Search the knowledge base",
            parameters=(
                ToolParameter(name="query", description="What to search for"),
                ToolParameter(name="max_results", type="integer", required=False),
            ),
        ),
        static_tool("kb_tool", "")[1],
    )

    text = registry.describe_text()
    assert "- kb_tool: Search the knowledge base" in text
    assert "query (string, required): What to search for" in text
    assert "max_results (integer, optional)" in text
