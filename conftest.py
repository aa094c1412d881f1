"""
Shared fixtures for the failure analyst tests.

Provides a scripted LLM, a fixed clock and registries built over in-memory
tools so that tests never touch the network.
"""

import json
from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from failure_analyst.orchestration.models import ToolDescriptor, ToolParameter
from failure_analyst.orchestration.tool_registry import ToolRegistry

FIXED_TIME = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


class ScriptedLLM:
    """
    LLM provider replaying queued replies.

    Each call pops the next item: a string is returned, an exception is
    raised. When the queue is empty ``default`` is returned.
    """

    def __init__(self, replies: list[Any] | None = None, default: str = ""):
        self.replies = list(replies or [])
        self.default = default
        self.prompts: list[str] = []

    def queue(self, *replies: Any) -> "ScriptedLLM":
        self.replies.extend(replies)
        return self

    async def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> str:
        self.prompts.append(prompt)
        if not self.replies:
            return self.default
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    @property
    def calls(self) -> int:
        return len(self.prompts)


def action_reply(tool: str, parameters: dict | None = None, thought: str = "Checking.") -> str:
    """A well-formed THINKING reply choosing a tool."""
    body = json.dumps({"tool": tool, "parameters": parameters or {}})
    return f"<Thought>{thought}</Thought>\n<Action>\n{body}\n</Action>"


def final_reply(text: str = "Root cause found.") -> str:
    """A THINKING reply declaring a final answer."""
    return f"<Thought>Enough evidence.</Thought>\n<FinalAnswer>{text}</FinalAnswer>"


def evaluation_reply(status: str = "confirmed", confidence: str = "high") -> str:
    return (
        "<Evaluation>\n"
        f"Status: {status}\n"
        f"Confidence: {confidence}\n"
        "Reasoning: The metrics line up with the hypothesis.\n"
        "</Evaluation>"
    )


def hypotheses_reply(*confidences: float) -> str:
    """A generator reply with one hypothesis block per confidence value."""
    blocks = []
    for i, confidence in enumerate(confidences, start=1):
        blocks.append(
            f"<Hypothesis {i}>\n"
            f"Description: Cause number {i}\n"
            f"Confidence: {confidence}\n"
            f"Reasoning: Reason {i}\n"
            "Source: llm\n"
            f"</Hypothesis {i}>"
        )
    return "\n\n".join(blocks)


RECOMMENDATIONS_REPLY = (
    "<Recommendations>\n"
    "## Recommended Actions\n1. Roll back the release\n\n"
    "## Prevention Measures\n1. Add a canary stage\n"
    "</Recommendations>"
)


def static_tool(name: str, reply: str, calls: list | None = None, required: tuple[str, ...] = ()):
    """Descriptor and executor for a tool that always returns ``reply``."""
    descriptor = ToolDescriptor(
        name=name,
        description=f"Test tool {name}",
        parameters=tuple(ToolParameter(name=p, required=True) for p in required),
    )

    async def execute(params: dict) -> str:
        if calls is not None:
            calls.append((name, params))
        return reply

    return descriptor, execute


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Clock that always returns the same instant."""
    return lambda: FIXED_TIME


@pytest.fixture
def tool_calls() -> list:
    return []


@pytest.fixture
def registry(tool_calls) -> ToolRegistry:
    """Registry with metrics, logs and knowledge-base tools that find data."""
    registry = ToolRegistry()
    registry.register(*static_tool("metrics_tool", "cpu=97% on checkout-api", tool_calls))
    registry.register(*static_tool("logs_tool", "ERROR payment timeout", tool_calls))
    registry.register(
        *static_tool("kb_tool", "Runbook: check the payment service", tool_calls, required=("query",))
    )
    return registry


@pytest.fixture
def empty_registry(tool_calls) -> ToolRegistry:
    """Registry whose metrics and logs tools never find data."""
    registry = ToolRegistry()
    registry.register(*static_tool("metrics_tool", "No metric data found.", tool_calls))
    registry.register(*static_tool("logs_tool", "No logs matched the conditions.", tool_calls))
    return registry
