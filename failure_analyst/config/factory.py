"""Factory functions to create components from configuration."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..llm.protocols import LLMProvider
    from ..orchestration.models import TimeWindow
    from ..orchestration.orchestrator import Orchestrator
    from ..orchestration.runner import AnalysisRunner
    from ..orchestration.state_store import StateStore
    from ..orchestration.tool_registry import ToolRegistry
    from ..tools.telemetry import TelemetryBackend
    from .loader import LLMConfig, ProfileConfig, StoreConfig, TelemetryConfig


class MockLLMProvider:
    """
    Mock LLM provider for testing.

    Answers each kind of prompt with a fixed, well-formed reply so that a
    whole analysis runs to completion without a real model.
    """

    def __init__(self):
        self.prompts: list[str] = []

    async def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> str:
        """Return a mock completion."""
        self.prompts.append(prompt)

        if "<Hypothesis 1>" in prompt:
            return (
                "<Hypothesis 1>\n"
                "Description: [Mock] A recent deployment introduced a regression\n"
                "Confidence: 0.8\n"
                "Reasoning: [Mock] Errors started right after a change\n"
                "Source: llm\n"
                "</Hypothesis 1>"
            )
        if "<Evaluation>" in prompt:
            return (
                "<Evaluation>\n"
                "Status: confirmed\n"
                "Confidence: high\n"
                "Reasoning: [Mock] The collected metrics match the hypothesis\n"
                "</Evaluation>"
            )
        if "<Recommendations>" in prompt:
            return (
                "<Recommendations>\n"
                "## Recommended Actions\n1. [Mock] Roll back the last deployment\n\n"
                "## Prevention Measures\n1. [Mock] Add a canary stage\n"
                "</Recommendations>"
            )
        if "<FinalAnswer>" in prompt:
            return (
                "<Thought>[Mock] The metrics are enough to conclude.</Thought>\n"
                "<FinalAnswer>[Mock] Regression from the last deployment</FinalAnswer>"
            )
        return f"[Mock analysis of: {prompt[:50]}...]"

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


MOCK_TELEMETRY_RECORDS: dict[str, list[dict]] = {
    "metrics": [
        {"namespace": "checkout", "metric": "5xx_rate", "value": 0.12, "timestamp": "2024-01-01T10:05:00Z"},
        {"namespace": "checkout", "metric": "p99_latency_ms", "value": 2300, "timestamp": "2024-01-01T10:05:00Z"},
    ],
    "logs": [
        {"log_group": "checkout-api", "message": "ERROR upstream payment service timed out"},
    ],
    "audit": [
        {"resource": "checkout-api", "change": "deployment v2.3.1", "timestamp": "2024-01-01T09:58:00Z"},
    ],
    "traces": [],
    "kb": [
        {"title": "Checkout latency runbook", "content": "Check the payment service dependency first."},
    ],
}


def create_llm_provider(config: LLMConfig) -> LLMProvider:
    """Create an LLM provider from configuration.

    Args:
        config: LLM configuration

    Returns:
        LLMProvider instance (OpenRouterAdapter, AnthropicAdapter, or Mock)

    Raises:
        ValueError: If backend type is not supported
    """
    if config.backend == "openrouter":
        from ..llm import OpenRouterAdapter

        if not config.api_key:
            raise ValueError("OpenRouter backend requires api_key")

        return OpenRouterAdapter(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            timeout=config.timeout,
        )

    elif config.backend == "anthropic":
        from ..llm import AnthropicAdapter

        if not config.api_key:
            raise ValueError("Anthropic backend requires api_key")

        return AnthropicAdapter(
            api_key=config.api_key,
            model=config.model,
            timeout=config.timeout,
        )

    elif config.backend == "mock":
        return MockLLMProvider()

    else:
        raise ValueError(f"Unsupported LLM backend: {config.backend}")


def create_telemetry_backend(config: TelemetryConfig) -> TelemetryBackend:
    """Create the telemetry backend used by the tools.

    Args:
        config: Telemetry configuration

    Returns:
        HttpTelemetryBackend or InMemoryTelemetryBackend

    Raises:
        ValueError: If backend type is not supported
    """
    if config.backend == "http":
        from ..tools import HttpTelemetryBackend

        return HttpTelemetryBackend(
            base_url=config.base_url,
            api_token=config.api_token,
            timeout=config.timeout,
        )

    elif config.backend == "mock":
        from ..tools import InMemoryTelemetryBackend

        return InMemoryTelemetryBackend(records=MOCK_TELEMETRY_RECORDS)

    else:
        raise ValueError(f"Unsupported telemetry backend: {config.backend}")


def create_tool_registry(
    backend: TelemetryBackend,
    config: TelemetryConfig,
    window: TimeWindow | None = None,
) -> ToolRegistry:
    """Create a registry holding the default telemetry tools.

    Args:
        backend: Telemetry backend the tools query
        config: Telemetry configuration (fan-out limit, namespaces)
        window: Incident time window; defaults to the last ``window_minutes``

    Returns:
        ToolRegistry instance
    """
    from ..orchestration.models import TimeWindow
    from ..orchestration.tool_registry import ToolRegistry
    from ..tools import register_default_tools

    return register_default_tools(
        ToolRegistry(),
        backend,
        window=window or TimeWindow.last(config.window_minutes),
        max_concurrency=config.max_concurrency,
        metric_namespaces=config.metric_namespaces,
    )


def create_session_store(config: StoreConfig) -> StateStore:
    """Create the session store.

    Args:
        config: Store configuration

    Returns:
        StateStore instance (in memory only when no path is configured)
    """
    from ..orchestration.state_store import StateStore

    return StateStore(
        persist_path=Path(config.persist_path) if config.persist_path else None,
        auto_persist=config.auto_persist,
    )


def create_orchestrator(
    profile: ProfileConfig,
    llm: LLMProvider,
    registry: ToolRegistry,
) -> Orchestrator:
    """Create an Orchestrator from a profile.

    Args:
        profile: Profile configuration
        llm: LLM provider
        registry: Tool registry used during verification

    Returns:
        Orchestrator instance
    """
    from ..orchestration.orchestrator import Orchestrator

    return Orchestrator(
        llm,
        registry,
        config=profile.orchestrator,
        agent_config=profile.agent,
    )


def create_runner(
    profile: ProfileConfig,
    llm: LLMProvider,
    registry: ToolRegistry,
    store: StateStore | None = None,
) -> AnalysisRunner:
    """Create an AnalysisRunner from a profile.

    Args:
        profile: Profile configuration
        llm: LLM provider
        registry: Tool registry used during verification
        store: Session store; created from the profile if omitted

    Returns:
        AnalysisRunner instance
    """
    from ..orchestration.runner import AnalysisRunner

    return AnalysisRunner(
        create_orchestrator(profile, llm, registry),
        store or create_session_store(profile.store),
    )
