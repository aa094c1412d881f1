"""Telemetry tools the Reaction Agent can call."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .telemetry import (
    HttpTelemetryBackend,
    InMemoryTelemetryBackend,
    TelemetryBackend,
    TelemetryError,
)
from .executors import (
    AUDIT_LOG_TOOL,
    KB_TOOL,
    LOGS_TOOL,
    METRICS_TOOL,
    TRACE_TOOL,
    make_audit_log_executor,
    make_kb_executor,
    make_logs_executor,
    make_metrics_executor,
    make_trace_executor,
    render_records,
)

if TYPE_CHECKING:
    from ..orchestration.models import TimeWindow
    from ..orchestration.tool_registry import ToolRegistry


def register_default_tools(
    registry: ToolRegistry,
    backend: TelemetryBackend,
    window: TimeWindow | None = None,
    max_concurrency: int = 5,
    metric_namespaces: list[str] | None = None,
) -> ToolRegistry:
    """
    Register the five default telemetry tools.

    Args:
        registry: Registry to add the tools to
        backend: Telemetry backend the executors query
        window: Time window of the incident
        max_concurrency: Fan-out limit for the metrics tool
        metric_namespaces: Namespaces the metrics tool queries by default

    Returns:
        The same registry, for chaining
    """
    registry.register(
        METRICS_TOOL,
        make_metrics_executor(backend, window, metric_namespaces, max_concurrency),
    )
    registry.register(LOGS_TOOL, make_logs_executor(backend, window))
    registry.register(AUDIT_LOG_TOOL, make_audit_log_executor(backend, window))
    registry.register(TRACE_TOOL, make_trace_executor(backend, window))
    registry.register(KB_TOOL, make_kb_executor(backend))
    return registry


__all__ = [
    # Backends
    "TelemetryBackend",
    "TelemetryError",
    "HttpTelemetryBackend",
    "InMemoryTelemetryBackend",
    # Descriptors
    "METRICS_TOOL",
    "LOGS_TOOL",
    "AUDIT_LOG_TOOL",
    "TRACE_TOOL",
    "KB_TOOL",
    # Executors
    "make_metrics_executor",
    "make_logs_executor",
    "make_audit_log_executor",
    "make_trace_executor",
    "make_kb_executor",
    "render_records",
    # Registration
    "register_default_tools",
]
