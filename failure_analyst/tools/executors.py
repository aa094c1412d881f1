"""
Default telemetry tools.

Each tool is a descriptor plus an async executor built over a
``TelemetryBackend``. Executors always return text: empty results and
backend failures both produce an observation that starts with the tool's
"no data" phrase, which is what the Reaction Agent's data-availability
bookkeeping looks for.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, TYPE_CHECKING

from ..orchestration.models import ToolDescriptor, ToolExecutor, ToolParameter
from ..orchestration.react_agent import (
    NO_CHANGE_HISTORY_DATA,
    NO_KNOWLEDGE_BASE_DATA,
    NO_LOGS_DATA,
    NO_METRICS_DATA,
    NO_TRACE_DATA,
)
from .telemetry import TelemetryError

if TYPE_CHECKING:
    from ..orchestration.models import TimeWindow
    from .telemetry import TelemetryBackend

logger = logging.getLogger(__name__)

MAX_RENDERED_RECORDS = 50


# -----------------------------------------------------------------------------
# Tool descriptors
# -----------------------------------------------------------------------------

METRICS_TOOL = ToolDescriptor(
    name="metrics_tool",
    description=(
        "Fetch metrics for the incident time window. Queries every namespace "
        "in parallel and returns the datapoints found."
    ),
    parameters=(
        ToolParameter(
            name="namespaces",
            type="array",
            description="Metric namespaces to query; defaults to all configured namespaces",
            required=False,
        ),
        ToolParameter(
            name="metric_name",
            type="string",
            description="Only return this metric",
            required=False,
        ),
    ),
)

LOGS_TOOL = ToolDescriptor(
    name="logs_tool",
    description="Search application logs in the incident time window.",
    parameters=(
        ToolParameter(
            name="filter_pattern",
            type="string",
            description="Text the log message must contain, e.g. ERROR or a request id",
            required=False,
        ),
        ToolParameter(
            name="log_group",
            type="string",
            description="Only search this log group",
            required=False,
        ),
    ),
)

AUDIT_LOG_TOOL = ToolDescriptor(
    name="audit_log_tool",
    description=(
        "List configuration changes and deployments recorded in the audit log "
        "during the incident time window."
    ),
    parameters=(
        ToolParameter(
            name="resource",
            type="string",
            description="Only return changes to this resource",
            required=False,
        ),
    ),
)

TRACE_TOOL = ToolDescriptor(
    name="trace_tool",
    description="Fetch distributed traces with errors or high latency in the incident time window.",
    parameters=(
        ToolParameter(
            name="service",
            type="string",
            description="Only return traces touching this service",
            required=False,
        ),
    ),
)

KB_TOOL = ToolDescriptor(
    name="kb_tool",
    description="Search the knowledge base of runbooks and past incident reports.",
    parameters=(
        ToolParameter(
            name="query",
            type="string",
            description="What to search for",
            required=True,
        ),
        ToolParameter(
            name="max_results",
            type="integer",
            description="Maximum number of documents to return (default 3)",
            required=False,
        ),
    ),
)


# -----------------------------------------------------------------------------
# Rendering helpers
# -----------------------------------------------------------------------------


def render_records(records: list[dict], limit: int = MAX_RENDERED_RECORDS) -> str:
    """Render records one JSON object per line, truncated to ``limit``."""
    lines = [json.dumps(record, default=str, sort_keys=True) for record in records[:limit]]
    if len(records) > limit:
        lines.append(f"... {len(records) - limit} more records omitted")
    return "\n".join(lines)


def _window_text(window: TimeWindow | None) -> str:
    if window is None:
        return ""
    return f" between {window.start.isoformat()} and {window.end.isoformat()}"


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(part) for part in value]


def _filters(params: dict[str, Any], *names: str) -> dict[str, Any]:
    return {name: params[name] for name in names if params.get(name) is not None}


# -----------------------------------------------------------------------------
# Executors
# -----------------------------------------------------------------------------


def make_metrics_executor(
    backend: TelemetryBackend,
    window: TimeWindow | None = None,
    default_namespaces: list[str] | None = None,
    max_concurrency: int = 5,
) -> ToolExecutor:
    """
    Create the ``metrics_tool`` executor.

    One backend query is issued per namespace, at most ``max_concurrency`` at
    a time, and the results are folded into one observation.
    """
    semaphore_limit = max(1, max_concurrency)

    async def execute(params: dict[str, Any]) -> str:
        namespaces = _as_list(params.get("namespaces")) or list(default_namespaces or [])
        extra = _filters(params, "metric_name")
        semaphore = asyncio.Semaphore(semaphore_limit)

        async def query_namespace(namespace: str | None) -> list[dict]:
            async with semaphore:
                query = dict(extra)
                if namespace:
                    query["namespace"] = namespace
                return await backend.query("metrics", query, window)

        targets: list[str | None] = namespaces or [None]
        results = await asyncio.gather(
            *(query_namespace(ns) for ns in targets),
            return_exceptions=True,
        )

        records: list[dict] = []
        errors: list[str] = []
        for namespace, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.error(f"Metrics query failed for {namespace or 'all namespaces'}: {result}")
                errors.append(f"{namespace or 'all namespaces'}: {result}")
            else:
                records.extend(result)

        if not records:
            suffix = f" (errors: {'; '.join(errors)})" if errors else ""
            return f"{NO_METRICS_DATA}{_window_text(window)}.{suffix}"

        text = f"Metric datapoints{_window_text(window)}:\n{render_records(records)}"
        if errors:
            text += "\nQueries that failed:\n- " + "\n- ".join(errors)
        return text

    return execute


def _make_simple_executor(
    backend: TelemetryBackend,
    source: str,
    no_data: str,
    heading: str,
    filter_names: tuple[str, ...],
    window: TimeWindow | None,
) -> ToolExecutor:
    async def execute(params: dict[str, Any]) -> str:
        try:
            records = await backend.query(source, _filters(params, *filter_names), window)
        except TelemetryError as e:
            logger.error(f"{source} query failed: {e}")
            return f"{no_data}{_window_text(window)} (query failed: {e})"

        if not records:
            return f"{no_data}{_window_text(window)}."
        return f"{heading}{_window_text(window)}:\n{render_records(records)}"

    return execute


def make_logs_executor(backend: TelemetryBackend, window: TimeWindow | None = None) -> ToolExecutor:
    """Create the ``logs_tool`` executor."""
    return _make_simple_executor(
        backend, "logs", NO_LOGS_DATA, "Log events", ("filter_pattern", "log_group"), window
    )


def make_audit_log_executor(backend: TelemetryBackend, window: TimeWindow | None = None) -> ToolExecutor:
    """Create the ``audit_log_tool`` executor."""
    return _make_simple_executor(
        backend, "audit", NO_CHANGE_HISTORY_DATA, "Recorded changes", ("resource",), window
    )


def make_trace_executor(backend: TelemetryBackend, window: TimeWindow | None = None) -> ToolExecutor:
    """Create the ``trace_tool`` executor."""
    return _make_simple_executor(
        backend, "traces", NO_TRACE_DATA, "Traces", ("service",), window
    )


def make_kb_executor(backend: TelemetryBackend, default_max_results: int = 3) -> ToolExecutor:
    """Create the ``kb_tool`` executor. Knowledge-base search is not time bound."""

    async def execute(params: dict[str, Any]) -> str:
        try:
            max_results = int(params.get("max_results") or default_max_results)
        except (TypeError, ValueError):
            max_results = default_max_results

        try:
            documents = await backend.query("kb", {"query": params["query"]}, None)
        except TelemetryError as e:
            logger.error(f"Knowledge base query failed: {e}")
            return f"{NO_KNOWLEDGE_BASE_DATA} (query failed: {e})"

        if not documents:
            return f"{NO_KNOWLEDGE_BASE_DATA}."

        lines = []
        for i, doc in enumerate(documents[:max_results], start=1):
            title = doc.get("title", f"Document {i}")
            content = doc.get("content") or doc.get("text") or ""
            lines.append(f"[{i}] {title}\n{content}".rstrip())
        return "\n\n".join(lines)

    return execute
