"""Failure analyst: LLM-driven root-cause analysis of production incidents."""

from .orchestration import (
    AnalysisRunner,
    Evaluator,
    HypothesisGenerator,
    Orchestrator,
    ReactionAgent,
    StateStore,
    ToolRegistry,
)

__all__ = [
    "AnalysisRunner",
    "Evaluator",
    "HypothesisGenerator",
    "Orchestrator",
    "ReactionAgent",
    "StateStore",
    "ToolRegistry",
]
