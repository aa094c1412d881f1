"""
Incident analysis engine.

Components:
- ToolRegistry: name to tool map with parameter validation
- ReactionAgent: think / act / observe / complete loop for one session
- HypothesisGenerator: Tree-of-Thought root-cause proposals
- Evaluator: judges a hypothesis against collected evidence
- Orchestrator: hypothesis generation, verification and final answer
- StateStore / AnalysisRunner: persistence and the resumable step loop
"""

from .models import (
    ConfidenceLevel,
    DataCollectionStatus,
    EvaluationResult,
    EvaluationStatus,
    EvidenceClass,
    FinalResult,
    FinalResultStatus,
    HistoryItem,
    HistoryKind,
    Hypothesis,
    HypothesisGeneration,
    HypothesisSource,
    NextAction,
    OrchestratorState,
    OrchestratorStepResult,
    ReactionState,
    SessionState,
    StepResult,
    TimeWindow,
    ToolAction,
    ToolDescriptor,
    ToolExecutionRecord,
    ToolExecutor,
    ToolParameter,
    VerificationState,
    VerificationStatus,
)
from .tool_registry import (
    MissingRequiredParameterError,
    ToolNotFoundError,
    ToolRegistry,
    ToolRegistryError,
)
from .react_agent import NO_DATA_MARKERS, ReactionAgent
from .hypothesis_generator import HypothesisGenerator
from .evaluator import Evaluator
from .orchestrator import Orchestrator
from .protocols import SessionStoreProtocol
from .state_store import StateStore
from .runner import AnalysisRunner

__all__ = [
    # Models
    "ConfidenceLevel",
    "DataCollectionStatus",
    "EvaluationResult",
    "EvaluationStatus",
    "EvidenceClass",
    "FinalResult",
    "FinalResultStatus",
    "HistoryItem",
    "HistoryKind",
    "Hypothesis",
    "HypothesisGeneration",
    "HypothesisSource",
    "NextAction",
    "OrchestratorState",
    "OrchestratorStepResult",
    "ReactionState",
    "SessionState",
    "StepResult",
    "TimeWindow",
    "ToolAction",
    "ToolDescriptor",
    "ToolExecutionRecord",
    "ToolExecutor",
    "ToolParameter",
    "VerificationState",
    "VerificationStatus",
    # Tool registry
    "ToolRegistry",
    "ToolRegistryError",
    "ToolNotFoundError",
    "MissingRequiredParameterError",
    # Agents
    "ReactionAgent",
    "NO_DATA_MARKERS",
    "HypothesisGenerator",
    "Evaluator",
    "Orchestrator",
    # Persistence
    "SessionStoreProtocol",
    "StateStore",
    "AnalysisRunner",
]
