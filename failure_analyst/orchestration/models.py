"""Data models for the incident analysis engine.

Every state model here is a pydantic model so that a session can be dumped to
JSON between steps and validated back without loss.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    """Default clock used for history and execution timestamps."""
    return datetime.now(timezone.utc)


# =============================================================================
# Tools
# =============================================================================


class ToolParameter(BaseModel):
    """A single parameter accepted by a tool."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str = "string"
    description: str = ""
    required: bool = True


class ToolDescriptor(BaseModel):
    """Name, description and ordered parameters of a registered tool."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: tuple[ToolParameter, ...] = ()

    @property
    def required_params(self) -> list[str]:
        """Names of the parameters that must be present and non-null."""
        return [p.name for p in self.parameters if p.required]


ToolExecutor = Callable[[dict[str, Any]], Awaitable[str]]


class ToolAction(BaseModel):
    """A tool invocation chosen by the model."""

    tool: str
    parameters: dict[str, Any] = Field(default_factory=dict)

    def to_text(self) -> str:
        return self.model_dump_json()


class ToolExecutionRecord(BaseModel):
    """Audit record written after each tool execution."""

    tool_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    result: str
    timestamp: datetime
    data_available: bool


# =============================================================================
# Reaction Agent
# =============================================================================


class ReactionState(Enum):
    """States of the reaction loop."""

    THINKING = "thinking"
    ACTING = "acting"
    OBSERVING = "observing"
    COMPLETING = "completing"
    COMPLETED = "completed"


class HistoryKind(Enum):
    """Kind of a history entry. Only CYCLE entries count as reasoning cycles."""

    CYCLE = "cycle"
    FINAL_ANSWER = "final_answer"
    NO_ACTION = "no_action"
    RATE_LIMITED = "rate_limited"


class EvidenceClass(Enum):
    """Classes of telemetry evidence tracked for forced completion."""

    METRICS = "metrics"
    LOGS = "logs"
    CHANGE_HISTORY = "change_history"
    TRACES = "traces"
    KNOWLEDGE_BASE = "knowledge_base"


class HistoryItem(BaseModel):
    """One entry of the append-only reasoning history."""

    thinking: str
    action: str
    observation: str
    timestamp: datetime
    kind: HistoryKind = HistoryKind.CYCLE


class DataCollectionStatus(BaseModel):
    """Whether usable data has been seen for each evidence class."""

    metrics: bool = False
    logs: bool = False
    change_history: bool = False
    traces: bool = False
    knowledge_base: bool = False

    def get(self, evidence_class: EvidenceClass) -> bool:
        return getattr(self, evidence_class.value)

    def set(self, evidence_class: EvidenceClass, value: bool) -> None:
        setattr(self, evidence_class.value, value)

    def collected(self) -> list[EvidenceClass]:
        """Evidence classes for which data was found."""
        return [ec for ec in EvidenceClass if self.get(ec)]

    def missing(self) -> list[EvidenceClass]:
        """Evidence classes still without data."""
        return [ec for ec in EvidenceClass if not self.get(ec)]

    def any_collected(self) -> bool:
        return bool(self.collected())


class SessionState(BaseModel):
    """
    Checkpoint of one Reaction Agent session.

    ``last_thinking`` and ``last_action`` are set exactly while the session is
    ACTING or OBSERVING; ``last_observation`` only while OBSERVING.
    """

    context: str
    history: list[HistoryItem] = Field(default_factory=list)
    final_answer: str = ""
    state: ReactionState = ReactionState.THINKING
    cycle_count: int = 0
    data_collection_status: DataCollectionStatus = Field(
        default_factory=DataCollectionStatus
    )
    last_thinking: str | None = None
    last_action: str | None = None
    last_observation: str | None = None
    missing_data: list[EvidenceClass] = Field(default_factory=list)
    tool_executions: list[ToolExecutionRecord] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_pending_fields(self) -> SessionState:
        in_flight = self.state in (ReactionState.ACTING, ReactionState.OBSERVING)
        if in_flight and (self.last_thinking is None or self.last_action is None):
            raise ValueError(
                f"last_thinking/last_action required in state {self.state.value}"
            )
        if not in_flight and (
            self.last_thinking is not None
            or self.last_action is not None
            or self.last_observation is not None
        ):
            raise ValueError(
                f"last_* fields must be cleared in state {self.state.value}"
            )
        if self.state == ReactionState.OBSERVING and self.last_observation is None:
            raise ValueError("last_observation required in state observing")
        if self.state == ReactionState.ACTING and self.last_observation is not None:
            raise ValueError("last_observation must be empty in state acting")
        return self

    @property
    def cycle_history(self) -> list[HistoryItem]:
        """History entries produced by completed reasoning cycles."""
        return [item for item in self.history if item.kind == HistoryKind.CYCLE]

    @property
    def is_completed(self) -> bool:
        return self.state == ReactionState.COMPLETED


class StepResult(BaseModel):
    """Outcome of one Reaction Agent step."""

    done: bool
    state: SessionState
    final_answer: str | None = None


# =============================================================================
# Hypotheses and evaluation
# =============================================================================


class HypothesisSource(Enum):
    """Where a hypothesis came from."""

    KNOWLEDGE_BASE = "knowledge_base"
    LLM = "llm"


class ConfidenceLevel(Enum):
    """Coarse confidence bucket."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Hypothesis(BaseModel):
    """A candidate root-cause explanation."""

    id: str
    description: str
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
    source: HypothesisSource = HypothesisSource.LLM

    @property
    def confidence_level(self) -> ConfidenceLevel:
        if self.confidence >= 0.7:
            return ConfidenceLevel.HIGH
        if self.confidence >= 0.4:
            return ConfidenceLevel.MEDIUM
        return ConfidenceLevel.LOW


class HypothesisGeneration(BaseModel):
    """Hypotheses plus the search text they were generated from."""

    hypotheses: list[Hypothesis]
    search_results: str = ""


class EvaluationStatus(Enum):
    """Verdict of the Evaluator."""

    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    INCONCLUSIVE = "inconclusive"


class EvaluationResult(BaseModel):
    """Evaluation of one hypothesis against collected evidence."""

    hypothesis_id: str
    status: EvaluationStatus
    confidence_level: ConfidenceLevel
    reasoning: str = ""

    @property
    def is_confirmed_high(self) -> bool:
        return (
            self.status == EvaluationStatus.CONFIRMED
            and self.confidence_level == ConfidenceLevel.HIGH
        )


# =============================================================================
# Telemetry
# =============================================================================


class TimeWindow(BaseModel):
    """Time range the telemetry tools query."""

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _check_order(self) -> TimeWindow:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("TimeWindow bounds must be timezone-aware")
        if self.start > self.end:
            raise ValueError("TimeWindow start must not be after end")
        return self

    @classmethod
    def last(cls, minutes: int = 60, now: datetime | None = None) -> TimeWindow:
        """Window ending now and spanning the given number of minutes."""
        end = now or utc_now()
        return cls(start=end - timedelta(minutes=minutes), end=end)


# =============================================================================
# Orchestrator
# =============================================================================


class VerificationStatus(Enum):
    """Progress of a hypothesis verification."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class VerificationState(BaseModel):
    """Verification progress for one hypothesis."""

    hypothesis_id: str
    status: VerificationStatus = VerificationStatus.PENDING
    evaluation_result: EvaluationResult | None = None


class FinalResultStatus(Enum):
    """How the final answer was reached."""

    CONFIRMED = "confirmed"
    BEST_EFFORT = "best_effort"
    FALLBACK = "fallback"


class FinalResult(BaseModel):
    """Hypothesis the final answer is based on, if any."""

    hypothesis_id: str | None = None
    status: FinalResultStatus
    confidence_level: ConfidenceLevel


class NextAction(Enum):
    """What the Orchestrator will do on its next step."""

    GENERATE_HYPOTHESES = "generate_hypotheses"
    SELECT_NEXT_HYPOTHESIS = "select_next_hypothesis"
    VERIFY_HYPOTHESIS = "verify_hypothesis"
    EVALUATE_HYPOTHESIS = "evaluate_hypothesis"
    GENERATE_FINAL_ANSWER = "generate_final_answer"


class OrchestratorState(BaseModel):
    """
    Checkpoint of one analysis driven by the Orchestrator.

    There is exactly one verification state per hypothesis, in hypothesis
    order. ``current_hypothesis_index`` is -1 until a hypothesis is selected.
    ``window`` is the incident window the tools were built for; a resumed
    analysis must query the same one.
    """

    context: str
    window: TimeWindow | None = None
    hypotheses: list[Hypothesis] = Field(default_factory=list)
    search_results: str = ""
    current_hypothesis_index: int = -1
    verification_states: list[VerificationState] = Field(default_factory=list)
    react_session_state: SessionState | None = None
    final_result: FinalResult | None = None
    final_answer: str | None = None

    @model_validator(mode="after")
    def _check_verification_states(self) -> OrchestratorState:
        hypothesis_ids = [h.id for h in self.hypotheses]
        verification_ids = [v.hypothesis_id for v in self.verification_states]
        if hypothesis_ids != verification_ids:
            raise ValueError(
                "verification_states must hold exactly one entry per hypothesis"
            )
        index = self.current_hypothesis_index
        if index != -1 and not 0 <= index < len(self.hypotheses):
            raise ValueError(f"current_hypothesis_index out of range: {index}")
        return self

    @property
    def is_done(self) -> bool:
        return self.final_answer is not None

    @property
    def current_hypothesis(self) -> Hypothesis | None:
        if self.current_hypothesis_index < 0:
            return None
        return self.hypotheses[self.current_hypothesis_index]

    @property
    def current_verification(self) -> VerificationState | None:
        if self.current_hypothesis_index < 0:
            return None
        return self.verification_states[self.current_hypothesis_index]

    def first_pending_index(self) -> int:
        """Index of the first pending verification, or -1."""
        for i, verification in enumerate(self.verification_states):
            if verification.status == VerificationStatus.PENDING:
                return i
        return -1

    def find_hypothesis(self, hypothesis_id: str) -> Hypothesis | None:
        for hypothesis in self.hypotheses:
            if hypothesis.id == hypothesis_id:
                return hypothesis
        return None


class OrchestratorStepResult(BaseModel):
    """Outcome of one Orchestrator step."""

    done: bool
    state: OrchestratorState
    final_answer: str | None = None
    next_action: NextAction | None = None
