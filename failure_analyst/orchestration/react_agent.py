"""
Reaction Agent: the think / act / observe / complete loop.

The agent holds no per-session state. Every call to ``step`` takes a
``SessionState`` checkpoint, advances it by exactly one state transition and
returns the new checkpoint, so a caller can persist it between steps and
resume in another process.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable

from ..config.loader import AgentConfig
from ..llm.errors import RateLimitedError
from .models import (
    EvidenceClass,
    HistoryItem,
    HistoryKind,
    ReactionState,
    SessionState,
    StepResult,
    ToolAction,
    ToolExecutionRecord,
    utc_now,
)
from .parsing import ActionDirective, FinalAnswerDirective, Unparseable, parse_thinking
from .prompts import (
    ANALYST_SYSTEM_PROMPT,
    build_final_answer_prompt,
    build_thinking_prompt,
    render_data_summary,
    render_final_answer_action,
)

if TYPE_CHECKING:
    from ..llm.protocols import LLMProvider
    from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


# Phrases the default tool executors return when a query finds nothing.
NO_METRICS_DATA = "No metric data found"
NO_LOGS_DATA = "No logs matched the conditions"
NO_CHANGE_HISTORY_DATA = "No change history found"
NO_TRACE_DATA = "No traces found"
NO_KNOWLEDGE_BASE_DATA = "No matching information found in the knowledge base"

NO_DATA_MARKERS: dict[str, tuple[EvidenceClass, str]] = {
    "metrics_tool": (EvidenceClass.METRICS, NO_METRICS_DATA),
    "logs_tool": (EvidenceClass.LOGS, NO_LOGS_DATA),
    "change_history_tool": (EvidenceClass.CHANGE_HISTORY, NO_CHANGE_HISTORY_DATA),
    "audit_log_tool": (EvidenceClass.CHANGE_HISTORY, NO_CHANGE_HISTORY_DATA),
    "trace_tool": (EvidenceClass.TRACES, NO_TRACE_DATA),
    "kb_tool": (EvidenceClass.KNOWLEDGE_BASE, NO_KNOWLEDGE_BASE_DATA),
}

NO_ACTION_EXTRACTED = "NO_ACTION_EXTRACTED"
NO_ACTION_OBSERVATION = (
    "The action was not given in the expected format. Think again and reply with "
    "a <Thought> and an <Action> block."
)
FINAL_ANSWER_OBSERVATION = "Generating the final answer."
FORCED_COMPLETION_OBSERVATION = (
    "Cycle budget reached. Generating the final answer from the data collected so far."
)
RATE_LIMITED_OBSERVATION = (
    "The language model rate limit was reached while thinking. "
    "Generating the final answer from the data collected so far."
)
EMPTY_FINAL_ANSWER = "The analysis finished but no result could be generated."


def has_data(tool_name: str, observation: str) -> bool:
    """Whether a tool observation contains data, judged by its "no data" phrase."""
    marker = NO_DATA_MARKERS.get(tool_name)
    if marker is None:
        return True
    return marker[1] not in observation


class ReactionAgent:
    """
    Drives one reasoning session through THINKING, ACTING, OBSERVING,
    COMPLETING and COMPLETED.

    Usage:
        agent = ReactionAgent(llm, registry)
        state = agent.new_session("checkout errors spiking")
        while True:
            result = await agent.step(state)
            state = result.state
            if result.done:
                break
    """

    def __init__(
        self,
        llm: LLMProvider,
        registry: ToolRegistry,
        config: AgentConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the agent.

        Args:
            llm: LLM provider used for thinking and the final narrative
            registry: Tools the model may call
            config: Cycle budget and history truncation settings
            clock: Timestamp source, defaults to UTC now
        """
        self.llm = llm
        self.registry = registry
        self.config = config or AgentConfig()
        self._clock = clock or utc_now

    def new_session(self, context: str) -> SessionState:
        """Create a fresh session in THINKING."""
        return SessionState(context=context)

    def seed_action(
        self,
        state: SessionState,
        tool: str,
        parameters: dict[str, Any] | None = None,
        thinking: str = "",
    ) -> SessionState:
        """
        Return a copy of a THINKING session placed in ACTING with a fixed
        first action, so the next step executes it without consulting the LLM.
        """
        if state.state != ReactionState.THINKING:
            raise ValueError(f"Can only seed a session in THINKING, not {state.state.value}")

        session = state.model_copy(deep=True)
        session.last_thinking = thinking
        session.last_action = ToolAction(tool=tool, parameters=parameters or {}).to_text()
        session.state = ReactionState.ACTING
        return session

    async def step(self, state: SessionState) -> StepResult:
        """
        Advance a session by one transition.

        The input state is never modified. If the step raises, the caller's
        checkpoint is still valid and the step can be retried.

        Args:
            state: Current checkpoint

        Returns:
            StepResult with the new checkpoint; ``done`` once COMPLETED
        """
        session = state.model_copy(deep=True)
        logger.info(f"Reaction step: {session.state.value} (cycle {session.cycle_count})")

        if session.state == ReactionState.THINKING:
            return await self._think(session)
        if session.state == ReactionState.ACTING:
            return await self._act(session)
        if session.state == ReactionState.OBSERVING:
            return self._observe(session)
        if session.state == ReactionState.COMPLETING:
            return await self._complete(session)
        return StepResult(done=True, state=session, final_answer=session.final_answer)

    async def run(self, state: SessionState, max_steps: int = 50) -> StepResult:
        """Step until the session completes or ``max_steps`` is used up."""
        result = StepResult(done=state.is_completed, state=state)
        for _ in range(max_steps):
            result = await self.step(result.state)
            if result.done:
                break
        return result

    # -------------------------------------------------------------------------
    # States
    # -------------------------------------------------------------------------

    async def _think(self, session: SessionState) -> StepResult:
        prompt = build_thinking_prompt(
            session.context,
            session.history,
            self.registry.describe_text(),
            session.cycle_count,
            truncation_threshold=self.config.history_truncation_threshold,
            window=self.config.history_window,
            high_cycle_warning=self.config.high_cycle_warning,
        )
        logger.debug(f"Thinking prompt: {len(prompt)} chars")

        try:
            reply = await self.llm.complete(prompt, system_prompt=ANALYST_SYSTEM_PROMPT)
        except RateLimitedError as e:
            logger.warning(f"Rate limited while thinking, moving to completion: {e}")
            self._to_completing(session, "", "", RATE_LIMITED_OBSERVATION, HistoryKind.RATE_LIMITED)
            return StepResult(done=False, state=session)

        reply = reply or ""
        parsed = parse_thinking(reply)
        forced = self._should_force_completion(session)

        if isinstance(parsed, FinalAnswerDirective) or forced:
            if isinstance(parsed, FinalAnswerDirective):
                logger.info("Model produced a final answer")
                content, observation = parsed.text, FINAL_ANSWER_OBSERVATION
            else:
                logger.info(f"Forcing completion after {session.cycle_count} cycles")
                content, observation = "", FORCED_COMPLETION_OBSERVATION
            self._to_completing(session, reply, content, observation, HistoryKind.FINAL_ANSWER)
            return StepResult(done=False, state=session)

        if isinstance(parsed, Unparseable):
            logger.warning(f"No action extracted from thinking: {parsed.reason}")
            self._append(
                session, reply, NO_ACTION_EXTRACTED, NO_ACTION_OBSERVATION, HistoryKind.NO_ACTION
            )
            return StepResult(done=False, state=session)

        assert isinstance(parsed, ActionDirective)
        logger.info(f"Action decided: {parsed.tool}")
        session.last_thinking = reply
        session.last_action = ToolAction(tool=parsed.tool, parameters=parsed.parameters).to_text()
        session.state = ReactionState.ACTING
        return StepResult(done=False, state=session)

    async def _act(self, session: SessionState) -> StepResult:
        action = ToolAction.model_validate_json(session.last_action)

        try:
            observation = await self.registry.execute(action.tool, action.parameters)
        except Exception as e:
            logger.error(f"Tool {action.tool} failed: {e}")
            observation = f"An error occurred while executing tool {action.tool}: {e}"
        else:
            self._record_execution(session, action, observation)

        session.last_observation = observation
        session.state = ReactionState.OBSERVING
        return StepResult(done=False, state=session)

    def _observe(self, session: SessionState) -> StepResult:
        self._append(
            session,
            session.last_thinking,
            session.last_action,
            session.last_observation,
            HistoryKind.CYCLE,
        )
        session.cycle_count += 1
        session.last_thinking = None
        session.last_action = None
        session.last_observation = None
        session.state = ReactionState.THINKING
        return StepResult(done=False, state=session)

    async def _complete(self, session: SessionState) -> StepResult:
        prompt = build_final_answer_prompt(session.context, session.history)
        logger.debug(f"Final answer prompt: {len(prompt)} chars")
        session.missing_data = session.data_collection_status.missing()

        try:
            reply = await self.llm.complete(prompt, system_prompt=ANALYST_SYSTEM_PROMPT)
            final_answer = reply if reply and reply.strip() else EMPTY_FINAL_ANSWER
        except RateLimitedError as e:
            logger.warning(f"Rate limited while completing, using degraded answer: {e}")
            final_answer = self._degraded_answer(session)

        session.final_answer = final_answer
        session.state = ReactionState.COMPLETED
        logger.info("Session completed")
        return StepResult(done=True, state=session, final_answer=final_answer)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _should_force_completion(self, session: SessionState) -> bool:
        return (
            session.cycle_count >= self.config.max_agent_cycles
            and session.data_collection_status.any_collected()
        )

    def _to_completing(
        self,
        session: SessionState,
        thinking: str,
        content: str,
        observation: str,
        kind: HistoryKind,
    ) -> None:
        session.missing_data = session.data_collection_status.missing()
        action = render_final_answer_action(
            content,
            session.data_collection_status,
            [ec.value for ec in session.missing_data],
        )
        self._append(session, thinking, action, observation, kind)
        session.state = ReactionState.COMPLETING

    def _append(
        self,
        session: SessionState,
        thinking: str,
        action: str,
        observation: str,
        kind: HistoryKind,
    ) -> None:
        session.history.append(
            HistoryItem(
                thinking=thinking,
                action=action,
                observation=observation,
                timestamp=self._clock(),
                kind=kind,
            )
        )

    def _record_execution(self, session: SessionState, action: ToolAction, observation: str) -> None:
        available = has_data(action.tool, observation)
        marker = NO_DATA_MARKERS.get(action.tool)
        if marker is not None:
            session.data_collection_status.set(marker[0], available)

        session.tool_executions.append(
            ToolExecutionRecord(
                tool_name=action.tool,
                parameters=action.parameters,
                result=observation,
                timestamp=self._clock(),
                data_available=available,
            )
        )

    def _degraded_answer(self, session: SessionState) -> str:
        return f"""## Analysis interrupted by rate limiting

The language model rate limit was reached while writing the final answer.
This answer is based on the information collected so far.

### Collected data
{render_data_summary(session.data_collection_status)}

### Suggested next steps
1. Wait a minute or two and run the analysis again.
2. Shorten the time window to reduce the amount of data processed.
3. Focus the analysis on a specific service or resource.
"""
