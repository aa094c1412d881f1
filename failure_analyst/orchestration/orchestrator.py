"""
Orchestrator: hypothesis generation, per-hypothesis verification and
final-answer synthesis.

Like the Reaction Agent, the Orchestrator is driven one step at a time over a
serializable ``OrchestratorState``. While a hypothesis is being verified the
state embeds the ``SessionState`` of its Reaction Agent session.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from ..config.loader import AgentConfig, OrchestratorConfig
from ..llm.errors import LLMError
from .evaluator import Evaluator
from .hypothesis_generator import HypothesisGenerator, fallback_hypothesis
from .models import (
    ConfidenceLevel,
    EvaluationResult,
    EvaluationStatus,
    FinalResult,
    FinalResultStatus,
    Hypothesis,
    NextAction,
    OrchestratorState,
    OrchestratorStepResult,
    ReactionState,
    TimeWindow,
    VerificationState,
    VerificationStatus,
)
from .parsing import Recommendations, parse_recommendations
from .prompts import ANALYST_SYSTEM_PROMPT, build_recommendation_prompt
from .react_agent import ReactionAgent

if TYPE_CHECKING:
    from ..llm.protocols import LLMProvider
    from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


BEST_EFFORT_NOTE = (
    "## Note: this analysis is based on the most likely hypothesis, "
    "but the hypothesis could not be confirmed\n\n"
)

FALLBACK_RECOMMENDATIONS = Recommendations(
    actions=(
        "1. Check the current state of the system in detail and determine the impact.\n"
        "2. Apply a temporary workaround to restore service availability.\n"
        "3. Plan a permanent fix for the root cause."
    ),
    preventions=(
        "1. Strengthen monitoring and alerting.\n"
        "2. Review the system regularly.\n"
        "3. Improve the incident response process."
    ),
)

GENERIC_FALLBACK_ANSWER = """## Failure analysis result

### Summary
Not enough data could be collected to identify the cause of the failure.
No clear conclusion can be drawn from the data that was collected.

### Possible causes
The following are possible, but none of them is confirmed:

1. Resource exhaustion (CPU, memory, disk space)
2. Network connectivity problems
3. Configuration mistakes or compatibility issues
4. Failures in external dependencies

### Recommended actions
1. Collect more detailed logs and metrics.
2. Check resource utilization.
3. Review recent configuration changes.
4. Check the health of external dependencies.

### Caveats
This analysis is based on limited data and has low confidence. Further investigation is needed.
"""


class Orchestrator:
    """
    Sequences hypothesis generation, verification and evaluation.

    Each call to ``step`` performs one of:
    - generate hypotheses (first step of an analysis)
    - select the next pending hypothesis, or write the final answer
    - start verifying the selected hypothesis
    - run one Reaction Agent step, evaluating the hypothesis once it is done

    A hypothesis confirmed with high confidence ends the analysis immediately.
    """

    def __init__(
        self,
        llm: LLMProvider,
        registry: ToolRegistry,
        config: OrchestratorConfig | None = None,
        agent_config: AgentConfig | None = None,
        generator: HypothesisGenerator | None = None,
        evaluator: Evaluator | None = None,
        agent: ReactionAgent | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            llm: LLM provider (also used for recommendations)
            registry: Tools available during verification
            config: Hypothesis and tool settings
            agent_config: Settings for the verification sessions
            generator: Hypothesis generator override
            evaluator: Evaluator override
            agent: Reaction Agent override
            clock: Timestamp source for verification sessions
        """
        self.llm = llm
        self.registry = registry
        self.config = config or OrchestratorConfig()
        self.agent = agent or ReactionAgent(llm, registry, agent_config, clock=clock)
        self.generator = generator or HypothesisGenerator(
            llm,
            registry,
            max_hypotheses=self.config.max_hypotheses,
            search_tool=self.config.search_tool,
            search_max_results=self.config.search_max_results,
        )
        self.evaluator = evaluator or Evaluator(llm)

    def new_state(self, context: str, window: TimeWindow | None = None) -> OrchestratorState:
        """Create the state of a fresh analysis."""
        return OrchestratorState(context=context, window=window)

    async def step(self, state: OrchestratorState | str) -> OrchestratorStepResult:
        """
        Execute one bounded step of the analysis.

        Args:
            state: Problem statement for a new analysis, or a persisted state

        Returns:
            OrchestratorStepResult; ``done`` once the final answer exists
        """
        if isinstance(state, str):
            state = self.new_state(state)
        else:
            state = state.model_copy(deep=True)

        if state.is_done:
            return OrchestratorStepResult(done=True, state=state, final_answer=state.final_answer)

        if not state.hypotheses:
            return await self._generate_hypotheses(state)

        verification = state.current_verification
        if verification is None:
            return await self._select_next_hypothesis(state)
        if verification.status == VerificationStatus.PENDING:
            return self._start_verification(state)
        if verification.status == VerificationStatus.IN_PROGRESS:
            return await self._continue_verification(state)
        return await self._select_next_hypothesis(state)

    # -------------------------------------------------------------------------
    # Branches
    # -------------------------------------------------------------------------

    async def _generate_hypotheses(self, state: OrchestratorState) -> OrchestratorStepResult:
        logger.info("Generating hypotheses")
        try:
            generation = await self.generator.generate(state.context)
            hypotheses = generation.hypotheses
            state.search_results = generation.search_results
        except LLMError as e:
            logger.error(f"Hypothesis generation failed, using fallback: {e}")
            hypotheses = []

        if not hypotheses:
            hypotheses = [fallback_hypothesis("Hypothesis generation failed.")]

        state.hypotheses = hypotheses
        state.verification_states = [VerificationState(hypothesis_id=h.id) for h in hypotheses]
        state.current_hypothesis_index = -1

        return OrchestratorStepResult(
            done=False, state=state, next_action=NextAction.SELECT_NEXT_HYPOTHESIS
        )

    async def _select_next_hypothesis(self, state: OrchestratorState) -> OrchestratorStepResult:
        index = state.first_pending_index()
        if index < 0:
            return await self._generate_final_answer(state)

        state.current_hypothesis_index = index
        logger.info(f"Selected hypothesis {state.hypotheses[index].id}")
        return OrchestratorStepResult(
            done=False, state=state, next_action=NextAction.VERIFY_HYPOTHESIS
        )

    def _start_verification(self, state: OrchestratorState) -> OrchestratorStepResult:
        hypothesis = state.current_hypothesis
        logger.info(f"Starting verification of {hypothesis.id}")

        session = self.agent.new_session(
            f"{state.context}\n\nHypothesis to verify: {hypothesis.description}"
        )
        thinking = (
            "<Thought>\n"
            f'To verify the hypothesis "{hypothesis.description}", I will first check the '
            "related metrics for signs of the failure.\n"
            "</Thought>"
        )
        state.react_session_state = self.agent.seed_action(
            session, self.config.primary_tool, {}, thinking
        )
        state.current_verification.status = VerificationStatus.IN_PROGRESS

        return OrchestratorStepResult(
            done=False, state=state, next_action=NextAction.VERIFY_HYPOTHESIS
        )

    async def _continue_verification(self, state: OrchestratorState) -> OrchestratorStepResult:
        hypothesis = state.current_hypothesis

        if state.react_session_state is None:
            logger.warning(f"No session for {hypothesis.id}, restarting verification")
            return self._start_verification(state)

        try:
            result = await self.agent.step(state.react_session_state)
        except LLMError as e:
            logger.error(f"Verification of {hypothesis.id} failed: {e}")
            self._complete_verification(
                state,
                EvaluationResult(
                    hypothesis_id=hypothesis.id,
                    status=EvaluationStatus.INCONCLUSIVE,
                    confidence_level=ConfidenceLevel.LOW,
                    reasoning=f"Verification failed with an LLM error: {e}",
                ),
            )
            return await self._select_next_hypothesis(state)

        state.react_session_state = result.state

        if not result.done:
            next_action = (
                NextAction.EVALUATE_HYPOTHESIS
                if result.state.state == ReactionState.COMPLETING
                else NextAction.VERIFY_HYPOTHESIS
            )
            return OrchestratorStepResult(done=False, state=state, next_action=next_action)

        evaluation = await self.evaluator.evaluate(
            hypothesis, state.context, result.state.history
        )
        self._complete_verification(state, evaluation)

        if evaluation.is_confirmed_high:
            logger.info(f"Hypothesis {hypothesis.id} confirmed with high confidence")
            return await self._generate_final_answer(state)

        return await self._select_next_hypothesis(state)

    async def _generate_final_answer(self, state: OrchestratorState) -> OrchestratorStepResult:
        logger.info("Generating final answer")

        evaluated = [v for v in state.verification_states if v.evaluation_result is not None]
        confirmed = next((v for v in evaluated if v.evaluation_result.is_confirmed_high), None)

        if confirmed is not None:
            chosen, status = confirmed, FinalResultStatus.CONFIRMED
        elif evaluated:
            chosen, status = evaluated[0], FinalResultStatus.BEST_EFFORT
        else:
            chosen, status = None, FinalResultStatus.FALLBACK

        hypothesis = state.find_hypothesis(chosen.hypothesis_id) if chosen else None

        if chosen is None or hypothesis is None:
            state.final_result = FinalResult(
                status=FinalResultStatus.FALLBACK, confidence_level=ConfidenceLevel.LOW
            )
            answer = GENERIC_FALLBACK_ANSWER
        else:
            evaluation = chosen.evaluation_result
            state.final_result = FinalResult(
                hypothesis_id=hypothesis.id,
                status=status,
                confidence_level=evaluation.confidence_level,
            )
            answer = await self._compose_answer(
                state.context,
                hypothesis,
                evaluation,
                best_effort=status == FinalResultStatus.BEST_EFFORT,
            )

        state.final_answer = answer
        logger.info(f"Analysis finished ({state.final_result.status.value})")
        return OrchestratorStepResult(done=True, state=state, final_answer=answer)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _complete_verification(state: OrchestratorState, evaluation: EvaluationResult) -> None:
        verification = state.current_verification
        verification.status = VerificationStatus.COMPLETED
        verification.evaluation_result = evaluation

    async def _compose_answer(
        self,
        context: str,
        hypothesis: Hypothesis,
        evaluation: EvaluationResult,
        best_effort: bool = False,
    ) -> str:
        recommendations = await self._generate_recommendations(hypothesis, context)
        prefix = BEST_EFFORT_NOTE if best_effort else ""
        evaluation_section = (
            f"### Evaluation\n{evaluation.reasoning}\n\n" if evaluation.reasoning else ""
        )

        return f"""{prefix}## Failure analysis result

### Incident summary
{context}

### Root cause
{hypothesis.description}

- Confidence: {evaluation.confidence_level.value}

### Reasoning
{hypothesis.reasoning or "No reasoning was given."}

{evaluation_section}### Recommended actions
{recommendations.actions or "No recommended actions could be identified."}

### Prevention measures
{recommendations.preventions or "No prevention measures could be identified."}
"""

    async def _generate_recommendations(self, hypothesis: Hypothesis, context: str) -> Recommendations:
        prompt = build_recommendation_prompt(hypothesis, context)
        try:
            reply = await self.llm.complete(prompt, system_prompt=ANALYST_SYSTEM_PROMPT)
        except Exception as e:
            logger.error(f"Failed to generate recommendations: {e}")
            return FALLBACK_RECOMMENDATIONS

        recommendations = parse_recommendations(reply or "")
        if recommendations.is_empty:
            logger.warning("No recommendations found in response, using fallback")
            return FALLBACK_RECOMMENDATIONS
        return recommendations
