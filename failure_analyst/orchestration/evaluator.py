"""Evaluator: judges one hypothesis against the evidence of its verification."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..llm.errors import RateLimitedError
from .models import ConfidenceLevel, EvaluationResult, EvaluationStatus, HistoryKind
from .parsing import action_tool_name, parse_evaluation
from .prompts import ANALYST_SYSTEM_PROMPT, build_evaluation_prompt

if TYPE_CHECKING:
    from ..llm.protocols import LLMProvider
    from .models import HistoryItem, Hypothesis

logger = logging.getLogger(__name__)


class Evaluator:
    """Scores a hypothesis with one LLM call. Never raises."""

    def __init__(self, llm: LLMProvider):
        self.llm = llm

    async def evaluate(
        self,
        hypothesis: Hypothesis,
        context: str,
        history: list[HistoryItem],
    ) -> EvaluationResult:
        """
        Evaluate a hypothesis.

        Args:
            hypothesis: Hypothesis that was verified
            context: Problem statement
            history: History of the verification session

        Returns:
            EvaluationResult; ``inconclusive`` with low confidence on any failure
        """
        logger.info(f"Evaluating hypothesis {hypothesis.id}")

        tools_used = []
        for item in history:
            tool = action_tool_name(item.action) if item.kind == HistoryKind.CYCLE else None
            if tool and tool not in tools_used:
                tools_used.append(tool)

        prompt = build_evaluation_prompt(hypothesis, context, history, tools_used)

        try:
            reply = await self.llm.complete(prompt, system_prompt=ANALYST_SYSTEM_PROMPT)
            parsed = parse_evaluation(reply or "")
        except RateLimitedError as e:
            logger.warning(f"Rate limited during evaluation of {hypothesis.id}: {e}")
            return self._inconclusive(
                hypothesis,
                "The LLM rate limit was reached, so the evaluation could not be completed.",
            )
        except Exception as e:
            logger.error(f"Error evaluating hypothesis {hypothesis.id}: {e}")
            return self._inconclusive(hypothesis, f"An error occurred during evaluation: {e}")

        logger.info(
            f"Hypothesis {hypothesis.id}: {parsed.status.value} "
            f"({parsed.confidence_level.value} confidence)"
        )
        return EvaluationResult(
            hypothesis_id=hypothesis.id,
            status=parsed.status,
            confidence_level=parsed.confidence_level,
            reasoning=parsed.reasoning,
        )

    @staticmethod
    def _inconclusive(hypothesis: Hypothesis, reasoning: str) -> EvaluationResult:
        return EvaluationResult(
            hypothesis_id=hypothesis.id,
            status=EvaluationStatus.INCONCLUSIVE,
            confidence_level=ConfidenceLevel.LOW,
            reasoning=reasoning,
        )
