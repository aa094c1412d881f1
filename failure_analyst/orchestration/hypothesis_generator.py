"""
Tree-of-Thought hypothesis generation.

One knowledge-base search plus one LLM call that explores several lines of
reasoning and returns candidate root causes, most confident first.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..llm.errors import RateLimitedError
from .models import Hypothesis, HypothesisGeneration, HypothesisSource
from .parsing import RawHypothesis, parse_confidence, parse_hypotheses
from .prompts import ANALYST_SYSTEM_PROMPT, build_hypothesis_prompt

if TYPE_CHECKING:
    from ..llm.protocols import LLMProvider
    from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

FALLBACK_HYPOTHESIS_ID = "fallback-1"
FALLBACK_CONFIDENCE = 0.3

# Leading characters of the search results that a hypothesis must quote to
# count as drawn from the knowledge base.
SOURCE_OVERLAP_CHARS = 50


def fallback_hypothesis(reason: str) -> Hypothesis:
    """Generic low-confidence hypothesis used when none could be generated."""
    return Hypothesis(
        id=FALLBACK_HYPOTHESIS_ID,
        description=(
            "No specific hypothesis could be derived. Common causes of this kind of "
            "failure are resource exhaustion, configuration mistakes and problems in "
            "external dependencies."
        ),
        confidence=FALLBACK_CONFIDENCE,
        reasoning=f"{reason} This hypothesis is based on general failure patterns.",
        source=HypothesisSource.LLM,
    )


class HypothesisGenerator:
    """
    Proposes root-cause hypotheses for a problem statement.

    Never returns an empty list: when the reply cannot be parsed or the LLM is
    rate limited, a single fallback hypothesis is returned instead. Other LLM
    errors propagate to the caller.
    """

    def __init__(
        self,
        llm: LLMProvider,
        registry: ToolRegistry,
        max_hypotheses: int = 3,
        search_tool: str = "kb_tool",
        search_max_results: int = 3,
    ):
        """
        Initialize the generator.

        Args:
            llm: LLM provider
            registry: Registry holding the document-search tool
            max_hypotheses: Cap on returned hypotheses
            search_tool: Name of the document-search tool
            search_max_results: Result count requested from the search tool
        """
        if max_hypotheses < 1:
            raise ValueError("max_hypotheses must be at least 1")
        self.llm = llm
        self.registry = registry
        self.max_hypotheses = max_hypotheses
        self.search_tool = search_tool
        self.search_max_results = search_max_results

    async def generate(self, problem: str) -> HypothesisGeneration:
        """
        Generate hypotheses for a problem statement.

        Args:
            problem: Natural-language description of the failure

        Returns:
            HypothesisGeneration with hypotheses sorted by descending confidence
        """
        logger.info(f"Generating up to {self.max_hypotheses} hypotheses")
        search_results = await self._search(problem)

        prompt = build_hypothesis_prompt(problem, search_results, self.max_hypotheses)
        logger.debug(f"Hypothesis prompt: {len(prompt)} chars")

        try:
            reply = await self.llm.complete(prompt, system_prompt=ANALYST_SYSTEM_PROMPT)
        except RateLimitedError as e:
            logger.warning(f"Rate limited during hypothesis generation: {e}")
            return HypothesisGeneration(
                hypotheses=[fallback_hypothesis("The LLM rate limit prevented a detailed analysis.")],
                search_results=search_results,
            )

        blocks = parse_hypotheses(reply or "", self.max_hypotheses)
        if not blocks:
            logger.warning("No hypotheses found in response, using fallback")
            return HypothesisGeneration(
                hypotheses=[fallback_hypothesis("No structured hypotheses could be read from the reply.")],
                search_results=search_results,
            )

        hypotheses = self._normalize(blocks, search_results)
        hypotheses.sort(key=lambda h: h.confidence, reverse=True)

        logger.info(f"Generated {len(hypotheses)} hypotheses")
        return HypothesisGeneration(hypotheses=hypotheses, search_results=search_results)

    async def _search(self, problem: str) -> str:
        if not self.registry.has_tool(self.search_tool):
            logger.warning(f"Search tool {self.search_tool} is not registered, skipping search")
            return ""
        try:
            return await self.registry.execute(
                self.search_tool,
                {"query": problem, "max_results": self.search_max_results},
            )
        except Exception as e:
            logger.warning(f"Knowledge base search failed: {e}")
            return ""

    def _normalize(self, blocks: list[RawHypothesis], search_results: str) -> list[Hypothesis]:
        hypotheses = []
        seen_ids: set[str] = set()

        for block in blocks:
            hypothesis_id = f"hypothesis-{block.number}"
            suffix = 2
            while hypothesis_id in seen_ids:
                hypothesis_id = f"hypothesis-{block.number}-{suffix}"
                suffix += 1
            seen_ids.add(hypothesis_id)

            description = block.description or block.content
            hypotheses.append(
                Hypothesis(
                    id=hypothesis_id,
                    description=description,
                    confidence=parse_confidence(block.confidence_text),
                    reasoning=block.reasoning,
                    source=self._infer_source(block, description, search_results),
                )
            )

        return hypotheses

    @staticmethod
    def _infer_source(block: RawHypothesis, description: str, search_results: str) -> HypothesisSource:
        if "knowledge base" in block.source_label.lower():
            return HypothesisSource.KNOWLEDGE_BASE
        excerpt = search_results.strip()[:SOURCE_OVERLAP_CHARS].lower()
        if excerpt and excerpt in description.lower():
            return HypothesisSource.KNOWLEDGE_BASE
        return HypothesisSource.LLM
