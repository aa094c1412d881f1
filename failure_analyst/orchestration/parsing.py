"""
Parsers for tagged model output.

The model is asked to wrap its answers in tags such as ``<Thought>``,
``<Action>``, ``<FinalAnswer>``, ``<Hypothesis N>``, ``<Evaluation>`` and
``<Recommendations>``. All knowledge of that text format lives here; the
agents only see the typed results.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Union

from .models import ConfidenceLevel, EvaluationStatus

logger = logging.getLogger(__name__)

FINAL_ANSWER_TOOL = "final_answer"

_THOUGHT_RE = re.compile(r"<Thought>(.*?)</Thought>", re.DOTALL)
_ACTION_RE = re.compile(r"<Action>(.*?)</Action>", re.DOTALL)
_FINAL_ANSWER_RE = re.compile(r"<FinalAnswer>(.*?)</FinalAnswer>", re.DOTALL)
_HYPOTHESIS_RE = re.compile(r"<Hypothesis\s*(\d+)>\s*(.*?)</Hypothesis\s*\1>", re.DOTALL)
_EVALUATION_RE = re.compile(r"<Evaluation>(.*?)</Evaluation>", re.DOTALL)
_RECOMMENDATIONS_RE = re.compile(r"<Recommendations>(.*?)</Recommendations>", re.DOTALL)
_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)
_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")


# =============================================================================
# Thinking output
# =============================================================================


@dataclass(frozen=True)
class ActionDirective:
    """The model chose a tool to run."""

    tool: str
    parameters: dict[str, Any]
    thought: str = ""


@dataclass(frozen=True)
class FinalAnswerDirective:
    """The model declared it has enough evidence to answer."""

    text: str
    thought: str = ""


@dataclass(frozen=True)
class Unparseable:
    """Neither a final answer nor a well-formed action was found."""

    reason: str
    thought: str = ""


ParsedThinking = Union[ActionDirective, FinalAnswerDirective, Unparseable]


def _strip_code_fence(text: str) -> str:
    match = _CODE_FENCE_RE.match(text.strip())
    return match.group(1) if match else text.strip()


def parse_thinking(text: str) -> ParsedThinking:
    """
    Parse one THINKING reply into a directive.

    A ``<FinalAnswer>`` block takes precedence over an ``<Action>`` block. An
    action naming the ``final_answer`` tool is treated as a final answer whose
    text is its ``content`` parameter.

    Args:
        text: Raw model reply

    Returns:
        ActionDirective, FinalAnswerDirective or Unparseable
    """
    thought_match = _THOUGHT_RE.search(text)
    thought = thought_match.group(1).strip() if thought_match else text.strip()

    final_match = _FINAL_ANSWER_RE.search(text)
    if final_match:
        return FinalAnswerDirective(text=final_match.group(1).strip(), thought=thought)

    action_match = _ACTION_RE.search(text)
    if not action_match:
        return Unparseable(reason="no <Action> block found", thought=thought)

    body = _strip_code_fence(action_match.group(1))
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse action JSON: {e}")
        return Unparseable(reason=f"invalid action JSON: {e}", thought=thought)

    if not isinstance(payload, dict) or not isinstance(payload.get("tool"), str):
        return Unparseable(reason="action JSON has no 'tool' name", thought=thought)

    parameters = payload.get("parameters") or {}
    if not isinstance(parameters, dict):
        return Unparseable(reason="action 'parameters' is not an object", thought=thought)

    if payload["tool"] == FINAL_ANSWER_TOOL:
        return FinalAnswerDirective(
            text=str(parameters.get("content", "")).strip(), thought=thought
        )

    return ActionDirective(tool=payload["tool"], parameters=parameters, thought=thought)


def action_tool_name(action_text: str) -> str | None:
    """Tool name of a serialized action, or None if it is not an action."""
    try:
        payload = json.loads(action_text)
    except (json.JSONDecodeError, TypeError):
        return None
    if isinstance(payload, dict) and isinstance(payload.get("tool"), str):
        return payload["tool"]
    return None


# =============================================================================
# Labelled fields
# =============================================================================


def extract_field(content: str, *labels: str) -> str:
    """
    Extract a ``Label: value`` field.

    The value runs until the next line that starts with another label, or the
    end of the content. Matching is case-insensitive; both ``:`` and the
    full-width colon are accepted.

    Args:
        content: Text to search
        labels: Accepted spellings of the label

    Returns:
        The stripped value, or an empty string if no label matched
    """
    if not labels:
        return ""
    alternatives = "|".join(re.escape(label) for label in labels)
    pattern = re.compile(
        rf"(?:{alternatives})\s*[:：]\s*(.*?)(?=\n\s*[A-Za-z]+\s*[:：]|\Z)",
        re.IGNORECASE | re.DOTALL,
    )
    match = pattern.search(content)
    return match.group(1).strip() if match else ""


def parse_confidence(text: str, default: float = 0.5) -> float:
    """
    Convert a confidence string into [0, 1].

    Values above 1 are read as percentages.
    """
    match = _NUMBER_RE.search(text or "")
    if not match:
        return default
    value = float(match.group(1))
    if value > 1:
        value = value / 100
    return max(0.0, min(1.0, value))


# =============================================================================
# Hypotheses
# =============================================================================


@dataclass
class RawHypothesis:
    """One ``<Hypothesis N>`` block before normalization."""

    number: str
    content: str
    description: str = ""
    confidence_text: str = ""
    reasoning: str = ""
    source_label: str = ""


def parse_hypotheses(text: str, max_hypotheses: int) -> list[RawHypothesis]:
    """
    Parse up to ``max_hypotheses`` tagged hypothesis blocks, in reply order.

    Args:
        text: Raw model reply
        max_hypotheses: Maximum number of blocks to return

    Returns:
        Parsed blocks (possibly empty)
    """
    blocks = []
    for match in _HYPOTHESIS_RE.finditer(text or ""):
        if len(blocks) >= max_hypotheses:
            break
        content = match.group(2).strip()
        blocks.append(
            RawHypothesis(
                number=match.group(1),
                content=content,
                description=extract_field(content, "Description"),
                confidence_text=extract_field(content, "Confidence"),
                reasoning=extract_field(content, "Reasoning"),
                source_label=extract_field(content, "Source"),
            )
        )
    return blocks


# =============================================================================
# Evaluation
# =============================================================================


@dataclass
class ParsedEvaluation:
    status: EvaluationStatus
    confidence_level: ConfidenceLevel
    reasoning: str


_REJECTED_WORDS = ("rejected", "invalid", "incorrect")
_CONFIRMED_WORDS = ("confirmed", "valid", "correct")
_NEGATED_STATUS_RE = re.compile(
    r"\b(?:not|no|never|cannot be|can't be)\s+(?:\w+\s+){0,2}(?:confirmed|valid|correct|rejected)\b"
    r"|\bun(?:confirmed|verified|proven)\b"
)


def parse_evaluation(text: str) -> ParsedEvaluation:
    """
    Parse an ``<Evaluation>`` block (or the whole reply if the tag is absent).

    Unknown status words give ``inconclusive``; unknown confidence gives
    ``medium``. A negated status ("not confirmed", "unconfirmed") is
    inconclusive. Rejection words are checked before confirmation words since
    "invalid" contains "valid".
    """
    match = _EVALUATION_RE.search(text or "")
    content = match.group(1).strip() if match else (text or "").strip()

    status_text = extract_field(content, "Status").lower()
    confidence_text = extract_field(content, "Confidence").lower()
    reasoning = extract_field(content, "Reasoning")

    if _NEGATED_STATUS_RE.search(status_text):
        status = EvaluationStatus.INCONCLUSIVE
    elif any(word in status_text for word in _REJECTED_WORDS):
        status = EvaluationStatus.REJECTED
    elif any(word in status_text for word in _CONFIRMED_WORDS):
        status = EvaluationStatus.CONFIRMED
    else:
        status = EvaluationStatus.INCONCLUSIVE

    confidence_level = ConfidenceLevel.MEDIUM
    if "high" in confidence_text:
        confidence_level = ConfidenceLevel.HIGH
    elif "low" in confidence_text:
        confidence_level = ConfidenceLevel.LOW

    return ParsedEvaluation(
        status=status,
        confidence_level=confidence_level,
        reasoning=reasoning or content,
    )


# =============================================================================
# Recommendations
# =============================================================================


@dataclass
class Recommendations:
    actions: str = ""
    preventions: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.actions and not self.preventions


def _section(content: str, heading: str) -> str:
    pattern = re.compile(
        rf"##\s*{re.escape(heading)}[^\n]*\n?(.*?)(?=\n\s*##|\Z)",
        re.IGNORECASE | re.DOTALL,
    )
    match = pattern.search(content)
    return match.group(1).strip() if match else ""


def parse_recommendations(text: str) -> Recommendations:
    """
    Parse ``## Recommended Actions`` and ``## Prevention Measures`` sections,
    preferably from inside a ``<Recommendations>`` block.
    """
    match = _RECOMMENDATIONS_RE.search(text or "")
    content = match.group(1).strip() if match else (text or "").strip()
    return Recommendations(
        actions=_section(content, "Recommended Actions"),
        preventions=_section(content, "Prevention Measures"),
    )
