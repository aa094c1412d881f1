"""Prompt builders for the analysis agents."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import DataCollectionStatus, HistoryItem, Hypothesis


ANALYST_SYSTEM_PROMPT = """You are an experienced site reliability engineer investigating a production incident.
You reason step by step, gather evidence with the tools you are given, and only state a root cause
that the evidence supports."""


def format_history(
    history: list[HistoryItem],
    cycle_count: int,
    truncation_threshold: int = 5,
    window: int = 3,
) -> str:
    """
    Render the reasoning history for a prompt.

    Once ``cycle_count`` reaches ``truncation_threshold`` only the ``window``
    most recent entries are rendered, preceded by one line counting the
    omitted entries.

    Args:
        history: Full session history
        cycle_count: Completed cycles so far
        truncation_threshold: Cycle count at which truncation starts
        window: Number of recent entries kept once truncating

    Returns:
        History text (may be empty)
    """
    items = list(history)
    lines = []

    if cycle_count >= truncation_threshold and len(items) > window:
        omitted = len(items) - window
        items = items[-window:]
        lines.append(f"({omitted} earlier steps omitted)")

    offset = len(history) - len(items)
    for i, item in enumerate(items, start=offset + 1):
        lines.append(
            f"Step {i}:\n"
            f"Thought: {item.thinking}\n"
            f"Action: {item.action}\n"
            f"Observation: {item.observation}"
        )

    return "\n\n".join(lines)


def build_thinking_prompt(
    context: str,
    history: list[HistoryItem],
    tools_text: str,
    cycle_count: int,
    truncation_threshold: int = 5,
    window: int = 3,
    high_cycle_warning: int = 4,
) -> str:
    """Build the prompt for one THINKING step."""
    history_text = format_history(history, cycle_count, truncation_threshold, window)

    prompt = f"""The following issue has been reported:
{context}

<AnalysisHistory>
{history_text or "(no steps taken yet)"}
</AnalysisHistory>

<AvailableTools>
{tools_text}
</AvailableTools>

Review the history carefully: note which tools were run and what they returned.
Decide what to do next and respond in this format:

<Thought>
Your analysis of the situation and of the results gathered so far.
</Thought>

<Action>
{{"tool": "tool_name", "parameters": {{"param1": "value1"}}}}
</Action>

If you have enough information to identify the root cause, or further data is
unlikely to help, respond instead with:

<Thought>
Your conclusion, confidence level and any missing data.
</Thought>

<FinalAnswer>
Root cause and remediation.
</FinalAnswer>"""

    if cycle_count >= high_cycle_warning:
        prompt += f"""

Note: this is thinking step {cycle_count}. Many cycles have been spent already.
Unless a specific piece of evidence is still essential, provide the <FinalAnswer> now."""

    return prompt


def build_final_answer_prompt(context: str, history: list[HistoryItem]) -> str:
    """Build the prompt that synthesizes the final narrative from the full history."""
    history_text = format_history(history, cycle_count=0)

    return f"""The following issue has been reported:
{context}

<AnalysisHistory>
{history_text or "(no steps taken)"}
</AnalysisHistory>

Based on the analysis above, write the final report in Markdown with these sections:
- Summary of the incident
- Root cause (state your confidence)
- Evidence
- Remediation steps
- Data that was missing, if any"""


def build_hypothesis_prompt(problem: str, search_results: str, max_hypotheses: int) -> str:
    """Build the Tree-of-Thought prompt proposing candidate root causes."""
    return f"""The following issue has been reported:
{problem}

<KnowledgeBaseResults>
{search_results or "(no related documents found)"}
</KnowledgeBaseResults>

Explore several independent lines of reasoning about what could cause this issue,
then propose at most {max_hypotheses} hypotheses, most likely first. Use this format
for each one, numbering from 1:

<Hypothesis 1>
Description: the suspected root cause
Confidence: a number between 0 and 1
Reasoning: why this cause fits the symptoms
Source: "knowledge base" if drawn from the results above, otherwise "llm"
</Hypothesis 1>"""


def build_evaluation_prompt(
    hypothesis: Hypothesis,
    context: str,
    history: list[HistoryItem],
    tools_used: list[str] | None = None,
) -> str:
    """Build the prompt that judges a hypothesis against collected evidence."""
    history_text = format_history(history, cycle_count=0)
    tools_line = ", ".join(tools_used) if tools_used else "none"

    return f"""The following issue has been reported:
{context}

Hypothesis under verification:
{hypothesis.description}

Reasoning behind the hypothesis:
{hypothesis.reasoning or "(none given)"}

Tools consulted during verification: {tools_line}

<VerificationHistory>
{history_text or "(no evidence collected)"}
</VerificationHistory>

Judge whether the evidence confirms or rejects the hypothesis. Respond in this format:

<Evaluation>
Status: confirmed | rejected | inconclusive
Confidence: high | medium | low
Reasoning: how the evidence supports your verdict
</Evaluation>"""


def build_recommendation_prompt(hypothesis: Hypothesis, context: str) -> str:
    """Build the prompt producing remediation and prevention steps."""
    return f"""The following issue has been reported:
{context}

Identified root cause:
{hypothesis.description}

Reasoning:
{hypothesis.reasoning or "(none given)"}

Propose concrete follow-up work. Respond in this format:

<Recommendations>
## Recommended Actions
1. ...

## Prevention Measures
1. ...
</Recommendations>"""


def render_data_summary(status: DataCollectionStatus) -> str:
    """Describe which evidence classes have data, for degraded answers."""
    collected = status.collected()
    if not collected:
        return "No data has been collected."
    labels = [ec.value.replace("_", " ") for ec in collected]
    return "Data has been collected for:\n- " + "\n- ".join(labels)


def render_final_answer_action(content: str, status: DataCollectionStatus, missing: list[str]) -> str:
    """Serialized synthetic ``final_answer`` action recorded in history."""
    return json.dumps(
        {
            "tool": "final_answer",
            "parameters": {
                "content": content,
                "data_collection_status": status.model_dump(),
                "missing_data": missing,
            },
        },
        indent=2,
    )
