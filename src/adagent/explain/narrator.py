"""Narrator for turning aggregated campaign data into the final answer.

Two answer styles:
- descriptive: report what the numbers show, foregrounding the goal's metrics
- strategy: prescriptive budget advice (cut / add / reallocate)

The LLM narrator never computes numbers; it only formats the aggregates it
is given. When it fails, format_fallback_answer() builds a deterministic
summary from the same data, so a render failure never reaches the caller.
"""

import json
import logging
from typing import Any, Callable

from adagent.contracts import Goal
from adagent.errors import RenderError
from adagent.execution.aggregate import Aggregate
from adagent.execution.insights import find_insights, rank_by_roas
from adagent.llm.router import call_llm


logger = logging.getLogger(__name__)


NARRATOR_SYSTEM_PROMPT = """You are a senior performance-marketing analyst for video ad campaigns. You explain campaign results to marketers clearly and concisely.

You MUST:
- Use only the numbers in the provided data; never invent figures
- Show ROAS as a whole-number multiple in bold (e.g. **8x**)
- Format currency with $ and thousands separators
- Lead with a direct one-line answer to the question
- Keep the answer under 200 words"""

DESCRIPTIVE_TEMPLATE = """Answer the marketer's question using the campaign data below.

Question: {question}

{context_section}Query used: {sql}

Campaign goal: {goal} - {goal_focus}
Metrics to foreground: {metrics}

Data ({scope}):
{data}

{insights_section}Describe what the data shows. Do not give budget recommendations unless asked."""

STRATEGY_TEMPLATE = """The marketer is asking for budget advice. Use the campaign data below.

Question: {question}

{context_section}Query used: {sql}

Campaign goal: {goal} - {goal_focus}
Metrics to foreground: {metrics}

Data ({scope}):
{data}

{insights_section}Provide:
1. A one-line diagnosis of current performance against the goal
2. 2-4 specific actions (cut, add or reallocate) with exact percentages or dollar amounts
3. The expected effect on the goal metric

Judge segments by the goal metric, not by ROAS alone."""

GOAL_FOCUS = {
    Goal.AWARENESS: "maximize reach efficiently; judge segments by impressions and CPM (lower CPM is better)",
    Goal.ENGAGEMENT: "maximize interaction; judge segments by CTR and video completion rate",
    Goal.CONVERSION: "maximize revenue efficiency; judge segments by ROAS, revenue and CPA",
}


def format_data(data: Aggregate | dict[str, Aggregate]) -> str:
    """Render aggregates as JSON for the prompt."""
    if isinstance(data, Aggregate):
        payload: Any = data.to_dict()
    else:
        payload = {name: agg.to_dict() for name, agg in data.items()}
    return json.dumps(payload, indent=2)


def build_prompt(
    question: str,
    *,
    sql: str,
    data: Aggregate | dict[str, Aggregate],
    goal: Goal,
    is_strategy: bool,
    metrics: list[str],
    dimension: str | None = None,
    context: str = "",
) -> str:
    """Build the narrator user prompt."""
    insights_section = ""
    if isinstance(data, dict):
        lines = find_insights(data).as_lines()
        if lines:
            insights_section = "Key insights:\n" + "\n".join(f"- {line}" for line in lines) + "\n\n"

    template = STRATEGY_TEMPLATE if is_strategy else DESCRIPTIVE_TEMPLATE
    return template.format(
        question=question,
        context_section=f"Conversation so far:\n{context}\n\n" if context else "",
        sql=sql,
        goal=goal.value,
        goal_focus=GOAL_FOCUS[goal],
        metrics=", ".join(metrics),
        scope=f"by {dimension}" if isinstance(data, dict) and dimension else "overall totals",
        data=format_data(data),
        insights_section=insights_section,
    )


def render_answer(
    question: str,
    *,
    sql: str,
    data: Aggregate | dict[str, Aggregate],
    goal: Goal,
    is_strategy: bool,
    metrics: list[str],
    dimension: str | None = None,
    context: str = "",
    system_prompt: str | None = None,
    llm: Callable[..., str] | None = None,
    provider: str | None = None,
    model: str | None = None,
    timeout: int = 60,
) -> str:
    """Render the answer with the LLM narrator.

    Raises:
        RenderError: If the LLM call fails or returns empty text
    """
    user_prompt = build_prompt(
        question,
        sql=sql,
        data=data,
        goal=goal,
        is_strategy=is_strategy,
        metrics=metrics,
        dimension=dimension,
        context=context,
    )
    messages = [
        {"role": "system", "content": system_prompt or NARRATOR_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]

    call = llm or call_llm
    try:
        response = call(messages, role="renderer", provider=provider, model=model, timeout=timeout)
    except Exception as e:
        raise RenderError(f"Narrator call failed: {e}") from e

    text = (response or "").strip()
    if not text:
        raise RenderError("Narrator returned an empty answer")
    return text


def _segment_line(name: str, agg: Aggregate) -> str:
    return (
        f"• **{name}**: ROAS **{agg.roas}x**, spend ${agg.spend:,.2f}, "
        f"revenue ${agg.revenue:,.2f}, CTR {agg.ctr:.2f}%"
    )


def format_fallback_answer(
    data: Aggregate | dict[str, Aggregate],
    *,
    goal: Goal,
    is_strategy: bool = False,
    dimension: str | None = None,
) -> str:
    """Deterministic summary used when the narrator is unavailable.

    Lists segment name, ROAS, spend, revenue and CTR. Strategy questions over
    two or more segments also get reallocation recommendations.
    """
    if isinstance(data, Aggregate):
        if data.row_count == 0:
            return "No campaign data matched that question for this period."
        lines = [
            "**Performance Summary:**",
            "",
            _segment_line("All campaigns", data),
        ]
        return "\n".join(lines)

    if not data:
        return "No campaign data matched that question for this period."

    ranked = rank_by_roas(data)
    label = dimension.replace("_", " ") if dimension else "segment"

    lines = [f"**Performance by {label}** (goal: {goal.value.lower()}):", ""]
    lines.extend(_segment_line(name, agg) for name, agg in ranked)

    if len(ranked) > 1:
        best_name, best = ranked[0]
        worst_name, worst = ranked[-1]
        lines.extend([
            "",
            "**Key Findings:**",
            f"• Best performer: {best_name} with {best.roas}x ROAS",
            f"• Weakest performer: {worst_name} with {worst.roas}x ROAS",
        ])

        if is_strategy:
            lines.extend([
                "",
                "**Recommendations:**",
                f"1. **Reallocate budget:** Shift 20% of {worst_name} budget to {best_name}",
                f"2. **Optimize targeting:** Focus {best_name} on high-performing audiences",
                f"3. **Creative refresh:** Update {worst_name} creative assets to improve engagement",
                f"4. **Scale winners:** Increase {best_name} budget by 15% to capture more conversions",
            ])

    return "\n".join(lines)
