"""Query-text generation: question -> GOAL/SQL block via the LLM.

The generator is asked to answer in the form::

    GOAL: CONVERSION
    SQL: SELECT platform, SUM(revenue) / SUM(spend) AS roas FROM video_ad_performance ...

Responses are parsed leniently. When the markers are missing the whole
response is treated as query text; a response counts as a query only if that
text contains SELECT. Anything else is conversational and short-circuits the
pipeline.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable

from adagent.contracts import (
    DEFAULT_GOAL,
    DIMENSION_EXAMPLES,
    PERIOD_COLUMN,
    TABLE_NAME,
    Goal,
)
from adagent.llm.router import call_llm


GENERATOR_SYSTEM_PROMPT = """You are a SQL analyst for a video advertising team. You translate questions about campaign performance into a single PostgreSQL SELECT statement.

Table: {table}
Columns:
- {period} (date, first day of the month)
- platform (text), e.g. {platforms}
- region (text), e.g. {regions}
- age_group (text), e.g. {age_groups}
- gender (text), e.g. {genders}
- spend, revenue (numeric, USD)
- impressions, video_starts, views_3s, views_25, views_50, views_100, clicks, conversions (integer)

Derived metrics (always aggregate with SUM before dividing):
- ROAS = SUM(revenue) / SUM(spend)
- CTR = SUM(clicks) / SUM(impressions) * 100
- CPA = SUM(spend) / SUM(conversions)
- Conversion rate = SUM(conversions) / SUM(clicks) * 100
- Video completion rate = SUM(views_100) / SUM(video_starts) * 100
- CPM = SUM(spend) / SUM(impressions) * 1000

Goals:
- AWARENESS: reach, impressions, visibility, brand, CPM
- ENGAGEMENT: clicks, CTR, traffic, video completion
- CONVERSION: sales, revenue, ROAS, ROI, CPA, budget and investment questions

Rules:
- Always filter on {period} = '{report_month}'
- Filter dimensions only with = 'value' or IN ('a', 'b')
- To compare segments, GROUP BY exactly one of: platform, region, age_group, gender
- Read-only: one SELECT statement, no semicolons inside, nothing else
- If a previous query goal is given and the question is a follow-up, keep that goal

Answer in exactly this format:
GOAL: <AWARENESS|ENGAGEMENT|CONVERSION>
SQL: <one SELECT statement>

If the question is not about the campaign data (greetings, thanks, help), answer briefly in plain conversational text instead, without GOAL or SQL lines."""


_GOAL_MARKER = re.compile(r"^\s*GOAL\s*:\s*(.+?)\s*$", re.IGNORECASE | re.MULTILINE)
_SQL_MARKER = re.compile(r"^\s*SQL\s*:\s*", re.IGNORECASE | re.MULTILINE)
_FENCE = re.compile(r"```(?:sql)?", re.IGNORECASE)


@dataclass
class GeneratedQuery:
    """Parsed generator response."""

    raw: str
    sql: str
    declared_goal: Goal
    is_query: bool


def build_system_prompt(report_month: str) -> str:
    """Fill the generator system prompt for a reporting period."""
    return GENERATOR_SYSTEM_PROMPT.format(
        table=TABLE_NAME,
        period=PERIOD_COLUMN,
        report_month=report_month,
        platforms=", ".join(DIMENSION_EXAMPLES["platform"]),
        regions=", ".join(DIMENSION_EXAMPLES["region"]),
        age_groups=", ".join(DIMENSION_EXAMPLES["age_group"]),
        genders=", ".join(DIMENSION_EXAMPLES["gender"]),
    )


def build_messages(
    question: str,
    *,
    report_month: str,
    previous_goal: Goal | None = None,
    history: list[dict[str, Any]] | None = None,
) -> list[dict[str, str]]:
    """Build the generator messages.

    Recent history turns are forwarded as-is so follow-ups can be resolved;
    the previous goal is appended as an explicit context line.
    """
    messages = [{"role": "system", "content": build_system_prompt(report_month)}]

    for entry in history or []:
        role = entry.get("role", "user")
        content = (entry.get("content") or "").strip()
        if role in ("user", "assistant") and content:
            messages.append({"role": role, "content": content})

    user_content = question.strip()
    if previous_goal is not None:
        user_content = f"{user_content}\n\nPrevious query goal: {previous_goal.value}"
    messages.append({"role": "user", "content": user_content})

    return messages


def parse_generator_response(text: str) -> GeneratedQuery:
    """Split a generator response into goal and query text.

    Args:
        text: Raw LLM response

    Returns:
        GeneratedQuery; declared_goal defaults to CONVERSION when the GOAL
        marker is missing or names no known goal.
    """
    raw = text or ""
    cleaned = _FENCE.sub("", raw).strip()

    goal_match = _GOAL_MARKER.search(cleaned)
    sql_match = _SQL_MARKER.search(cleaned)

    declared_goal = DEFAULT_GOAL
    if goal_match and sql_match:
        declared_goal = Goal.parse(goal_match.group(1)) or DEFAULT_GOAL
        sql_text = cleaned[sql_match.end():]
        # GOAL may follow SQL in sloppy responses
        if goal_match.start() > sql_match.end():
            sql_text = cleaned[sql_match.end():goal_match.start()]
    else:
        sql_text = cleaned

    sql_text = sql_text.strip()
    return GeneratedQuery(
        raw=raw,
        sql=sql_text,
        declared_goal=declared_goal,
        is_query="select" in sql_text.lower(),
    )


def generate_query(
    question: str,
    *,
    report_month: str,
    previous_goal: Goal | None = None,
    history: list[dict[str, Any]] | None = None,
    llm: Callable[..., str] | None = None,
    provider: str | None = None,
    model: str | None = None,
    timeout: int = 60,
) -> GeneratedQuery:
    """Ask the LLM for query text and parse the response.

    Raises:
        ValueError: If the LLM call fails (propagated from the router)
    """
    messages = build_messages(
        question,
        report_month=report_month,
        previous_goal=previous_goal,
        history=history,
    )
    call = llm or call_llm
    response = call(messages, role="generator", provider=provider, model=model, timeout=timeout)
    return parse_generator_response(response)
