"""Goal tracking across conversation turns.

A goal is computed fresh for every question from its keywords. When the
question carries no goal keyword but reads like a follow-up ("what about
TikTok?", "how much for the best one?"), the goal of the previous turn is
carried forward. The previous goal is always passed in explicitly; nothing
here keeps state between calls.

Keyword priority (first match wins): AWARENESS > ENGAGEMENT > CONVERSION.
"""

import re
from typing import Any, Iterable

from adagent.contracts import DEFAULT_GOAL, Goal


GOAL_KEYWORDS: dict[Goal, tuple[str, ...]] = {
    Goal.AWARENESS: (
        r"reach",
        r"impressions?",
        r"visibility",
        r"brand(?:\s+awareness)?",
        r"awareness",
        r"cpm",
        r"exposure",
    ),
    Goal.ENGAGEMENT: (
        r"(?:increase|maintain|drive|grow)\s+traffic",
        r"clicks?",
        r"ctr",
        r"click[-\s]?through",
        r"traffic",
        r"engagement",
        r"video\s+completion",
        r"completion\s+rate",
        r"watch(?:\s+time)?",
    ),
    Goal.CONVERSION: (
        r"sales",
        r"revenue",
        r"roas",
        r"roi",
        r"cpa",
        r"purchases?",
        r"invest\w*",
        r"budget",
    ),
}

GOAL_PRIORITY: tuple[Goal, ...] = (Goal.AWARENESS, Goal.ENGAGEMENT, Goal.CONVERSION)

FOLLOWUP_PATTERNS: tuple[str, ...] = (
    # Pronouns
    r"\b(?:there|it|that|those|these|them)\b",
    # Superlative references
    r"\b(?:the\s+)?best\s+one\b",
    r"\b(?:the\s+)?(?:highest|lowest|top|worst)\b",
    # Continuations
    r"\bwhich\s+one\b",
    r"\bwhat\s+about\b",
    r"\bhow\s+about\b",
    # Comparisons
    r"\bboth\b",
    r"\ball\s+of\s+them\b",
    r"\bthe\s+same\b",
)

_GOAL_LINE_PATTERN = re.compile(
    r"(?:previous\s+query\s+goal|goal)\s*:\s*(AWARENESS|ENGAGEMENT|CONVERSION)\b",
    re.IGNORECASE,
)


def detect_goal_keywords(question: str) -> Goal | None:
    """Return the goal named by the question's keywords, if any."""
    text = (question or "").lower()
    for goal in GOAL_PRIORITY:
        for keyword in GOAL_KEYWORDS[goal]:
            if re.search(rf"\b{keyword}\b", text):
                return goal
    return None


def has_followup_marker(question: str) -> bool:
    """Return True if the question refers back to an earlier turn."""
    text = (question or "").lower()
    return any(re.search(pattern, text) for pattern in FOLLOWUP_PATTERNS)


def resolve_goal(question: str, previous_goal: Goal | None = None) -> Goal:
    """Resolve the goal for the current turn.

    Args:
        question: Current user question
        previous_goal: Goal of the most recent earlier turn, if known

    Returns:
        Keyword goal if one matches; otherwise previous_goal when the
        question is a follow-up; otherwise CONVERSION.
    """
    keyword_goal = detect_goal_keywords(question)
    if keyword_goal is not None:
        return keyword_goal

    if previous_goal is not None and has_followup_marker(question):
        return previous_goal

    return DEFAULT_GOAL


def find_previous_goal(history: Iterable[Any] | None) -> Goal | None:
    """Find the most recent goal recorded in conversation history.

    Entries are scanned newest to oldest. An entry contributes a goal through
    its ``goal`` field or through a ``GOAL: <tag>`` / ``Previous query goal:
    <tag>`` line in its content. Entries may be dicts or ChatMessage models.
    """
    if not history:
        return None

    for entry in reversed(list(history)):
        if isinstance(entry, dict):
            goal_value = entry.get("goal")
            content = entry.get("content") or ""
        else:
            goal_value = getattr(entry, "goal", None)
            content = getattr(entry, "content", "") or ""

        goal = Goal.parse(goal_value)
        if goal is not None:
            return goal

        match = _GOAL_LINE_PATTERN.search(str(content))
        if match:
            return Goal(match.group(1).upper())

    return None
