"""Detect questions that ask for budget action rather than a report."""

import re


STRATEGY_PATTERNS: tuple[str, ...] = (
    r"\binvest\w*",
    r"\bbudget\w*",
    r"\b(?:re)?allocat\w*",
    r"\bshift\w*",
    r"\boptimi[sz]\w*",
    r"\bimprov\w*",
    r"\bmaximi[sz]\w*",
    r"\bshould\s+i\b",
    r"\bwhat\s+should\b",
    r"\bhow\s+can\s+i\b",
    r"\brecommend\w*",
    r"\bsuggest\w*",
    r"\badvice\b",
    r"\badvise\b",
    r"\bstrateg\w*",
    r"\bbest\s+way\b",
)


def is_strategy_question(question: str) -> bool:
    """Return True if the question asks what to do with the budget.

    Strategy questions get a prescriptive answer (cut / add / reallocate);
    everything else gets a descriptive report. Aggregation is unaffected.
    """
    text = (question or "").lower()
    return any(re.search(pattern, text) for pattern in STRATEGY_PATTERNS)
