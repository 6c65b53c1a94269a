"""Choose which metrics to foreground when presenting an answer.

Selection only affects presentation order; every derived metric is always
computed by the aggregation engine.

Override policy: a resolved goal always wins. The keyword cascade is used
only when no goal is supplied.
"""

import re

from adagent.contracts import Goal


# Metric identifiers
FINANCIAL = "financial"  # revenue / spend / ROAS bundle
IMPRESSIONS = "impressions"
CLICKS = "clicks"
CONVERSIONS = "conversions"
SPEND = "spend"
REVENUE = "revenue"
ROAS = "roas"
CTR = "ctr"
CPA = "cpa"
CPM = "cpm"
CONVERSION_RATE = "conversion_rate"
COMPLETION_RATE = "completion_rate"
VIDEO_FUNNEL = "video_funnel"  # starts -> 3s -> 25/50/100% views

GOAL_METRICS: dict[Goal, list[str]] = {
    Goal.AWARENESS: [IMPRESSIONS, CPM],
    Goal.ENGAGEMENT: [CTR],
    Goal.CONVERSION: [FINANCIAL],
}

# (pattern, metrics) in priority order
KEYWORD_CASCADE: tuple[tuple[str, list[str]], ...] = (
    (r"completion\s+rate|vcr|views_100\s*/|completed\s+views", [COMPLETION_RATE]),
    (r"funnel|retention|drop[-\s]?off|views_(?:3s|25|50)|quartile|watch", [VIDEO_FUNNEL]),
    (r"\bctr\b|click[-\s]?through", [CTR]),
    (r"conversion\s+rate|\bcvr\b", [CONVERSION_RATE]),
    (r"\bcpa\b|cost\s+per\s+(?:acquisition|conversion)", [CPA]),
    (r"\bcpm\b|cost\s+per\s+(?:thousand|mille)", [CPM]),
    (r"\bconversions\b", [CONVERSIONS]),
    (r"\bclicks\b", [CLICKS]),
    (r"\bimpressions\b", [IMPRESSIONS]),
    (r"\bspend\b|\brevenue\b", [SPEND, REVENUE]),
    (r"\broas\b|return\s+on\s+ad\s+spend", [ROAS]),
    (r"invest|budget|allocat|strategy|should\s+i|recommend", [FINANCIAL]),
)

_GENERIC_PATTERN = r"perform|compar|\bvs\.?\b|versus|overview|summary|how\s+(?:is|are|did)"


def select_metrics(sql: str, question: str, goal: Goal | None = None) -> list[str]:
    """Return the ordered metric identifiers to foreground.

    Args:
        sql: Generated query text
        question: Raw user question
        goal: Resolved goal for the turn; takes priority when present

    Returns:
        Exactly one metric set (a non-empty list of identifiers)
    """
    if goal is not None:
        return list(GOAL_METRICS[goal])

    text = f"{sql or ''}\n{question or ''}".lower()

    for pattern, metrics in KEYWORD_CASCADE:
        if re.search(pattern, text):
            return list(metrics)

    if re.search(_GENERIC_PATTERN, text):
        if "video" in text:
            return [VIDEO_FUNNEL, COMPLETION_RATE]
        return [FINANCIAL, CTR]

    return [FINANCIAL]
