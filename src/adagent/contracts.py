"""Shared types for the question-answering pipeline.

This module defines the structures that flow between pipeline stages:
- Goal: the optimization objective inferred for a turn
- Shape: single aggregate vs. per-dimension comparison
- Record: one row of the video_ad_performance dataset
- QueryIntent: what the pipeline learned about a generated query
- ChatMessage / ChatResult: caller-facing conversation contract
"""

from datetime import date
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


TABLE_NAME = "video_ad_performance"
PERIOD_COLUMN = "report_month"

# Only these columns can be filtered or grouped on
DIMENSIONS: tuple[str, ...] = ("platform", "region", "age_group", "gender")

MONEY_FIELDS: tuple[str, ...] = ("spend", "revenue")
COUNT_FIELDS: tuple[str, ...] = (
    "impressions",
    "video_starts",
    "views_3s",
    "views_25",
    "views_50",
    "views_100",
    "clicks",
    "conversions",
)
COUNTER_FIELDS: tuple[str, ...] = MONEY_FIELDS + COUNT_FIELDS

# Example dimension values shown to the query generator
DIMENSION_EXAMPLES: dict[str, tuple[str, ...]] = {
    "platform": ("YouTube", "TikTok", "Meta", "CTV"),
    "region": ("West", "East", "South", "Midwest"),
    "age_group": ("18-24", "25-34", "35-44", "45-54", "55+"),
    "gender": ("Male", "Female"),
}


# =============================================================================
# Enums
# =============================================================================

class Goal(str, Enum):
    """Optimization objective for a conversation turn."""

    AWARENESS = "AWARENESS"  # reach, impressions, CPM
    ENGAGEMENT = "ENGAGEMENT"  # clicks, CTR, video completion
    CONVERSION = "CONVERSION"  # revenue, ROAS, CPA

    @classmethod
    def parse(cls, value: Any) -> "Goal | None":
        """Return the Goal named by value, or None if it names none."""
        if isinstance(value, Goal):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


DEFAULT_GOAL = Goal.CONVERSION


class ShapeKind(str, Enum):
    """Whether a query produces one aggregate or one per group."""

    SINGLE = "single"
    COMPARISON = "comparison"


class PipelineState(str, Enum):
    """States of a single chat request."""

    RECEIVED = "received"
    GOAL_RESOLVED = "goal_resolved"
    QUERY_GENERATED = "query_generated"
    VALIDATED = "validated"
    EXECUTED = "executed"
    COMPLETE = "complete"
    NON_QUERY = "non_query"
    FAILED = "failed"


TERMINAL_STATES = frozenset({PipelineState.COMPLETE, PipelineState.NON_QUERY, PipelineState.FAILED})


# =============================================================================
# Query introspection
# =============================================================================

class Shape(BaseModel):
    """Result shape detected from a query's grouping clause."""

    model_config = ConfigDict(frozen=True)

    kind: ShapeKind = ShapeKind.SINGLE
    dimension: str | None = None

    @property
    def is_comparison(self) -> bool:
        return self.kind == ShapeKind.COMPARISON


class QueryIntent(BaseModel):
    """Transient view of a generated query, built once per request."""

    sql: str
    is_safe: bool
    reason: str | None = None
    filters: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Dimension -> allowed values; a missing key means unrestricted",
    )
    shape: Shape = Field(default_factory=Shape)


# =============================================================================
# Dataset rows
# =============================================================================

class Record(BaseModel):
    """One row of video_ad_performance.

    Counters arrive from the store as numbers, numeric strings or nulls;
    all of them are coerced so that missing values count as zero.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    report_month: date | None = None
    platform: str = ""
    region: str = ""
    age_group: str = ""
    gender: str = ""

    spend: float = 0.0
    revenue: float = 0.0

    impressions: int = 0
    video_starts: int = 0
    views_3s: int = 0
    views_25: int = 0
    views_50: int = 0
    views_100: int = 0
    clicks: int = 0
    conversions: int = 0

    @field_validator(*MONEY_FIELDS, mode="before")
    @classmethod
    def coerce_money(cls, v: Any) -> float:
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0.0
        return float(v)

    @field_validator(*COUNT_FIELDS, mode="before")
    @classmethod
    def coerce_count(cls, v: Any) -> int:
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0
        return int(float(v))

    @field_validator(*DIMENSIONS, mode="before")
    @classmethod
    def coerce_dimension(cls, v: Any) -> str:
        return "" if v is None else str(v)

    def dimension_value(self, dimension: str) -> str:
        if dimension not in DIMENSIONS:
            raise ValueError(f"Unknown dimension: {dimension}")
        return getattr(self, dimension)


# =============================================================================
# Conversation contract
# =============================================================================

class ChatMessage(BaseModel):
    """One entry of caller-supplied conversation history."""

    model_config = ConfigDict(extra="ignore")

    role: Literal["user", "assistant", "system"] = "user"
    content: str = ""
    goal: str | None = Field(None, description="Goal echoed back from a previous ChatResult")


class VisualizationDescriptor(BaseModel):
    """Chart hint for comparison-shaped answers."""

    type: Literal["comparison"] = "comparison"
    dimension: str
    metrics: list[str]
    goal: Goal
    data: dict[str, dict[str, Any]]


class ChatResult(BaseModel):
    """Caller-facing result of one chat request."""

    success: bool
    sql: str | None = None
    answer: str
    visualization: VisualizationDescriptor | None = None
    goal: Goal = DEFAULT_GOAL
    is_strategy: bool = False
    state: PipelineState = PipelineState.COMPLETE
