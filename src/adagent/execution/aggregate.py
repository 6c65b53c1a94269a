"""Aggregation of period records into reportable statistics.

The generated SQL is never run. Instead, the records for the period are
filtered with the predicates recovered from the SQL and summed here, either
into one global Aggregate or into one Aggregate per dimension value.

Invariants:
- Input records are never mutated
- Money counters accumulate as float, count counters as int
- Every derived ratio is null-safe: a zero denominator yields 0
- ROAS is rounded half-up to a whole number; other ratios to 2 decimals
"""

import math
from dataclasses import dataclass
from typing import Any, Iterable

from adagent.contracts import (
    COUNT_FIELDS,
    DIMENSIONS,
    MONEY_FIELDS,
    Record,
    Shape,
)


DERIVED_METRICS: tuple[str, ...] = (
    "roas",
    "ctr",
    "cpa",
    "conversion_rate",
    "completion_rate",
    "cpm",
)


def safe_divide(numerator: float, denominator: float) -> float:
    """Divide, returning 0 when the denominator is zero."""
    if not denominator:
        return 0.0
    return numerator / denominator


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass
class Aggregate:
    """Summed counters and derived metrics for one group or the whole set."""

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
    row_count: int = 0

    def add(self, record: Record) -> None:
        """Accumulate one record's counters into this aggregate."""
        for name in MONEY_FIELDS:
            setattr(self, name, getattr(self, name) + float(getattr(record, name) or 0.0))
        for name in COUNT_FIELDS:
            setattr(self, name, getattr(self, name) + int(getattr(record, name) or 0))
        self.row_count += 1

    @property
    def roas(self) -> int:
        return _round_half_up(safe_divide(self.revenue, self.spend))

    @property
    def ctr(self) -> float:
        return round(safe_divide(self.clicks, self.impressions) * 100, 2)

    @property
    def cpa(self) -> float:
        return round(safe_divide(self.spend, self.conversions), 2)

    @property
    def conversion_rate(self) -> float:
        return round(safe_divide(self.conversions, self.clicks) * 100, 2)

    @property
    def completion_rate(self) -> float:
        return round(safe_divide(self.views_100, self.video_starts) * 100, 2)

    @property
    def cpm(self) -> float:
        return round(safe_divide(self.spend, self.impressions) * 1000, 2)

    def to_dict(self) -> dict[str, Any]:
        """Serialize counters and derived metrics."""
        data: dict[str, Any] = {
            "spend": round(self.spend, 2),
            "revenue": round(self.revenue, 2),
        }
        for name in COUNT_FIELDS:
            data[name] = getattr(self, name)
        for name in DERIVED_METRICS:
            data[name] = getattr(self, name)
        data["row_count"] = self.row_count
        return data


def _normalize(value: str) -> str:
    return str(value).strip().lower()


def apply_filters(records: Iterable[Record], filters: dict[str, list[str]] | None) -> list[Record]:
    """Keep records matching every dimension filter.

    Filters on different dimensions compose by AND; the values listed for one
    dimension compose by OR. Matching is case-insensitive. Empty or missing
    filters keep everything.
    """
    records = list(records)
    if not filters:
        return records

    allowed = {
        dimension: {_normalize(v) for v in values}
        for dimension, values in filters.items()
        if dimension in DIMENSIONS and values
    }

    return [
        record
        for record in records
        if all(_normalize(record.dimension_value(dim)) in values for dim, values in allowed.items())
    ]


def aggregate_records(records: Iterable[Record]) -> Aggregate:
    """Sum every counter across all records."""
    total = Aggregate()
    for record in records:
        total.add(record)
    return total


def group_records(records: Iterable[Record], dimension: str) -> dict[str, Aggregate]:
    """Sum counters per value of dimension.

    Args:
        records: Records to group (already filtered)
        dimension: One of DIMENSIONS

    Returns:
        Mapping of dimension value -> Aggregate
    """
    if dimension not in DIMENSIONS:
        raise ValueError(f"Cannot group by unknown dimension: {dimension}")

    groups: dict[str, Aggregate] = {}
    for record in records:
        key = record.dimension_value(dimension)
        groups.setdefault(key, Aggregate()).add(record)
    return groups


def aggregate_for_shape(
    records: Iterable[Record],
    shape: Shape,
) -> Aggregate | dict[str, Aggregate]:
    """Aggregate according to the detected query shape.

    A comparison with an unrecognized dimension has nothing to group by and
    falls back to a single aggregate.
    """
    if shape.is_comparison and shape.dimension:
        return group_records(records, shape.dimension)
    return aggregate_records(records)

