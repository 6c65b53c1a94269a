"""In-memory execution: filtering and aggregation of period records."""

from adagent.execution.aggregate import (
    Aggregate,
    aggregate_for_shape,
    aggregate_records,
    apply_filters,
    group_records,
    safe_divide,
)

__all__ = [
    "Aggregate",
    "aggregate_for_shape",
    "aggregate_records",
    "apply_filters",
    "group_records",
    "safe_divide",
]
