"""Headline findings across grouped aggregates."""

from dataclasses import dataclass

from adagent.execution.aggregate import Aggregate


@dataclass
class GroupInsights:
    """Best/worst performers among groups."""

    best_roas: tuple[str, int] | None = None
    worst_roas: tuple[str, int] | None = None
    highest_spend: tuple[str, float] | None = None

    def as_lines(self) -> list[str]:
        lines = []
        if self.best_roas:
            lines.append(f"Best ROAS: {self.best_roas[0]} at {self.best_roas[1]}x")
        if self.worst_roas:
            lines.append(f"Worst ROAS: {self.worst_roas[0]} at {self.worst_roas[1]}x")
        if self.highest_spend:
            lines.append(f"Highest spend: {self.highest_spend[0]} at ${self.highest_spend[1]:,.2f}")
        return lines


def rank_by_roas(groups: dict[str, Aggregate]) -> list[tuple[str, Aggregate]]:
    """Groups ordered from highest to lowest ROAS (ties: higher revenue first)."""
    return sorted(
        groups.items(),
        key=lambda item: (item[1].roas, item[1].revenue),
        reverse=True,
    )


def find_insights(groups: dict[str, Aggregate]) -> GroupInsights:
    """Find the best ROAS, the worst ROAS among groups with spend, and the top spender."""
    if not groups:
        return GroupInsights()

    ranked = rank_by_roas(groups)
    best_name, best = ranked[0]

    spending = [(name, agg) for name, agg in ranked if agg.spend > 0]
    worst = (spending[-1][0], spending[-1][1].roas) if spending else None

    top_spender = max(groups.items(), key=lambda item: item[1].spend)
    highest_spend = (top_spender[0], top_spender[1].spend) if top_spender[1].spend > 0 else None

    return GroupInsights(
        best_roas=(best_name, best.roas),
        worst_roas=worst,
        highest_spend=highest_spend,
    )
