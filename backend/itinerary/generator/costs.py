"""Budget distribution across days and spending categories.

Category shares are applied to the budget net of the emergency fund, so
allocated categories plus the reserve always add back up to the total.
"""

from collections.abc import Sequence
from datetime import date

from pydantic import BaseModel, Field

from backend.itinerary.models.common import AllocationStrategy, Level
from backend.itinerary.models.config import CostDistributionConfig
from backend.itinerary.models.input import Destination
from backend.itinerary.models.output import CategoryAllocation, CostOptimization

# Share of the net budget per category; must sum to 1.0
CATEGORY_SHARES: dict[str, float] = {
    "accommodation": 0.35,
    "transportation": 0.20,
    "food": 0.25,
    "activities": 0.15,
    "miscellaneous": 0.05,
}

FRONT_LOAD_DECAY = 0.8
PEAK_DAY_SHARE = 0.4
GROUP_VISIT_MIN_DESTINATIONS = 3
LOW_SEASON_MONTHS = frozenset({11, 12, 1, 2, 3})


class CostDistribution(BaseModel):
    """Per-day and per-category budget split with savings suggestions."""

    total_budget: float
    emergency_fund: float
    daily_allocations: list[float] = Field(default_factory=list)
    category_breakdown: dict[str, CategoryAllocation] = Field(default_factory=dict)
    optimizations: list[CostOptimization] = Field(default_factory=list)
    confidence: float = Field(ge=0, le=1)
    reasoning: list[str] = Field(default_factory=list)


def _front_loaded(budget: float, days: int) -> list[float]:
    weights = [FRONT_LOAD_DECAY**i for i in range(days)]
    total = sum(weights)
    return [budget * w / total for w in weights]


class CostDistributionEngine:
    """Splits a trip budget by day and by category."""

    def __init__(self, config: CostDistributionConfig) -> None:
        self.config = config

    def daily_allocations(
        self,
        budget: float,
        days: int,
        strategy: AllocationStrategy | None = None,
    ) -> list[float]:
        """Allocate the budget to each day.

        Args:
            budget: Total trip budget.
            days: Number of trip days (>= 1).
            strategy: Overrides the configured strategy when given.

        Returns:
            One allocation per day; the allocations sum to ``budget``.
        """
        if days < 1:
            return []
        strategy = strategy or self.config.budget_allocation_strategy

        if strategy is AllocationStrategy.front_loaded:
            return _front_loaded(budget, days)
        if strategy is AllocationStrategy.back_loaded:
            return list(reversed(_front_loaded(budget, days)))
        if strategy is AllocationStrategy.peak_day:
            if days == 1:
                return [budget]
            peak = days // 2
            rest = budget * (1 - PEAK_DAY_SHARE) / (days - 1)
            return [budget * PEAK_DAY_SHARE if i == peak else rest for i in range(days)]
        return [budget / days] * days

    def optimizations(
        self,
        destinations: Sequence[Destination],
        budget: float,
        start_date: date,
    ) -> list[CostOptimization]:
        """Suggest savings for the trip."""
        suggestions: list[CostOptimization] = []

        if len(destinations) >= GROUP_VISIT_MIN_DESTINATIONS:
            suggestions.append(
                CostOptimization(
                    type="group",
                    category="activities",
                    potential_savings=round(budget * 0.05, 2),
                    description="Bundle nearby attractions into combined tickets",
                    impact=Level.medium,
                )
            )

        if start_date.month in LOW_SEASON_MONTHS:
            suggestions.append(
                CostOptimization(
                    type="seasonal",
                    category="accommodation",
                    potential_savings=round(budget * 0.08, 2),
                    description="Low-season accommodation rates are available",
                    impact=Level.high,
                )
            )

        suggestions.append(
            CostOptimization(
                type="early_bird",
                category="transportation",
                potential_savings=round(budget * 0.03, 2),
                description="Book transportation in advance for early-bird fares",
                impact=Level.low,
            )
        )
        return suggestions

    def category_breakdown(
        self,
        budget: float,
        optimizations: Sequence[CostOptimization] = (),
    ) -> tuple[float, dict[str, CategoryAllocation]]:
        """Split the budget net of the emergency fund across categories.

        Returns:
            Tuple of (emergency fund, allocation per category).
        """
        emergency_fund = budget * self.config.emergency_fund_percentage / 100
        net = budget - emergency_fund

        savings_by_category: dict[str, float] = {}
        for opt in optimizations:
            savings_by_category[opt.category] = (
                savings_by_category.get(opt.category, 0.0) + opt.potential_savings
            )

        breakdown: dict[str, CategoryAllocation] = {}
        assigned = 0.0
        names = list(CATEGORY_SHARES)
        for name in names:
            if name == names[-1]:
                # Remainder absorbs float drift so the split is exact
                allocated = max(0.0, net - assigned)
            else:
                allocated = net * CATEGORY_SHARES[name]
                assigned += allocated
            savings = min(allocated, savings_by_category.get(name, 0.0))
            breakdown[name] = CategoryAllocation(
                allocated=allocated,
                recommended=allocated - savings,
                savings=savings,
            )
        return emergency_fund, breakdown

    def distribute_costs(
        self,
        budget: float,
        days: int,
        destinations: Sequence[Destination],
        start_date: date,
    ) -> CostDistribution:
        """Compute daily allocations, category split and optimizations together."""
        strategy = self.config.budget_allocation_strategy
        daily = self.daily_allocations(budget, days, strategy)
        optimizations = self.optimizations(destinations, budget, start_date)
        emergency_fund, breakdown = self.category_breakdown(budget, optimizations)

        reasoning = [
            f"Daily budget allocated with the {strategy.value} strategy",
            f"{self.config.emergency_fund_percentage:g}% held back as emergency fund",
        ]
        if optimizations:
            total_savings = sum(o.potential_savings for o in optimizations)
            reasoning.append(
                f"{len(optimizations)} savings opportunities worth {total_savings:,.0f} "
                f"{self.config.currency}"
            )

        return CostDistribution(
            total_budget=budget,
            emergency_fund=emergency_fund,
            daily_allocations=daily,
            category_breakdown=breakdown,
            optimizations=optimizations,
            confidence=min(0.95, 0.7 + 0.05 * len(optimizations)),
            reasoning=reasoning,
        )
