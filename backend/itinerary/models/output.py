"""Generator output models representing a scheduled multi-day plan."""

from __future__ import annotations

from datetime import date as Date
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from .common import HHMM_PATTERN, DayTransportMode, Level, MealType
from .input import Destination


class Alternative(BaseModel):
    """Alternative suggestion for a scheduled destination."""

    id: str
    name: str
    reason: str


class ScheduledDestination(Destination):
    """Catalog destination placed on a day's timeline."""

    scheduled_time: str = Field(pattern=HHMM_PATTERN, description="Start time (HH:MM)")
    ml_score: float = Field(default=0.5, ge=0, le=1, description="Oracle score")
    predicted_satisfaction: float = Field(
        default=0.0, ge=0, description="Oracle predicted rating"
    )
    crowd_level: Level = Field(default=Level.low)
    alternatives: list[Alternative] | None = Field(default=None)


class TimeSlot(BaseModel):
    """A block of time on a day's timeline."""

    start: str = Field(pattern=HHMM_PATTERN)
    end: str = Field(pattern=HHMM_PATTERN)
    duration: int = Field(ge=0, description="Minutes")


class FreeTimeSlot(TimeSlot):
    """Unscheduled time with suggestions."""

    suggestions: list[str] = Field(default_factory=list)


class Meal(BaseModel):
    """A recommended meal."""

    type: MealType
    time: str = Field(pattern=HHMM_PATTERN)
    cuisine: str
    estimated_cost: float = Field(ge=0)
    location: str
    recommendation: str


class DayTransportation(BaseModel):
    """Transport selected for a day's destination cluster."""

    mode: DayTransportMode
    estimated_cost: float = Field(ge=0)
    duration: int = Field(ge=0, description="Minutes")
    route: str
    distance_km: float = Field(ge=0)
    eco_friendly: bool = Field(default=False)


class Accommodation(BaseModel):
    """Accommodation for a day."""

    name: str
    type: str
    estimated_cost: float = Field(ge=0)
    location: str


class DayPlan(BaseModel):
    """Plan for a single day."""

    day: int = Field(ge=1, description="1-based day index")
    date: Date
    destinations: list[ScheduledDestination] = Field(default_factory=list)
    meals: list[Meal] | None = Field(default=None)
    accommodation: Accommodation | None = Field(default=None)
    transportation: DayTransportation | None = Field(default=None)
    breaks: list[TimeSlot] = Field(default_factory=list)
    free_time_slots: list[FreeTimeSlot] = Field(default_factory=list)
    budget_allocation: float = Field(default=0.0, ge=0)
    total_cost: float = Field(ge=0)
    total_time: int = Field(ge=0, description="Scheduled destination minutes")
    ml_confidence: float = Field(ge=0, le=1)
    optimization_reasons: list[str] = Field(default_factory=list)


class ItinerarySummary(BaseModel):
    """Aggregate figures for the whole plan."""

    total_days: int = Field(ge=0)
    total_cost: float = Field(ge=0)
    total_duration: int = Field(ge=0)
    confidence: float = Field(ge=0, le=1)
    generated_at: datetime


class CategoryAllocation(BaseModel):
    """Allocated vs recommended spend for one category."""

    allocated: float = Field(ge=0)
    recommended: float = Field(ge=0)
    savings: float = Field(ge=0)


class CostOptimization(BaseModel):
    """A suggested saving."""

    type: str
    category: str
    potential_savings: float = Field(ge=0)
    description: str
    impact: Level


class BudgetBreakdown(BaseModel):
    """Budget split by day and by category."""

    total_budget: float = Field(gt=0)
    emergency_fund: float = Field(ge=0)
    daily_allocations: list[float] = Field(default_factory=list)
    category_breakdown: dict[str, CategoryAllocation]
    optimizations: list[CostOptimization] = Field(default_factory=list)
    confidence: float = Field(ge=0, le=1)
    reasoning: list[str] = Field(default_factory=list)


class MLInsights(BaseModel):
    """Heuristic personalization summary."""

    personalization_score: float = Field(ge=0, le=1)
    predicted_user_satisfaction: float = Field(ge=0)
    risk_factors: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class OptimizationMetrics(BaseModel):
    """How the plan compares to naive baselines."""

    time_optimization: float = Field(ge=0)
    cost_optimization: float = Field(ge=0)
    satisfaction_optimization: float = Field(ge=0)
    reasoning: list[str] = Field(default_factory=list)


class SeasonalAdjustment(BaseModel):
    destination_id: str
    season: str
    multiplier: float
    reason: str


class DemandFactor(BaseModel):
    destination_id: str
    demand_level: str
    multiplier: float
    occupancy_rate: float


class CurrencyRate(BaseModel):
    from_currency: str
    to_currency: str
    rate: float
    last_updated: datetime


class AppliedDiscount(BaseModel):
    type: str
    percentage: float
    applicable_to: list[str]
    conditions: str


class PriceUpdate(BaseModel):
    destination_id: str
    original_price: float
    current_price: float
    change_reason: str
    last_updated: datetime


class CostVariability(BaseModel):
    """Pricing annotations; informational only."""

    seasonal_adjustments: list[SeasonalAdjustment] = Field(default_factory=list)
    demand_factors: list[DemandFactor] = Field(default_factory=list)
    currency_rates: list[CurrencyRate] = Field(default_factory=list)
    applied_discounts: list[AppliedDiscount] = Field(default_factory=list)
    real_time_updates: list[PriceUpdate] = Field(default_factory=list)


class Itinerary(BaseModel):
    """The full multi-day plan."""

    summary: ItinerarySummary
    days: list[DayPlan]
    budget_breakdown: BudgetBreakdown
    ml_insights: MLInsights
    optimization: OptimizationMetrics
    cost_variability: CostVariability = Field(default_factory=CostVariability)

    @model_validator(mode="after")
    def validate_contiguous_days(self) -> Itinerary:
        """Ensure days are numbered 1..N with no gaps or duplicates."""
        indices = [d.day for d in self.days]
        if indices != list(range(1, len(indices) + 1)):
            raise ValueError(f"days must be numbered 1..N in order, got {indices}")
        return self


class OutputError(BaseModel):
    """An error attached to a generation result."""

    code: str
    message: str
    severity: Level
    recoverable: bool


class OutputWarning(BaseModel):
    """A warning attached to a generation result."""

    code: str
    message: str
    suggestion: str | None = None


class GenerationMetadata(BaseModel):
    """How the plan was produced."""

    generation_time_ms: int = Field(ge=0)
    config_used: dict[str, Any]
    engine_versions: dict[str, str]
    performance_metrics: dict[str, int] = Field(default_factory=dict)


class GeneratorOutput(BaseModel):
    """Result of a generation call; never carries an absent plan."""

    success: bool
    itinerary_id: str = Field(min_length=1)
    itinerary: Itinerary
    metadata: GenerationMetadata
    errors: list[OutputError] = Field(default_factory=list)
    warnings: list[OutputWarning] = Field(default_factory=list)
