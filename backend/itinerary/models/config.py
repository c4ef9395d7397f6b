"""Generator configuration value objects.

Every block is frozen; changes go through ``merge_configs`` which builds a
new validated object instead of mutating in place.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .common import (
    HHMM_PATTERN,
    AllocationStrategy,
    IntensityLevel,
    StorageMode,
    TransportMode,
    parse_hhmm,
)


class _Block(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class DayStructureConfig(_Block):
    """How a single day is laid out."""

    preferred_start_time: str = Field(
        default="08:00", pattern=HHMM_PATTERN, description="Day start (HH:MM)"
    )
    preferred_end_time: str = Field(
        default="18:00", pattern=HHMM_PATTERN, description="Day end (HH:MM)"
    )
    max_daily_activities: int = Field(
        default=4, ge=1, le=10, description="Maximum destinations per day"
    )
    buffer_time_minutes: int = Field(
        default=30, ge=0, le=120, description="Buffer after each destination"
    )
    include_breaks: bool = Field(default=True, description="Interleave breaks")
    break_duration: int = Field(
        default=30, ge=15, le=120, description="Break length in minutes"
    )

    @model_validator(mode="after")
    def validate_window(self) -> DayStructureConfig:
        """Ensure the day starts before it ends."""
        if parse_hhmm(self.preferred_start_time) >= parse_hhmm(self.preferred_end_time):
            raise ValueError("preferred_start_time must be before preferred_end_time")
        return self


class CostDistributionConfig(_Block):
    """How the budget is spread across days and categories."""

    budget_allocation_strategy: AllocationStrategy = Field(
        default=AllocationStrategy.equal, description="Per-day allocation strategy"
    )
    cost_variability_tolerance: float = Field(
        default=0.2, ge=0, le=1, description="Allowed overrun as a fraction"
    )
    emergency_fund_percentage: float = Field(
        default=10, ge=5, le=15, description="Reserve held back from categories"
    )
    currency: str = Field(default="IDR", min_length=1, description="Currency code")


class ActivityDensityConfig(_Block):
    """Desired activity density."""

    intensity_level: IntensityLevel = Field(default=IntensityLevel.moderate)
    max_activities_per_day: int = Field(default=4, ge=1, le=10)
    preferred_activity_types: tuple[str, ...] = Field(default=())
    avoid_over_scheduling: bool = Field(default=True)
    include_free_time: bool = Field(default=True)
    free_time_percentage: float = Field(default=30, ge=20, le=40)


class TransportationConfig(_Block):
    """Transport mode preferences."""

    preferred_modes: tuple[TransportMode, ...] = Field(
        default=(TransportMode.walking, TransportMode.public, TransportMode.taxi)
    )
    max_walking_distance: float = Field(default=2, ge=0, description="Kilometres")
    budget_priority: bool = Field(default=True)
    eco_friendly: bool = Field(default=False)
    accessibility_required: bool = Field(default=False)


class MealWindow(_Block):
    """A meal timing window."""

    start: str = Field(pattern=HHMM_PATTERN)
    end: str = Field(pattern=HHMM_PATTERN)


class MealTiming(_Block):
    """Timing windows for the three main meals."""

    breakfast: MealWindow = Field(default=MealWindow(start="07:00", end="09:00"))
    lunch: MealWindow = Field(default=MealWindow(start="12:00", end="14:00"))
    dinner: MealWindow = Field(default=MealWindow(start="18:00", end="20:00"))


class MealConfig(_Block):
    """Meal planning policy."""

    include_meals: bool = Field(default=True)
    meal_budget: float = Field(default=150000, ge=0, description="Reference daily meal budget")
    preferred_cuisine: tuple[str, ...] = Field(default=())
    dietary_restrictions: tuple[str, ...] = Field(default=())
    meal_timing: MealTiming = Field(default_factory=MealTiming)


class PerformanceConfig(_Block):
    """Performance knobs."""

    enable_caching: bool = Field(default=True)
    cache_timeout_ms: int = Field(default=3_600_000, ge=0)
    max_concurrent_requests: int = Field(default=5, ge=1)
    timeout_ms: int = Field(default=30_000, ge=1000)
    enable_background_processing: bool = Field(default=False)


class PersistenceConfig(_Block):
    """Persistence policy."""

    primary_storage: StorageMode = Field(default=StorageMode.local_storage)
    backup_enabled: bool = Field(default=True)
    sync_interval_ms: int = Field(default=30_000, ge=1000)
    max_retries: int = Field(default=3, ge=0)


class GeneratorConfig(_Block):
    """Complete generation configuration; each block is independent."""

    day_structure: DayStructureConfig = Field(default_factory=DayStructureConfig)
    cost_distribution: CostDistributionConfig = Field(
        default_factory=CostDistributionConfig
    )
    activity_density: ActivityDensityConfig = Field(
        default_factory=ActivityDensityConfig
    )
    transportation: TransportationConfig = Field(default_factory=TransportationConfig)
    meals: MealConfig = Field(default_factory=MealConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)


CONFIG_BLOCKS: tuple[str, ...] = tuple(GeneratorConfig.model_fields)
