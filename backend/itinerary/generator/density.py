"""Activity density filtering and metrics."""

import logging
from collections.abc import Sequence

from pydantic import BaseModel, Field

from backend.itinerary.models.config import ActivityDensityConfig
from backend.itinerary.models.input import Destination, GeneratorInput

logger = logging.getLogger(__name__)

# Usable minutes per day used as the free-time reference
REFERENCE_DAY_MINUTES = 600
MIN_FREE_TIME_PERCENTAGE = 20


class DensityMetrics(BaseModel):
    """Aggregate load of a filtered destination set."""

    activities_per_day: float = Field(ge=0)
    total_duration: int = Field(ge=0, description="Minutes")
    free_time_percentage: float = Field(ge=0, le=100)
    intensity: str = Field(description="low | medium | high")


class DensityResult(BaseModel):
    """Filtered destinations with their metrics and warnings."""

    filtered: list[Destination] = Field(default_factory=list)
    metrics: DensityMetrics
    warnings: list[str] = Field(default_factory=list)


def _matches_type(dest: Destination, preferred: Sequence[str]) -> bool:
    haystack = [dest.category.lower(), *(t.lower() for t in dest.tags)]
    return any(p.lower() in h for p in preferred for h in haystack)


def _intensity(per_day: float) -> str:
    if per_day <= 2:
        return "low"
    if per_day <= 4:
        return "medium"
    return "high"


class ActivityDensityManager:
    """Keeps the number of activities per day within the configured density."""

    def __init__(self, config: ActivityDensityConfig) -> None:
        self.config = config

    def compute_metrics(self, destinations: Sequence[Destination], days: int) -> DensityMetrics:
        days = max(1, days)
        per_day = len(destinations) / days
        used = sum(d.duration for d in destinations)
        free_pct = max(0.0, 100 - used / (REFERENCE_DAY_MINUTES * days) * 100)
        return DensityMetrics(
            activities_per_day=round(per_day, 2),
            total_duration=used,
            free_time_percentage=round(free_pct, 2),
            intensity=_intensity(per_day),
        )

    def validate_density(self, metrics: DensityMetrics) -> list[str]:
        """Advisory checks; never blocks generation."""
        warnings: list[str] = []
        cap = self.config.max_activities_per_day
        if self.config.avoid_over_scheduling and metrics.activities_per_day > cap:
            warnings.append(
                f"Schedule has {metrics.activities_per_day:g} activities per day, "
                f"above the limit of {cap}"
            )
        if (
            self.config.include_free_time
            and metrics.free_time_percentage < MIN_FREE_TIME_PERCENTAGE
        ):
            warnings.append(
                f"Only {metrics.free_time_percentage:.0f}% free time left; "
                "consider fewer activities"
            )
        return warnings

    def optimize_activity_density(
        self, destinations: Sequence[Destination], gen_input: GeneratorInput
    ) -> DensityResult:
        """Filter by preferred types, then cap at max-per-day times days.

        Args:
            destinations: Candidate destinations, best first.
            gen_input: Generation input; its trip length sets the cap.

        Returns:
            DensityResult; ``filtered`` keeps the highest-rated destinations.
        """
        days = gen_input.preferences.days
        candidates = list(destinations)
        preferred = self.config.preferred_activity_types
        if preferred:
            candidates = [d for d in candidates if _matches_type(d, preferred)]

        limit = self.config.max_activities_per_day * max(1, days)
        if len(candidates) > limit:
            # sorted() is stable, so equal ratings keep the incoming order
            candidates = sorted(candidates, key=lambda d: -d.rating)[:limit]

        metrics = self.compute_metrics(candidates, days)
        warnings = self.validate_density(metrics)
        if warnings:
            logger.info("density_warnings", extra={"warnings": warnings})

        return DensityResult(filtered=candidates, metrics=metrics, warnings=warnings)
