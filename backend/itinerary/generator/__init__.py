"""Itinerary generation stages and the pipeline that runs them."""

from .config_manager import (
    ConfigValidationResult,
    default_config,
    merge_configs,
    validate_and_normalize_config,
    validate_config,
)
from .costs import CostDistribution, CostDistributionEngine
from .density import ActivityDensityManager, DensityMetrics, DensityResult
from .meals import MealPlanningEngine
from .pipeline import GenerationCache, ItineraryGenerator, new_itinerary_id, split_into_days
from .recovery import ErrorRecoveryManager, RecoveryContext, classify
from .scheduler import DaySchedule, DayStructureScheduler, PlacedDestination
from .transport import TransportationModeSelector

__all__ = [
    "ActivityDensityManager",
    "ConfigValidationResult",
    "CostDistribution",
    "CostDistributionEngine",
    "DaySchedule",
    "DayStructureScheduler",
    "DensityMetrics",
    "DensityResult",
    "ErrorRecoveryManager",
    "GenerationCache",
    "ItineraryGenerator",
    "MealPlanningEngine",
    "PlacedDestination",
    "RecoveryContext",
    "TransportationModeSelector",
    "classify",
    "default_config",
    "merge_configs",
    "new_itinerary_id",
    "split_into_days",
    "validate_and_normalize_config",
    "validate_config",
]
