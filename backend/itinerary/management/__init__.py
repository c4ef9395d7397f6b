"""Itinerary state management: versioned updates over generated plans."""

from .cache import DestinationCache
from .engine import (
    EngineStats,
    ItineraryManagementEngine,
    ManualValidationResult,
    state_from_record,
)
from .updates import (
    apply_update_to_input,
    input_from_output,
    plan_destinations,
    recompute_budget_view,
)

__all__ = [
    "DestinationCache",
    "EngineStats",
    "ItineraryManagementEngine",
    "ManualValidationResult",
    "apply_update_to_input",
    "input_from_output",
    "plan_destinations",
    "recompute_budget_view",
    "state_from_record",
]
