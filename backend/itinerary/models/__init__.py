"""Convenient imports for all model types."""

# Common types and enums
from .common import (
    AccommodationType,
    AllocationStrategy,
    Coordinates,
    DayTransportMode,
    IntensityLevel,
    Level,
    MealType,
    StorageMode,
    SyncStatus,
    TransportMode,
    UpdateSource,
    ValidationStatus,
    ViolationKind,
    format_hhmm,
    parse_hhmm,
)

# Configuration
from .config import (
    ActivityDensityConfig,
    CostDistributionConfig,
    DayStructureConfig,
    GeneratorConfig,
    MealConfig,
    MealTiming,
    MealWindow,
    PerformanceConfig,
    PersistenceConfig,
    TransportationConfig,
)

# External boundary
from .external import Recommendation, RouteQuote

# Input models
from .input import (
    Destination,
    GeneratorInput,
    OpeningHours,
    Preferences,
    TravelConstraints,
)

# Output models
from .output import (
    BudgetBreakdown,
    CategoryAllocation,
    CostOptimization,
    CostVariability,
    DayPlan,
    DayTransportation,
    FreeTimeSlot,
    GenerationMetadata,
    GeneratorOutput,
    Itinerary,
    ItinerarySummary,
    Meal,
    MLInsights,
    OptimizationMetrics,
    OutputError,
    OutputWarning,
    ScheduledDestination,
    TimeSlot,
)

# State and updates
from .state import (
    INCREMENTAL_UPDATE_TYPES,
    BudgetChangeUpdate,
    DateChangeUpdate,
    DestinationAdd,
    DestinationRemove,
    DestinationUpdate,
    ItineraryState,
    ItineraryUpdate,
    PreferenceUpdate,
    RegenerateUpdate,
    StateSnapshot,
    parse_update,
)

# Storage
from .storage import (
    PersistedRecord,
    RecordStatus,
    StorageHealth,
    StorageTier,
    TierHealth,
)

# Sync
from .sync import (
    ConflictResolution,
    ConflictStrategy,
    SyncConfig,
    SyncMessage,
    SyncPayload,
    SyncResult,
    SyncStatusReport,
)

# Verification
from .violations import STRUCTURAL_KINDS, Violation

__all__ = [
    "AccommodationType",
    "ActivityDensityConfig",
    "AllocationStrategy",
    "BudgetBreakdown",
    "BudgetChangeUpdate",
    "CategoryAllocation",
    "ConflictResolution",
    "ConflictStrategy",
    "Coordinates",
    "CostDistributionConfig",
    "CostOptimization",
    "CostVariability",
    "DateChangeUpdate",
    "DayPlan",
    "DayStructureConfig",
    "DayTransportMode",
    "DayTransportation",
    "Destination",
    "DestinationAdd",
    "DestinationRemove",
    "DestinationUpdate",
    "FreeTimeSlot",
    "GenerationMetadata",
    "GeneratorConfig",
    "GeneratorInput",
    "GeneratorOutput",
    "INCREMENTAL_UPDATE_TYPES",
    "IntensityLevel",
    "Itinerary",
    "ItineraryState",
    "ItinerarySummary",
    "ItineraryUpdate",
    "Level",
    "MLInsights",
    "Meal",
    "MealConfig",
    "MealTiming",
    "MealType",
    "MealWindow",
    "OpeningHours",
    "OptimizationMetrics",
    "OutputError",
    "OutputWarning",
    "PerformanceConfig",
    "PersistedRecord",
    "PersistenceConfig",
    "PreferenceUpdate",
    "Preferences",
    "Recommendation",
    "RecordStatus",
    "RegenerateUpdate",
    "RouteQuote",
    "STRUCTURAL_KINDS",
    "ScheduledDestination",
    "StateSnapshot",
    "StorageHealth",
    "StorageMode",
    "StorageTier",
    "SyncConfig",
    "SyncMessage",
    "SyncPayload",
    "SyncResult",
    "SyncStatus",
    "SyncStatusReport",
    "TierHealth",
    "TimeSlot",
    "TransportMode",
    "TransportationConfig",
    "TravelConstraints",
    "UpdateSource",
    "ValidationStatus",
    "Violation",
    "ViolationKind",
    "format_hhmm",
    "parse_hhmm",
    "parse_update",
]
