"""Common data types and enums used across the itinerary pipeline."""

from __future__ import annotations

import hashlib
import json
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

HHMM_PATTERN = r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$"
_HHMM_RE = re.compile(HHMM_PATTERN)


class Coordinates(BaseModel):
    """Geographic coordinates in WGS84 decimal degrees."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90, le=90, description="Latitude in decimal degrees")
    lng: float = Field(ge=-180, le=180, description="Longitude in decimal degrees")


class AccommodationType(str, Enum):
    """Accommodation tiers."""

    budget = "budget"
    moderate = "moderate"
    luxury = "luxury"


class AllocationStrategy(str, Enum):
    """Per-day budget allocation strategies."""

    equal = "equal"
    front_loaded = "front-loaded"
    back_loaded = "back-loaded"
    peak_day = "peak-day"


class IntensityLevel(str, Enum):
    """Desired activity intensity."""

    relaxed = "relaxed"
    moderate = "moderate"
    intense = "intense"


class TransportMode(str, Enum):
    """Transport modes a traveler may allow."""

    walking = "walking"
    public = "public"
    taxi = "taxi"
    rental = "rental"
    private = "private"


class DayTransportMode(str, Enum):
    """Transport mode selected for a day."""

    walking = "walking"
    public = "public"
    taxi = "taxi"
    rental_car = "rental_car"


class StorageMode(str, Enum):
    """Primary storage mode for persisted itineraries."""

    local_storage = "localStorage"
    database = "database"
    hybrid = "hybrid"


class MealType(str, Enum):
    """Meal types."""

    breakfast = "breakfast"
    lunch = "lunch"
    dinner = "dinner"
    snack = "snack"


class Level(str, Enum):
    """Three-step level used for crowds, impact and severity."""

    low = "low"
    medium = "medium"
    high = "high"


class SyncStatus(str, Enum):
    """Synchronization status of an itinerary state."""

    synced = "synced"
    pending = "pending"
    conflict = "conflict"
    error = "error"


class ValidationStatus(str, Enum):
    """Validation status of an itinerary state."""

    valid = "valid"
    invalid = "invalid"
    pending = "pending"


class UpdateSource(str, Enum):
    """Origin of an itinerary update."""

    user = "user"
    sync = "sync"
    auto = "auto"


class ViolationKind(str, Enum):
    """Types of plan violations."""

    empty_itinerary = "empty_itinerary"
    missing_destinations = "missing_destinations"
    inconsistent_day_structure = "inconsistent_day_structure"
    invalid_destination_data = "invalid_destination_data"
    schedule_overflow = "schedule_overflow"
    budget_exceeded = "budget_exceeded"


def parse_hhmm(value: str) -> int:
    """Convert an ``HH:MM`` string to minutes past midnight.

    Raises:
        ValueError: If the string is not a valid 24h time.
    """
    if not _HHMM_RE.match(value):
        raise ValueError(f"Invalid time format: {value!r}")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def format_hhmm(minutes: int) -> str:
    """Format minutes past midnight as ``HH:MM``."""
    minutes = max(0, min(int(minutes), 23 * 60 + 59))
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def fingerprint(payload: dict[str, Any]) -> str:
    """Compute a deterministic SHA256 fingerprint of a JSON-able payload."""
    sorted_json = json.dumps(payload, sort_keys=True, ensure_ascii=True, default=str)
    return hashlib.sha256(sorted_json.encode("utf-8")).hexdigest()
