"""Management-layer state and update models."""

from __future__ import annotations

from datetime import UTC, datetime
from datetime import date as Date
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from .common import (
    AccommodationType,
    Coordinates,
    SyncStatus,
    UpdateSource,
    ValidationStatus,
)
from .input import Destination, GeneratorInput, OpeningHours
from .output import GeneratorOutput


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ItineraryState(BaseModel):
    """Versioned, owned plan held by the management engine."""

    id: str = Field(min_length=1)
    user_id: str
    version: int = Field(ge=1, description="Strictly increases on every accepted update")
    last_modified: datetime = Field(default_factory=_utcnow)
    itinerary: GeneratorOutput | None = Field(default=None)
    input: GeneratorInput | None = Field(
        default=None, description="Input that produced the plan, if known"
    )
    sync_status: SyncStatus = Field(default=SyncStatus.pending)
    validation_status: ValidationStatus = Field(default=ValidationStatus.pending)
    error_log: list[str] = Field(default_factory=list)

    def log_error(self, message: str, limit: int = 50) -> None:
        """Append to the error log, dropping the oldest entries past ``limit``."""
        self.error_log.append(message)
        if len(self.error_log) > limit:
            del self.error_log[: len(self.error_log) - limit]


class StateSnapshot(BaseModel):
    """Full-plan payload that lets a lost state be rebuilt from an update."""

    user_id: str = Field(default="unknown")
    version: int = Field(default=1, ge=1)
    itinerary: GeneratorOutput
    input: GeneratorInput | None = Field(default=None)


class DestinationRef(BaseModel):
    id: str = Field(min_length=1)


class DestinationPatch(BaseModel):
    """Partial destination; only set fields are applied."""

    id: str = Field(min_length=1)
    name: str | None = None
    location: str | None = None
    category: str | None = None
    estimated_cost: float | None = Field(default=None, ge=0)
    duration: int | None = Field(default=None, gt=0)
    coordinates: Coordinates | None = None
    tags: list[str] | None = None
    rating: float | None = Field(default=None, ge=0, le=5)
    opening_hours: OpeningHours | None = None
    best_time_to_visit: str | None = None


class BudgetChange(BaseModel):
    budget: float = Field(gt=0)


class DateChange(BaseModel):
    start_date: Date | None = None
    days: int | None = Field(default=None, ge=1, le=30)


class PreferencePatch(BaseModel):
    """Preference fields to overwrite; unset fields keep their value."""

    accommodation_type: AccommodationType | None = None
    travelers: int | None = Field(default=None, ge=1, le=20)
    cities: list[str] | None = None
    interests: list[str] | None = None
    themes: list[str] | None = None
    preferred_spots: list[str] | None = None
    constraints: dict[str, Any] | None = None


class _UpdateBase(BaseModel):
    timestamp: datetime = Field(default_factory=_utcnow)
    source: UpdateSource = Field(default=UpdateSource.user)
    snapshot: StateSnapshot | None = Field(
        default=None, description="Full plan, used when the state must be rebuilt"
    )


class DestinationAdd(_UpdateBase):
    type: Literal["destination_add"] = "destination_add"
    data: Destination


class DestinationRemove(_UpdateBase):
    type: Literal["destination_remove"] = "destination_remove"
    data: DestinationRef


class DestinationUpdate(_UpdateBase):
    type: Literal["destination_update"] = "destination_update"
    data: DestinationPatch


class BudgetChangeUpdate(_UpdateBase):
    type: Literal["budget_change"] = "budget_change"
    data: BudgetChange


class DateChangeUpdate(_UpdateBase):
    type: Literal["date_change"] = "date_change"
    data: DateChange


class PreferenceUpdate(_UpdateBase):
    type: Literal["preference_update"] = "preference_update"
    data: PreferencePatch


class RegenerateUpdate(_UpdateBase):
    """Forces a full regeneration from the stored input."""

    type: Literal["regenerate"] = "regenerate"
    data: dict[str, Any] = Field(default_factory=dict)


ItineraryUpdate = Annotated[
    Union[
        DestinationAdd,
        DestinationRemove,
        DestinationUpdate,
        BudgetChangeUpdate,
        DateChangeUpdate,
        PreferenceUpdate,
        RegenerateUpdate,
    ],
    Field(discriminator="type"),
]

INCREMENTAL_UPDATE_TYPES = frozenset(
    {
        "destination_add",
        "destination_remove",
        "destination_update",
        "budget_change",
        "date_change",
        "preference_update",
    }
)

update_adapter: TypeAdapter[ItineraryUpdate] = TypeAdapter(ItineraryUpdate)


def parse_update(raw: dict[str, Any]) -> ItineraryUpdate:
    """Parse a raw update dict into its typed variant."""
    return update_adapter.validate_python(raw)
