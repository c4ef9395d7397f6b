"""Generation input models."""

from __future__ import annotations

from datetime import date as Date

from pydantic import BaseModel, Field, field_validator

from .common import HHMM_PATTERN, AccommodationType, Coordinates
from .config import GeneratorConfig


class OpeningHours(BaseModel):
    """Opening hours of a destination."""

    open: str = Field(pattern=HHMM_PATTERN, description="Opening time (HH:MM)")
    close: str = Field(pattern=HHMM_PATTERN, description="Closing time (HH:MM)")


class Destination(BaseModel):
    """A candidate destination supplied by the catalog."""

    id: str = Field(min_length=1, description="Stable destination identifier")
    name: str = Field(min_length=1, description="Display name")
    location: str = Field(description="City or area")
    category: str = Field(description="Destination category")
    estimated_cost: float = Field(ge=0, description="Cost per visit")
    duration: int = Field(gt=0, description="Visit duration in minutes")
    coordinates: Coordinates | None = Field(default=None)
    tags: list[str] = Field(default_factory=list)
    rating: float = Field(ge=0, le=5, description="Average rating 0-5")
    opening_hours: OpeningHours | None = Field(default=None)
    best_time_to_visit: str | None = Field(default=None)


class TravelConstraints(BaseModel):
    """Optional scheduling and crowding constraints."""

    max_daily_travel_time: int | None = Field(default=None, ge=0)
    preferred_start_time: str | None = Field(default=None, pattern=HHMM_PATTERN)
    preferred_end_time: str | None = Field(default=None, pattern=HHMM_PATTERN)
    must_visit: list[str] = Field(default_factory=list, description="Destination ids")
    avoid_crowds: bool = Field(default=False)
    accessibility_required: bool = Field(default=False)


class Preferences(BaseModel):
    """Traveler preferences."""

    budget: float = Field(gt=0, description="Total trip budget")
    days: int = Field(ge=1, le=30)
    travelers: int = Field(ge=1, le=20)
    accommodation_type: AccommodationType = Field(default=AccommodationType.moderate)
    cities: list[str] = Field(default_factory=list)
    interests: list[str] = Field(default_factory=list)
    themes: list[str] = Field(default_factory=list)
    preferred_spots: list[str] = Field(default_factory=list)
    start_date: Date = Field(description="First day of the trip")
    constraints: TravelConstraints | None = Field(default=None)

    @property
    def must_visit(self) -> set[str]:
        if self.constraints is None:
            return set()
        return set(self.constraints.must_visit)


class GeneratorInput(BaseModel):
    """Everything needed for one generation call."""

    user_id: str = Field(min_length=1)
    session_id: str = Field(min_length=1)
    preferences: Preferences
    available_destinations: list[Destination] = Field(default_factory=list)
    config: GeneratorConfig = Field(default_factory=GeneratorConfig)

    @field_validator("user_id", "session_id")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject whitespace-only identifiers."""
        if not v.strip():
            raise ValueError("must not be blank")
        return v
