"""Boundary types for external collaborators (catalog, recommendation oracle)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .common import DayTransportMode

RECOMMENDATION_SCHEMA_VERSION = 1


class Recommendation(BaseModel):
    """Score for one catalog item from the recommendation oracle.

    This is the only shape the scheduler and cost engines ever see from an
    oracle; anything else an oracle knows stays behind the adapter.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Destination id this score refers to")
    score: float = Field(ge=0, le=1, description="Relevance score")
    confidence: float = Field(ge=0, le=1, description="Oracle confidence")
    predicted_rating: float = Field(ge=0, le=5, description="Predicted rating 0-5")
    version: int = Field(default=RECOMMENDATION_SCHEMA_VERSION)


class RouteQuote(BaseModel):
    """Coarse price and duration between two named points."""

    model_config = ConfigDict(frozen=True)

    origin: str
    destination: str
    mode: DayTransportMode
    price: float = Field(ge=0)
    duration_minutes: int = Field(ge=0)
