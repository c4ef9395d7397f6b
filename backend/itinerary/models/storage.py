"""Persistence record and storage health models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .input import GeneratorInput
from .output import GeneratorOutput

RECORD_FORMAT_VERSION = "1.0"


class StorageTier(str, Enum):
    """Storage tiers in their default priority order."""

    database = "database"
    local = "local"
    session = "session"


class RecordStatus(str, Enum):
    """Per-record persistence state machine."""

    unsaved = "unsaved"
    saving = "saving"
    retrying = "retrying"
    saved = "saved"
    failed = "failed"


class TierHealth(str, Enum):
    healthy = "healthy"
    degraded = "degraded"
    failed = "failed"


class PersistedRecord(BaseModel):
    """What is written to every storage tier for one itinerary."""

    id: str = Field(min_length=1)
    owner_id: str | None = Field(default=None)
    version: int = Field(default=0, ge=0, description="State version; 0 before management")
    saved_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    format_version: str = Field(default=RECORD_FORMAT_VERSION)
    output: GeneratorOutput
    input: GeneratorInput | None = Field(default=None)
    sync_status: str | None = Field(default=None)
    validation_status: str | None = Field(default=None)
    error_log: list[str] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def is_valid_payload(payload: Any) -> bool:
    """Accept only records that carry an id and a non-empty plan."""
    if not isinstance(payload, dict) or not payload.get("id"):
        return False
    output = payload.get("output")
    if not isinstance(output, dict):
        return False
    itinerary = output.get("itinerary")
    return isinstance(itinerary, dict) and bool(itinerary.get("days"))


class StorageHealth(BaseModel):
    """Liveness of each storage tier, independent of stored data."""

    primary_storage: TierHealth
    backup_storage: TierHealth
    primary_tier: StorageTier | None
    secondary_tier: StorageTier | None = None
    backup_tier: StorageTier | None = None
    tiers: dict[str, bool] = Field(
        default_factory=dict, description="Probe result per registered tier"
    )
