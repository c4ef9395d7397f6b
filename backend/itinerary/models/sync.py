"""Cross-context synchronization models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from .common import SyncStatus
from .state import ItineraryState


class ConflictStrategy(str, Enum):
    """How a version conflict is resolved."""

    server_wins = "server_wins"
    client_wins = "client_wins"
    manual = "manual"


class SyncConfig(BaseModel):
    """Sync manager policy."""

    enable_cross_context_sync: bool = Field(default=True)
    conflict_resolution_strategy: ConflictStrategy = Field(
        default=ConflictStrategy.server_wins
    )
    sync_interval_ms: int = Field(default=30_000, ge=1000)
    max_retries: int = Field(default=3, ge=0)


class SyncPayload(BaseModel):
    """Version tuple broadcast after a local mutation. Never carries the plan."""

    version: int = Field(ge=1)
    last_modified: datetime
    sync_status: SyncStatus


class SyncMessage(BaseModel):
    """Envelope published on the cross-context channel."""

    type: Literal["itinerary_update"] = "itinerary_update"
    itinerary_id: str
    sender_id: str
    data: SyncPayload


class ConflictResolution(BaseModel):
    """Outcome of resolving a version conflict."""

    strategy: ConflictStrategy
    resolved_state: ItineraryState | None = Field(
        default=None, description="None when the caller must decide (manual)"
    )
    local_version: ItineraryState | None = None
    remote_version: ItineraryState | None = None


class SyncResult(BaseModel):
    """Result of one sync attempt."""

    success: bool
    has_conflict: bool = False
    queued: bool = False
    conflict_resolution: ConflictResolution | None = None
    error: str | None = None
    synced_version: int | None = None


class SyncStatusReport(BaseModel):
    """Per-itinerary sync bookkeeping."""

    last_sync: datetime | None
    is_queued: bool
    seconds_since_last_sync: float | None
    is_online: bool
    is_visible: bool
