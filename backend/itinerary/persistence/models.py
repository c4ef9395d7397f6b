"""Itinerary record ORM model."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


class ItineraryRecord(Base):
    """Itinerary table - one row per persisted record key."""

    __tablename__ = "itinerary_record"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    owner_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    saved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (Index("idx_itinerary_record_owner", "owner_id", "saved_at"),)

    def __repr__(self) -> str:
        return f"<ItineraryRecord(key={self.key}, owner_id={self.owner_id}, version={self.version})>"
