"""Violation models for plan verification."""

from typing import Any

from pydantic import BaseModel, Field

from .common import ViolationKind

STRUCTURAL_KINDS = frozenset(
    {
        ViolationKind.empty_itinerary,
        ViolationKind.missing_destinations,
        ViolationKind.inconsistent_day_structure,
        ViolationKind.invalid_destination_data,
    }
)


class Violation(BaseModel):
    """A defect found in a generated plan."""

    kind: ViolationKind = Field(description="Type of violation")
    node_ref: str = Field(description="Reference to the violating node")
    details: dict[str, Any] = Field(description="Additional violation details")
    blocking: bool = Field(description="Whether this violation invalidates the plan")

    @property
    def structural(self) -> bool:
        return self.kind in STRUCTURAL_KINDS

    def describe(self) -> str:
        """Human readable one-liner, e.g. for a state's error log."""
        label = self.kind.value.replace("_", " ")
        message = self.details.get("message")
        return f"{label} at {self.node_ref}: {message}" if message else f"{label} at {self.node_ref}"
