"""Shared builders for itinerary tests."""

from typing import Any

from backend.itinerary.config import Settings
from backend.itinerary.generator.recovery import ErrorRecoveryManager
from backend.itinerary.models.input import Destination, GeneratorInput
from backend.itinerary.models.output import GeneratorOutput


class SleepRecorder:
    """Stands in for time.sleep; records requested delays without blocking."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_destination(dest_id: str, **overrides: Any) -> dict[str, Any]:
    """Raw destination dict with sensible defaults."""
    record = {
        "id": dest_id,
        "name": dest_id.replace("_", " ").title(),
        "location": "Batu",
        "category": "Nature",
        "estimated_cost": 50000,
        "duration": 120,
        "tags": [],
        "rating": 4.5,
    }
    record.update(overrides)
    return record


def destination(dest_id: str, **overrides: Any) -> Destination:
    return Destination.model_validate(make_destination(dest_id, **overrides))


SAMPLE_DESTINATIONS: list[dict[str, Any]] = [
    make_destination(
        "museum_angkut",
        name="Museum Angkut",
        category="Museum",
        estimated_cost=120000,
        duration=180,
        coordinates={"lat": -7.8789, "lng": 112.5196},
        tags=["museum", "history", "family"],
        rating=4.8,
    ),
    make_destination(
        "jatim_park_2",
        name="Jatim Park 2",
        category="Theme Park",
        estimated_cost=150000,
        duration=240,
        coordinates={"lat": -7.8848, "lng": 112.5258},
        tags=["zoo", "family", "adventure"],
        rating=4.7,
    ),
    make_destination(
        "coban_rondo",
        name="Coban Rondo Waterfall",
        category="Nature",
        estimated_cost=35000,
        duration=120,
        coordinates={"lat": -7.8847, "lng": 112.4774},
        tags=["nature", "waterfall", "hiking"],
        rating=4.6,
    ),
]


def make_raw_input(**preference_overrides: Any) -> dict[str, Any]:
    """Raw three-day Malang/Batu generation input."""
    preferences = {
        "budget": 2_000_000,
        "days": 3,
        "travelers": 2,
        "accommodation_type": "moderate",
        "cities": ["Malang", "Batu"],
        "interests": ["nature", "museum"],
        "start_date": "2026-07-10",
    }
    preferences.update(preference_overrides)
    return {
        "user_id": "user_123",
        "session_id": "session_abc",
        "preferences": preferences,
        "available_destinations": [dict(d) for d in SAMPLE_DESTINATIONS],
    }


def make_input(
    destinations: list[Destination] | None = None, **preference_overrides: Any
) -> GeneratorInput:
    """Parsed input; ``destinations`` replaces the sample pool when given."""
    raw = make_raw_input(**preference_overrides)
    if destinations is not None:
        raw["available_destinations"] = [d.model_dump() for d in destinations]
    return GeneratorInput.model_validate(raw)


def make_output(gen_input: GeneratorInput | None = None) -> GeneratorOutput:
    """A small, structurally sound plan without running the generator."""
    recovery = ErrorRecoveryManager(Settings(), sleep=SleepRecorder())
    return recovery.get_fallback_data(RuntimeError("seed"), gen_input or make_input())
