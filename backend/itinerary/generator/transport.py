"""Transportation mode selection per day.

The decision is a first-match rule list, not a cost-minimizing search:

1. walking     if allowed and total distance <= max walking distance
2. public      if allowed and budget priority is set
3. walking     if allowed and eco priority is set
4. taxi        if allowed
5. rental car  otherwise
"""

from collections.abc import Sequence
from dataclasses import dataclass

from backend.itinerary.geo import route_distance_km
from backend.itinerary.models.common import DayTransportMode, TransportMode
from backend.itinerary.models.config import TransportationConfig
from backend.itinerary.models.input import Destination
from backend.itinerary.models.output import DayTransportation

PUBLIC_FARE_CAP = 50000


@dataclass(frozen=True)
class ModeRate:
    """Fixed per-mode tariff."""

    cost_per_km: float
    minutes_per_km: float
    flat_cost: float | None = None
    eco_friendly: bool = False

    def cost(self, km: float) -> float:
        if self.flat_cost is not None:
            return self.flat_cost
        return km * self.cost_per_km

    def minutes(self, km: float) -> int:
        return int(round(km * self.minutes_per_km))


MODE_RATES: dict[DayTransportMode, ModeRate] = {
    DayTransportMode.walking: ModeRate(cost_per_km=0, minutes_per_km=15, eco_friendly=True),
    DayTransportMode.public: ModeRate(cost_per_km=2000, minutes_per_km=8, eco_friendly=True),
    DayTransportMode.taxi: ModeRate(cost_per_km=8000, minutes_per_km=6),
    DayTransportMode.rental_car: ModeRate(cost_per_km=0, minutes_per_km=4, flat_cost=200000),
}


class TransportationModeSelector:
    """Picks one transport mode for a day's destination cluster."""

    def __init__(self, config: TransportationConfig) -> None:
        self.config = config

    def select_mode(self, distance_km: float) -> DayTransportMode:
        """Apply the rule list; first match wins."""
        allowed = set(self.config.preferred_modes)

        if TransportMode.walking in allowed and distance_km <= self.config.max_walking_distance:
            return DayTransportMode.walking
        if TransportMode.public in allowed and self.config.budget_priority:
            return DayTransportMode.public
        if TransportMode.walking in allowed and self.config.eco_friendly:
            return DayTransportMode.walking
        if TransportMode.taxi in allowed:
            return DayTransportMode.taxi
        return DayTransportMode.rental_car

    def plan_day(self, destinations: Sequence[Destination]) -> DayTransportation:
        """Select transport for one day and price it."""
        distance = route_distance_km(destinations)
        mode = self.select_mode(distance)
        rate = MODE_RATES[mode]

        cost = rate.cost(distance)
        if mode is DayTransportMode.public:
            cost = min(PUBLIC_FARE_CAP, cost)

        return DayTransportation(
            mode=mode,
            estimated_cost=round(cost, 2),
            duration=rate.minutes(distance),
            route=f"Day transportation ({distance:.1f} km)",
            distance_km=round(distance, 3),
            eco_friendly=rate.eco_friendly,
        )
