"""Destination and route catalog using fixture data."""

from collections.abc import Iterable
from datetime import date
from typing import Any, Protocol

from backend.itinerary.geo import haversine_km
from backend.itinerary.models.common import DayTransportMode
from backend.itinerary.models.external import RouteQuote
from backend.itinerary.models.input import Destination


class DestinationCatalog(Protocol):
    """Source of candidate destinations and coarse route quotes."""

    def destinations(self, city: str) -> list[Destination]:
        """Get candidate destinations for a city.

        Args:
            city: City name, matched case-insensitively.

        Returns:
            Destinations located in the city (possibly empty).
        """
        ...

    def route_quote(self, origin: str, destination: str, day: date) -> RouteQuote:
        """Quote a route between two destinations by id.

        Must be idempotent for a given (origin, destination, day).
        """
        ...


# Fixture data for East Java and Jakarta destinations
FIXTURE_DESTINATIONS: list[dict[str, Any]] = [
    {
        "id": "jodipan",
        "name": "Kampung Warna Warni Jodipan",
        "location": "Malang",
        "category": "Cultural",
        "estimated_cost": 10000,
        "duration": 90,
        "coordinates": {"lat": -7.9826, "lng": 112.6373},
        "tags": ["photo", "village", "culture"],
        "rating": 4.5,
        "opening_hours": {"open": "07:00", "close": "17:00"},
    },
    {
        "id": "alun_alun_malang",
        "name": "Alun-Alun Malang",
        "location": "Malang",
        "category": "Park",
        "estimated_cost": 0,
        "duration": 60,
        "coordinates": {"lat": -7.9826, "lng": 112.6308},
        "tags": ["park", "family", "free"],
        "rating": 4.3,
    },
    {
        "id": "museum_angkut",
        "name": "Museum Angkut",
        "location": "Batu",
        "category": "Museum",
        "estimated_cost": 120000,
        "duration": 180,
        "coordinates": {"lat": -7.8789, "lng": 112.5196},
        "tags": ["museum", "history", "family"],
        "rating": 4.8,
        "opening_hours": {"open": "12:00", "close": "20:00"},
    },
    {
        "id": "jatim_park_2",
        "name": "Jatim Park 2",
        "location": "Batu",
        "category": "Theme Park",
        "estimated_cost": 150000,
        "duration": 240,
        "coordinates": {"lat": -7.8848, "lng": 112.5258},
        "tags": ["zoo", "family", "adventure"],
        "rating": 4.7,
        "opening_hours": {"open": "08:30", "close": "16:30"},
    },
    {
        "id": "coban_rondo",
        "name": "Coban Rondo Waterfall",
        "location": "Batu",
        "category": "Nature",
        "estimated_cost": 35000,
        "duration": 120,
        "coordinates": {"lat": -7.8847, "lng": 112.4774},
        "tags": ["nature", "waterfall", "hiking"],
        "rating": 4.6,
        "opening_hours": {"open": "08:00", "close": "16:00"},
    },
    {
        "id": "monas",
        "name": "Monumen Nasional",
        "location": "Jakarta",
        "category": "Landmark",
        "estimated_cost": 20000,
        "duration": 120,
        "coordinates": {"lat": -6.1754, "lng": 106.8272},
        "tags": ["history", "monument", "photo"],
        "rating": 4.6,
        "opening_hours": {"open": "08:00", "close": "16:00"},
    },
    {
        "id": "kota_tua",
        "name": "Kota Tua",
        "location": "Jakarta",
        "category": "Cultural",
        "estimated_cost": 15000,
        "duration": 150,
        "coordinates": {"lat": -6.1352, "lng": 106.8133},
        "tags": ["history", "museum", "culture"],
        "rating": 4.4,
    },
    {
        "id": "ancol",
        "name": "Ancol Dreamland",
        "location": "Jakarta",
        "category": "Beach",
        "estimated_cost": 25000,
        "duration": 180,
        "coordinates": {"lat": -6.1222, "lng": 106.8334},
        "tags": ["beach", "family", "entertainment"],
        "rating": 4.3,
    },
]


class FixtureCatalog:
    """In-memory catalog backed by fixture records."""

    def __init__(self, records: Iterable[dict[str, Any]] | None = None) -> None:
        data = FIXTURE_DESTINATIONS if records is None else list(records)
        self._destinations = [Destination.model_validate(r) for r in data]
        self._by_id = {d.id: d for d in self._destinations}

    def destinations(self, city: str) -> list[Destination]:
        wanted = city.strip().lower()
        return [d for d in self._destinations if d.location.lower() == wanted]

    def all_destinations(self, cities: Iterable[str]) -> list[Destination]:
        """Destinations for several cities, deduplicated by id, in city order."""
        seen: set[str] = set()
        result: list[Destination] = []
        for city in cities:
            for d in self.destinations(city):
                if d.id not in seen:
                    seen.add(d.id)
                    result.append(d)
        return result

    def route_quote(self, origin: str, destination: str, day: date) -> RouteQuote:
        """Quote from straight-line distance; walking under 2 km, transit under 20 km."""
        src = self._by_id.get(origin)
        dst = self._by_id.get(destination)
        if src is None or dst is None:
            raise KeyError(f"Unknown destination in route {origin!r} -> {destination!r}")

        km = 0.0
        if src.coordinates is not None and dst.coordinates is not None:
            km = haversine_km(src.coordinates, dst.coordinates)

        if km <= 2:
            mode, price, minutes = DayTransportMode.walking, 0.0, km * 15
        elif km <= 20:
            mode, price, minutes = DayTransportMode.public, min(50000.0, km * 2000), km * 8
        else:
            mode, price, minutes = DayTransportMode.taxi, km * 8000, km * 6

        return RouteQuote(
            origin=origin,
            destination=destination,
            mode=mode,
            price=round(price, 2),
            duration_minutes=int(round(minutes)),
        )
