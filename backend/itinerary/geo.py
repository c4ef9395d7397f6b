"""Great-circle distance helpers."""

import math
from collections.abc import Sequence

from backend.itinerary.models.common import Coordinates
from backend.itinerary.models.input import Destination


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    """Calculate haversine distance between two points.

    Args:
        a: First coordinate
        b: Second coordinate

    Returns:
        Distance in kilometers
    """
    # Earth radius in km
    R = 6371.0

    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return R * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def route_distance_km(destinations: Sequence[Destination]) -> float:
    """Sum straight-line distances between consecutive stops with coordinates."""
    points = [d.coordinates for d in destinations if d.coordinates is not None]
    return sum(haversine_km(p, q) for p, q in zip(points, points[1:]))
