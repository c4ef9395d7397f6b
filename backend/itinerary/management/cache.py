"""Bounded LRU cache of destinations with a TTL."""

import threading
from collections import OrderedDict
from datetime import UTC, datetime, timedelta

from backend.itinerary.models.input import Destination


class DestinationCache:
    """LRU cache; the least recently used entry goes first when full."""

    def __init__(self, capacity: int, ttl_seconds: float) -> None:
        self.capacity = max(1, capacity)
        self.ttl = timedelta(seconds=ttl_seconds)
        self._store: OrderedDict[str, tuple[Destination, datetime]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, destination_id: str) -> Destination | None:
        with self._lock:
            entry = self._store.get(destination_id)
            if entry is None:
                return None
            value, expires_at = entry
            if datetime.now(UTC) > expires_at:
                del self._store[destination_id]
                return None
            self._store.move_to_end(destination_id)
            return value

    def put(self, destination: Destination) -> None:
        with self._lock:
            self._store[destination.id] = (destination, datetime.now(UTC) + self.ttl)
            self._store.move_to_end(destination.id)
            while len(self._store) > self.capacity:
                self._store.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
