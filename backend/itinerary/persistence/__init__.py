"""Persistence package: ORM, storage backends and the tiered manager."""

from .backends import (
    DatabaseBackend,
    InMemoryKeyValueStore,
    KeyValueBackend,
    KeyValueStore,
    RedisKeyValueStore,
    StorageBackend,
)
from .db import Base, get_engine, get_session, get_session_factory
from .manager import PersistenceManager
from .models import ItineraryRecord

__all__ = [
    "Base",
    "DatabaseBackend",
    "InMemoryKeyValueStore",
    "ItineraryRecord",
    "KeyValueBackend",
    "KeyValueStore",
    "PersistenceManager",
    "RedisKeyValueStore",
    "StorageBackend",
    "get_engine",
    "get_session",
    "get_session_factory",
]
