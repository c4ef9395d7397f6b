"""Storage backends with a uniform put/get/delete/keys/health interface.

Each backend is tagged with its tier and a set of capabilities; the
persistence manager picks tiers by capability, not by concrete type.
"""

import json
import logging
import threading
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any, Protocol

import redis
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from backend.itinerary.errors import StorageError
from backend.itinerary.models.storage import StorageTier

from .db import get_session
from .models import ItineraryRecord

logger = logging.getLogger(__name__)

# Capability tags
STRUCTURED = "structured"
OWNER_INDEX = "owner_index"
PERSISTENT = "persistent"
SESSION = "session"

STAGING_SUFFIX = ".staging"
HEALTH_PROBE_PREFIX = "__health_probe_"


class StorageBackend(Protocol):
    """One storage tier."""

    tier: StorageTier
    capabilities: frozenset[str]

    def put(
        self,
        key: str,
        payload: dict[str, Any],
        owner_id: str | None = None,
        version: int = 0,
    ) -> None:
        """Write a record, replacing any previous value.

        Raises:
            StorageError: If the tier could not store the record.
        """
        ...

    def get(self, key: str) -> dict[str, Any] | None:
        """Read a record; ``None`` if absent.

        Raises:
            StorageError: If the tier could not be read.
        """
        ...

    def delete(self, key: str) -> None:
        """Remove a record if present."""
        ...

    def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with ``prefix``."""
        ...

    def health(self) -> bool:
        """Probe the tier with a throwaway write, read and delete."""
        ...


def probe(backend: StorageBackend) -> bool:
    """Round-trip a throwaway record through a backend."""
    key = f"{HEALTH_PROBE_PREFIX}{uuid.uuid4().hex}"
    marker = {"probe": key}
    try:
        backend.put(key, marker)
        ok = backend.get(key) == marker
        backend.delete(key)
    except StorageError as e:
        logger.warning("Storage health probe failed", extra={"tier": backend.tier.value, "error": str(e)})
        return False
    return ok


class DatabaseBackend:
    """Structured tier backed by SQLAlchemy, with an owner index."""

    tier = StorageTier.database
    capabilities = frozenset({STRUCTURED, OWNER_INDEX})

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def put(
        self,
        key: str,
        payload: dict[str, Any],
        owner_id: str | None = None,
        version: int = 0,
    ) -> None:
        try:
            with get_session(self._session_factory) as session:
                row = session.get(ItineraryRecord, key)
                if row is None:
                    session.add(
                        ItineraryRecord(
                            key=key, owner_id=owner_id, version=version, payload=payload
                        )
                    )
                else:
                    row.owner_id = owner_id
                    row.version = version
                    row.payload = payload
                    row.saved_at = datetime.now(UTC)
        except SQLAlchemyError as e:
            raise StorageError(self.tier.value, f"put {key} failed: {e}") from e

    def get(self, key: str) -> dict[str, Any] | None:
        try:
            with get_session(self._session_factory) as session:
                row = session.get(ItineraryRecord, key)
                return dict(row.payload) if row is not None else None
        except SQLAlchemyError as e:
            raise StorageError(self.tier.value, f"get {key} failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            with get_session(self._session_factory) as session:
                row = session.get(ItineraryRecord, key)
                if row is not None:
                    session.delete(row)
        except SQLAlchemyError as e:
            raise StorageError(self.tier.value, f"delete {key} failed: {e}") from e

    def keys(self, prefix: str = "") -> list[str]:
        try:
            with get_session(self._session_factory) as session:
                stmt = select(ItineraryRecord.key).where(ItineraryRecord.key.startswith(prefix))
                return [k for k in session.scalars(stmt) if not k.startswith(HEALTH_PROBE_PREFIX)]
        except SQLAlchemyError as e:
            raise StorageError(self.tier.value, f"keys failed: {e}") from e

    def keys_for_owner(self, owner_id: str) -> list[str]:
        """Keys of records owned by ``owner_id``, newest first."""
        try:
            with get_session(self._session_factory) as session:
                stmt = (
                    select(ItineraryRecord.key)
                    .where(ItineraryRecord.owner_id == owner_id)
                    .order_by(ItineraryRecord.saved_at.desc())
                )
                return list(session.scalars(stmt))
        except SQLAlchemyError as e:
            raise StorageError(self.tier.value, f"owner lookup failed: {e}") from e

    def health(self) -> bool:
        return probe(self)


class KeyValueStore(Protocol):
    """Minimal string key-value store."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def rename(self, src: str, dst: str) -> None:
        """Atomically move ``src`` onto ``dst``, replacing it."""
        ...

    def scan(self, prefix: str) -> Iterable[str]: ...


class RedisKeyValueStore:
    """KeyValueStore over a redis connection."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        return cls(redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> str | None:
        return self._client.get(key)

    def set(self, key: str, value: str) -> None:
        self._client.set(key, value)

    def delete(self, key: str) -> None:
        self._client.delete(key)

    def rename(self, src: str, dst: str) -> None:
        self._client.rename(src, dst)

    def scan(self, prefix: str) -> Iterable[str]:
        return self._client.scan_iter(match=f"{prefix}*")


class InMemoryKeyValueStore:
    """Process-local KeyValueStore with a lock; used for the session tier."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def rename(self, src: str, dst: str) -> None:
        with self._lock:
            if src not in self._data:
                raise KeyError(src)
            self._data[dst] = self._data.pop(src)

    def scan(self, prefix: str) -> Iterable[str]:
        with self._lock:
            return [k for k in self._data if k.startswith(prefix)]


class KeyValueBackend:
    """Flat key-value tier with two-phase (staging then rename) writes."""

    def __init__(
        self,
        store: KeyValueStore,
        tier: StorageTier = StorageTier.local,
    ) -> None:
        self.store = store
        self.tier = tier
        self.capabilities = frozenset(
            {SESSION} if tier is StorageTier.session else {PERSISTENT}
        )

    def _fail(self, op: str, key: str, exc: Exception) -> StorageError:
        return StorageError(self.tier.value, f"{op} {key} failed: {exc}")

    def put(
        self,
        key: str,
        payload: dict[str, Any],
        owner_id: str | None = None,
        version: int = 0,
    ) -> None:
        staging = f"{key}{STAGING_SUFFIX}"
        try:
            self.store.set(staging, json.dumps(payload))
            self.store.rename(staging, key)
        except (redis.RedisError, OSError, KeyError, TypeError, ValueError) as e:
            raise self._fail("put", key, e) from e

    def get(self, key: str) -> dict[str, Any] | None:
        try:
            raw = self.store.get(key)
        except (redis.RedisError, OSError) as e:
            raise self._fail("get", key, e) from e
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except ValueError as e:
            raise self._fail("decode", key, e) from e
        return value if isinstance(value, dict) else None

    def delete(self, key: str) -> None:
        try:
            self.store.delete(key)
        except (redis.RedisError, OSError) as e:
            raise self._fail("delete", key, e) from e

    def keys(self, prefix: str = "") -> list[str]:
        try:
            found = list(self.store.scan(prefix))
        except (redis.RedisError, OSError) as e:
            raise self._fail("scan", prefix, e) from e
        return sorted(
            k
            for k in found
            if not k.endswith(STAGING_SUFFIX) and not k.startswith(HEALTH_PROBE_PREFIX)
        )

    def health(self) -> bool:
        return probe(self)
