"""Multi-tier persistence of generated itineraries.

Tiers are chosen by capability from an ordered backend list:

- ``database`` mode: primary is the structured tier
- ``localStorage`` mode: primary is the persistent key-value tier
- ``hybrid`` mode: structured primary plus a persistent secondary copy

With backups enabled the session tier receives a ``backup_`` copy on every
save. A save succeeds if any tier stored the record; only when all tiers
fail is ``StorageExhaustedError`` raised.
"""

import logging
import threading
import time
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import ValidationError

from backend.itinerary.config import Settings
from backend.itinerary.errors import StorageError, StorageExhaustedError
from backend.itinerary.metrics.core import record_storage_op
from backend.itinerary.metrics.registry import MetricsClient
from backend.itinerary.models.common import StorageMode
from backend.itinerary.models.config import PersistenceConfig
from backend.itinerary.models.input import GeneratorInput
from backend.itinerary.models.output import GeneratorOutput
from backend.itinerary.models.storage import (
    PersistedRecord,
    RecordStatus,
    StorageHealth,
    TierHealth,
    is_valid_payload,
)

from .backends import OWNER_INDEX, PERSISTENT, SESSION, STRUCTURED, StorageBackend

logger = logging.getLogger(__name__)

MAX_PRIMARY_ATTEMPTS = 3

_PREFERRED_CAPABILITY: dict[StorageMode, str] = {
    StorageMode.database: STRUCTURED,
    StorageMode.local_storage: PERSISTENT,
    StorageMode.hybrid: STRUCTURED,
}


def _find(backends: Sequence[StorageBackend], capability: str) -> StorageBackend | None:
    for backend in backends:
        if capability in backend.capabilities:
            return backend
    return None


class PersistenceManager:
    """Saves, loads and deletes itinerary records across storage tiers."""

    def __init__(
        self,
        backends: Sequence[StorageBackend],
        config: PersistenceConfig,
        settings: Settings,
        sleep: Callable[[float], None] = time.sleep,
        metrics: MetricsClient | None = None,
    ) -> None:
        if not backends:
            raise ValueError("At least one storage backend is required")
        self.backends = list(backends)
        self.config = config
        self.settings = settings
        self.metrics = metrics
        self._sleep = sleep
        self._status: dict[str, RecordStatus] = {}
        self._lock = threading.Lock()

        session_backend = _find(self.backends, SESSION)
        self.backup = session_backend if config.backup_enabled else None

        primary = _find(self.backends, _PREFERRED_CAPABILITY[config.primary_storage])
        if primary is None:
            # Fall through to the next registered tier, keeping the session tier for backups
            durable = [b for b in self.backends if b is not session_backend]
            primary = durable[0] if durable else self.backends[0]
        self.primary: StorageBackend = primary

        self.secondary: StorageBackend | None = None
        if config.primary_storage is StorageMode.hybrid:
            candidate = _find(self.backends, PERSISTENT)
            if candidate is not None and candidate is not self.primary:
                self.secondary = candidate

        if self.backup is self.primary:
            self.backup = None

        logger.info(
            "Persistence tiers selected",
            extra={
                "mode": config.primary_storage.value,
                "primary": self.primary.tier.value,
                "secondary": self.secondary.tier.value if self.secondary else None,
                "backup": self.backup.tier.value if self.backup else None,
            },
        )

    def record_key(self, itinerary_id: str) -> str:
        return f"{self.settings.storage_key_prefix}{itinerary_id}"

    def backup_key(self, itinerary_id: str) -> str:
        return f"{self.settings.backup_key_prefix}{self.record_key(itinerary_id)}"

    def status(self, itinerary_id: str) -> RecordStatus:
        """Current persistence state of a record."""
        with self._lock:
            return self._status.get(itinerary_id, RecordStatus.unsaved)

    def _set_status(self, itinerary_id: str, status: RecordStatus) -> None:
        with self._lock:
            self._status[itinerary_id] = status

    def _put(
        self,
        backend: StorageBackend,
        key: str,
        payload: dict[str, Any],
        owner_id: str | None,
        version: int,
        attempt: int = 1,
    ) -> str | None:
        """Write once; returns an error string on failure."""
        start = time.perf_counter()
        try:
            backend.put(key, payload, owner_id=owner_id, version=version)
        except StorageError as e:
            latency_ms = int((time.perf_counter() - start) * 1000)
            record_storage_op(backend.tier.value, "put", False, attempt, latency_ms)
            if self.metrics:
                self.metrics.inc_storage_op(backend.tier.value, "error")
            logger.warning(
                "Storage write failed",
                extra={"tier": backend.tier.value, "key": key, "attempt": attempt, "error": str(e)},
            )
            return str(e)
        latency_ms = int((time.perf_counter() - start) * 1000)
        record_storage_op(backend.tier.value, "put", True, attempt, latency_ms)
        if self.metrics:
            self.metrics.inc_storage_op(backend.tier.value, "ok")
        return None

    def save(
        self,
        itinerary_id: str,
        output: GeneratorOutput,
        owner_id: str | None = None,
        version: int = 0,
        input: GeneratorInput | None = None,
        sync_status: str | None = None,
        validation_status: str | None = None,
        error_log: list[str] | None = None,
    ) -> PersistedRecord:
        """Persist a record to every configured tier.

        Args:
            itinerary_id: Record id.
            output: Generated plan.
            owner_id: Owner used for the owner index.
            version: State version; 0 for plans not yet under management.
            input: Input that produced the plan, kept for regeneration.
            sync_status: Management sync status to carry along.
            validation_status: Management validation status to carry along.
            error_log: Management error log to carry along.

        Returns:
            The persisted record.

        Raises:
            StorageExhaustedError: If no tier stored the record.
        """
        record = PersistedRecord(
            id=itinerary_id,
            owner_id=owner_id,
            version=version,
            output=output,
            input=input,
            sync_status=sync_status,
            validation_status=validation_status,
            error_log=list(error_log or []),
        )
        payload = record.to_payload()
        key = self.record_key(itinerary_id)
        failures: dict[str, str] = {}
        self._set_status(itinerary_id, RecordStatus.saving)

        attempts = max(1, min(self.config.max_retries, MAX_PRIMARY_ATTEMPTS))
        primary_ok = False
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                self._set_status(itinerary_id, RecordStatus.retrying)
                self._sleep(float(attempt - 1))
            error = self._put(self.primary, key, payload, owner_id, version, attempt)
            if error is None:
                primary_ok = True
                break
            failures[self.primary.tier.value] = error

        others_ok = False
        if self.secondary is not None:
            error = self._put(self.secondary, key, payload, owner_id, version)
            if error is None:
                others_ok = True
            else:
                failures[self.secondary.tier.value] = error

        if self.backup is not None:
            error = self._put(self.backup, self.backup_key(itinerary_id), payload, owner_id, version)
            if error is None:
                others_ok = True
            else:
                failures[self.backup.tier.value] = error

        if primary_ok:
            self._set_status(itinerary_id, RecordStatus.saved)
            logger.info(
                "Itinerary persisted",
                extra={"itinerary_id": itinerary_id, "tier": self.primary.tier.value, "version": version},
            )
            return record

        if others_ok:
            self._set_status(itinerary_id, RecordStatus.saved)
            logger.warning(
                "Primary storage failed, record kept in fallback tier",
                extra={"itinerary_id": itinerary_id, "failures": failures},
            )
            return record

        self._set_status(itinerary_id, RecordStatus.failed)
        logger.error(
            "All storage tiers failed",
            extra={"itinerary_id": itinerary_id, "failures": failures},
        )
        raise StorageExhaustedError(itinerary_id, failures)

    def _read_order(self, itinerary_id: str) -> list[tuple[StorageBackend, str]]:
        order = [(self.primary, self.record_key(itinerary_id))]
        if self.secondary is not None:
            order.append((self.secondary, self.record_key(itinerary_id)))
        if self.backup is not None:
            order.append((self.backup, self.backup_key(itinerary_id)))
        return order

    def load(self, itinerary_id: str) -> PersistedRecord | None:
        """Load a record from the first tier holding a valid copy.

        Tiers that error or hold malformed data are skipped.
        """
        for backend, key in self._read_order(itinerary_id):
            try:
                payload = backend.get(key)
            except StorageError as e:
                logger.warning(
                    "Storage read failed, trying next tier",
                    extra={"tier": backend.tier.value, "key": key, "error": str(e)},
                )
                continue
            if payload is None:
                continue
            if not is_valid_payload(payload):
                logger.warning(
                    "Discarding malformed record", extra={"tier": backend.tier.value, "key": key}
                )
                continue
            try:
                return PersistedRecord.model_validate(payload)
            except ValidationError as e:
                logger.warning(
                    "Discarding record that fails schema validation",
                    extra={"tier": backend.tier.value, "key": key, "errors": e.error_count()},
                )
        return None

    def delete(self, itinerary_id: str) -> None:
        """Remove a record, including backups, from every tier."""
        keys = (self.record_key(itinerary_id), self.backup_key(itinerary_id))
        for backend in self.backends:
            for key in keys:
                try:
                    backend.delete(key)
                except StorageError as e:
                    logger.warning(
                        "Storage delete failed",
                        extra={"tier": backend.tier.value, "key": key, "error": str(e)},
                    )
        with self._lock:
            self._status.pop(itinerary_id, None)
        logger.info("Itinerary deleted from storage", extra={"itinerary_id": itinerary_id})

    def list_itineraries(self) -> list[str]:
        """Ids stored in the first reachable tier."""
        prefix = self.settings.storage_key_prefix
        backup_prefix = f"{self.settings.backup_key_prefix}{prefix}"
        candidates: list[tuple[StorageBackend, str]] = [(self.primary, prefix)]
        if self.secondary is not None:
            candidates.append((self.secondary, prefix))
        if self.backup is not None:
            candidates.append((self.backup, backup_prefix))

        for backend, key_prefix in candidates:
            try:
                keys = backend.keys(key_prefix)
            except StorageError as e:
                logger.warning(
                    "Storage listing failed, trying next tier",
                    extra={"tier": backend.tier.value, "error": str(e)},
                )
                continue
            return [k[len(key_prefix) :] for k in keys]
        return []

    def list_by_owner(self, owner_id: str) -> list[str]:
        """Ids owned by ``owner_id``, using the owner index when registered."""
        indexed = _find(self.backends, OWNER_INDEX)
        prefix = self.settings.storage_key_prefix
        keys_for_owner = getattr(indexed, "keys_for_owner", None)
        if keys_for_owner is not None:
            try:
                return [k[len(prefix) :] for k in keys_for_owner(owner_id) if k.startswith(prefix)]
            except StorageError as e:
                logger.warning(
                    "Owner index lookup failed, scanning records",
                    extra={"tier": indexed.tier.value, "error": str(e)},
                )

        owned = []
        for itinerary_id in self.list_itineraries():
            record = self.load(itinerary_id)
            if record is not None and record.owner_id == owner_id:
                owned.append(itinerary_id)
        return owned

    def get_health_status(self) -> StorageHealth:
        """Probe every tier; independent of whatever data is stored."""
        tiers = {backend.tier.value: backend.health() for backend in self.backends}

        primary_up = tiers[self.primary.tier.value]
        secondary_up = self.secondary is not None and tiers[self.secondary.tier.value]
        if primary_up:
            primary_health = TierHealth.healthy
        elif secondary_up:
            primary_health = TierHealth.degraded
        else:
            primary_health = TierHealth.failed

        if not self.config.backup_enabled:
            backup_health = TierHealth.degraded
        elif self.backup is None:
            backup_health = TierHealth.failed
        else:
            backup_health = TierHealth.healthy if tiers[self.backup.tier.value] else TierHealth.failed

        return StorageHealth(
            primary_storage=primary_health,
            backup_storage=backup_health,
            primary_tier=self.primary.tier,
            secondary_tier=self.secondary.tier if self.secondary else None,
            backup_tier=self.backup.tier if self.backup else None,
            tiers=tiers,
        )
