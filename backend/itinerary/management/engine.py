"""Itinerary management engine: versioned state, updates, eviction and sync.

Updates are applied to a deep copy of the current state and swapped in
under the engine lock, so readers never see a half-applied update. Updates
to the same itinerary are serialized; versions strictly increase.
"""

import logging
import threading
from collections import OrderedDict, defaultdict
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from backend.itinerary.config import Settings
from backend.itinerary.errors import (
    ErrorCode,
    ItineraryError,
    PipelineError,
    StorageExhaustedError,
)
from backend.itinerary.generator.pipeline import ItineraryGenerator, new_itinerary_id
from backend.itinerary.metrics.core import record_update
from backend.itinerary.metrics.registry import MetricsClient
from backend.itinerary.models.common import SyncStatus, ValidationStatus
from backend.itinerary.models.config import GeneratorConfig
from backend.itinerary.models.input import Destination, GeneratorInput
from backend.itinerary.models.output import GeneratorOutput
from backend.itinerary.models.state import (
    INCREMENTAL_UPDATE_TYPES,
    BudgetChangeUpdate,
    DestinationAdd,
    DestinationRef,
    DestinationRemove,
    ItineraryState,
    ItineraryUpdate,
    RegenerateUpdate,
    parse_update,
)
from backend.itinerary.models.storage import PersistedRecord, RecordStatus, StorageHealth
from backend.itinerary.models.sync import SyncMessage, SyncPayload
from backend.itinerary.models.violations import Violation
from backend.itinerary.persistence.manager import PersistenceManager
from backend.itinerary.sync.manager import SyncManager
from backend.itinerary.verify.schema import validate_input
from backend.itinerary.verify.structure import validate_structure

from .cache import DestinationCache
from .updates import apply_update_to_input, input_from_output, recompute_budget_view

logger = logging.getLogger(__name__)

StructureValidator = Callable[..., list[Violation]]


class ManualValidationResult(BaseModel):
    """Outcome of an on-demand validation."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    regenerated: bool = False


class EngineStats(BaseModel):
    """Snapshot of engine bookkeeping."""

    states_in_memory: int
    pending_sync: int
    invalid_states: int
    errored_states: int
    destination_cache_size: int


def state_from_record(record: PersistedRecord) -> ItineraryState:
    """Rebuild a management state from a persisted record."""
    owner = record.owner_id or (record.input.user_id if record.input else "unknown")
    return ItineraryState(
        id=record.id,
        user_id=owner,
        version=max(1, record.version),
        last_modified=record.saved_at,
        itinerary=record.output,
        input=record.input,
        sync_status=SyncStatus(record.sync_status) if record.sync_status else SyncStatus.synced,
        validation_status=(
            ValidationStatus(record.validation_status)
            if record.validation_status
            else ValidationStatus.pending
        ),
        error_log=list(record.error_log),
    )


class ItineraryManagementEngine:
    """Owns in-memory itinerary states and keeps them persisted and in sync."""

    def __init__(
        self,
        generator: ItineraryGenerator,
        persistence: PersistenceManager,
        settings: Settings,
        sync: SyncManager | None = None,
        validator: StructureValidator = validate_structure,
        metrics: MetricsClient | None = None,
    ) -> None:
        self.generator = generator
        self.persistence = persistence
        self.settings = settings
        self.sync = sync
        self.validator = validator
        self.metrics = metrics
        self.cache_timeout = timedelta(seconds=settings.state_cache_timeout_s)
        self.destination_cache = DestinationCache(
            settings.max_destinations_in_memory, settings.state_cache_timeout_s
        )

        self._states: dict[str, ItineraryState] = {}
        self._lock = threading.RLock()
        self._id_locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

        if self.sync is not None:
            self.sync.add_listener(self._on_sync_message)

    # Lifecycle

    def start(self) -> None:
        """Start background cleanup and sync sweeps."""
        if self._threads:
            return
        self._stop.clear()
        jobs = [
            ("itinerary-cleanup", self.settings.cleanup_interval_s, self.evict_stale),
            ("itinerary-sync", self.settings.sync_interval_s, self.sync_pending),
        ]
        for name, interval, job in jobs:
            thread = threading.Thread(
                target=self._run_periodic, args=(interval, job), name=name, daemon=True
            )
            thread.start()
            self._threads.append(thread)
        logger.info("Management engine started")

    def _run_periodic(self, interval: float, job: Callable[[], Any]) -> None:
        while not self._stop.wait(interval):
            try:
                job()
            except ItineraryError as e:
                logger.warning(
                    "Background job failed", extra={"job": job.__name__, "error": str(e)}
                )

    def shutdown(self) -> None:
        """Stop background sweeps and wait for them to exit."""
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout=5)
        self._threads.clear()
        logger.info("Management engine stopped")

    # Internal helpers

    def _lock_for(self, itinerary_id: str) -> threading.Lock:
        with self._lock:
            return self._id_locks[itinerary_id]

    def _swap(self, state: ItineraryState) -> None:
        with self._lock:
            self._states[state.id] = state

    def _persist(self, state: ItineraryState) -> bool:
        """Write a state to storage; failures go to the error log only."""
        if state.itinerary is None:
            return False
        try:
            self.persistence.save(
                state.id,
                state.itinerary,
                owner_id=state.user_id,
                version=state.version,
                input=state.input,
                sync_status=state.sync_status.value,
                validation_status=state.validation_status.value,
                error_log=state.error_log,
            )
        except StorageExhaustedError as e:
            state.log_error(f"Persistence failed: {e}", self.settings.error_log_limit)
            return False
        return True

    def _load_stored(self, itinerary_id: str) -> ItineraryState | None:
        record = self.persistence.load(itinerary_id)
        return state_from_record(record) if record is not None else None

    def _reconcile(self, state: ItineraryState) -> tuple[ItineraryState, bool]:
        """Check the durable copy before writing a new local version.

        Another context may have stored a version at or above ours. The
        conflict is resolved with the sync strategy, or server_wins when
        there is no sync manager, so the stored version never goes down.

        Returns:
            The state to keep and whether it should be written.
        """
        stored = self._load_stored(state.id)
        if stored is None or stored.version < state.version:
            return state, True

        logger.warning(
            "Stored copy is newer than local update",
            extra={
                "itinerary_id": state.id,
                "local_version": state.version,
                "remote_version": stored.version,
            },
        )
        if self.metrics:
            self.metrics.inc_sync_outcome("conflict")
        if self.sync is None:
            stored.sync_status = SyncStatus.synced
            return stored, False

        resolved = self.sync.resolve_conflict(state, stored).resolved_state
        if resolved is None:
            state.sync_status = SyncStatus.conflict
            state.log_error(
                f"Version conflict with stored version {stored.version}",
                self.settings.error_log_limit,
            )
            return state, False
        return resolved, resolved.version > stored.version

    def _commit(self, state: ItineraryState) -> tuple[ItineraryState, bool]:
        """Reconcile, swap in, persist and broadcast a new version.

        Returns:
            The state now held in memory and whether it was persisted.
        """
        state, write = self._reconcile(state)
        self._swap(state)
        if not write:
            return state, False
        persisted = self._persist(state)
        self._broadcast(state)
        return state, persisted

    def _config_for(self, state: ItineraryState):
        return state.input.config if state.input is not None else self.generator.get_config()

    def _cache_destinations(self, destinations: Iterable[Destination]) -> None:
        for dest in destinations:
            self.destination_cache.put(dest)

    def _validate(self, state: ItineraryState) -> list[Violation]:
        if state.itinerary is None:
            return []
        return self.validator(
            state.itinerary.itinerary,
            gen_input=state.input,
            config=self._config_for(state),
            metrics=self.metrics,
        )

    def _adopt_output(
        self, state: ItineraryState, output: GeneratorOutput, gen_input: GeneratorInput
    ) -> None:
        # The plan keeps the state's id across regenerations
        state.itinerary = output.model_copy(update={"itinerary_id": state.id})
        state.input = gen_input
        if not output.success:
            for err in output.errors:
                state.log_error(f"{err.code}: {err.message}", self.settings.error_log_limit)

    def _regenerate(
        self, state: ItineraryState, gen_input: GeneratorInput, use_cache: bool = True
    ) -> None:
        output = self.generator.generate(gen_input, use_cache=use_cache)
        self._adopt_output(state, output, gen_input)

    def _check_and_repair(self, state: ItineraryState) -> bool:
        """Validate; structural violations trigger one regeneration.

        The regeneration bypasses the generation cache. A plan that is still
        structurally broken afterwards is replaced by the fallback plan.

        Returns:
            True if the plan was regenerated.
        """
        violations = self._validate(state)
        regenerated = False
        if any(v.structural for v in violations):
            for v in violations:
                state.log_error(v.describe(), self.settings.error_log_limit)
            base = state.input or (
                input_from_output(state.itinerary, state.user_id) if state.itinerary else None
            )
            if base is not None:
                logger.warning(
                    "Structural violations, regenerating",
                    extra={"itinerary_id": state.id, "violations": len(violations)},
                )
                self._regenerate(state, base, use_cache=False)
                state.version += 1
                state.last_modified = datetime.now(UTC)
                regenerated = True
                if self.metrics:
                    self.metrics.inc_auto_regeneration()
                violations = self._validate(state)
                if any(v.structural for v in violations):
                    logger.error(
                        "Regenerated plan still broken, using fallback plan",
                        extra={"itinerary_id": state.id, "violations": len(violations)},
                    )
                    error = PipelineError(
                        ErrorCode.DATA_MISSING, "Regenerated plan is structurally invalid"
                    )
                    fallback = self.generator.recovery.get_fallback_data(error, base)
                    self._adopt_output(state, fallback, base)
                    violations = self._validate(state)

        blocking = [v for v in violations if v.blocking]
        state.validation_status = ValidationStatus.invalid if blocking else ValidationStatus.valid
        return regenerated

    def _broadcast(self, state: ItineraryState) -> None:
        if self.sync is None:
            return
        result = self.sync.sync_itinerary(state)
        resolution = result.conflict_resolution
        if result.has_conflict and resolution is not None and resolution.resolved_state is not None:
            resolved = resolution.resolved_state
            self._swap(resolved)
            self._persist(resolved)
        elif result.success:
            state.sync_status = SyncStatus.synced

    # Creation

    def create_itinerary(self, gen_input: GeneratorInput | Mapping[str, Any]) -> ItineraryState:
        """Generate a plan and register it at version 1.

        Raises:
            InputValidationError: If the input cannot be repaired.
        """
        output = self.generator.generate(gen_input)
        if isinstance(gen_input, GeneratorInput):
            parsed: GeneratorInput | None = gen_input
        else:
            parsed = validate_input({k: v for k, v in gen_input.items() if k != "config"}).input
        if parsed is not None and output.success:
            parsed = parsed.model_copy(
                update={"config": GeneratorConfig.model_validate(output.metadata.config_used)}
            )

        with self._lock:
            taken = output.itinerary_id in self._states
        if taken or self.persistence.status(output.itinerary_id) is not RecordStatus.unsaved:
            # A cache hit hands back a plan that is already under management
            owner = parsed.user_id if parsed else "unknown"
            output = output.model_copy(update={"itinerary_id": new_itinerary_id(owner)})

        state = ItineraryState(
            id=output.itinerary_id,
            user_id=parsed.user_id if parsed else str(gen_input.get("user_id", "unknown")),
            version=1,
            itinerary=output,
            input=parsed,
        )
        self._register(state)
        return state

    def create_from_generator_output(
        self, output: GeneratorOutput, owner_id: str | None = None
    ) -> ItineraryState:
        """Register an externally generated plan; no input is kept."""
        state = ItineraryState(
            id=output.itinerary_id,
            user_id=owner_id or "unknown",
            version=1,
            itinerary=output,
        )
        self._register(state)
        return state

    def _register(self, state: ItineraryState) -> None:
        with self._lock_for(state.id):
            self._check_and_repair(state)
            if state.input is not None:
                self._cache_destinations(state.input.available_destinations)
            self._swap(state)
            self._persist(state)
            logger.info(
                "Itinerary state created",
                extra={"itinerary_id": state.id, "version": state.version},
            )
            self._broadcast(state)

    # Updates

    def update_itinerary(
        self, itinerary_id: str, update: ItineraryUpdate | Mapping[str, Any]
    ) -> ItineraryState | None:
        """Apply an update and return the new state.

        Args:
            itinerary_id: State to update.
            update: Typed update, or a raw dict parsed by its ``type``.

        Returns:
            The new state, or None if the itinerary is unknown and the
            update carries no snapshot to rebuild it from.
        """
        if isinstance(update, Mapping):
            update = parse_update(dict(update))

        with self._lock_for(itinerary_id):
            with self._lock:
                current = self._states.get(itinerary_id)
            if current is None:
                current = self._load_stored(itinerary_id)
            if current is None and update.snapshot is not None:
                snap = update.snapshot
                current = ItineraryState(
                    id=itinerary_id,
                    user_id=snap.user_id,
                    version=snap.version,
                    itinerary=snap.itinerary,
                    input=snap.input,
                )
                logger.info(
                    "State rebuilt from update snapshot", extra={"itinerary_id": itinerary_id}
                )
            if current is None:
                logger.warning("Update for unknown itinerary", extra={"itinerary_id": itinerary_id})
                return None

            path = "incremental" if update.type in INCREMENTAL_UPDATE_TYPES else "full"
            working = self._apply_with_retry(current, update)
            if working is None:
                failed = current.model_copy(deep=True)
                failed.sync_status = SyncStatus.error
                failed.log_error(
                    f"Update {update.type} failed after retries", self.settings.error_log_limit
                )
                self._swap(failed)
                return failed

            working.version = current.version + 1
            working.sync_status = SyncStatus.pending
            working.last_modified = datetime.now(UTC)
            self._check_and_repair(working)
            working, persisted = self._commit(working)

        record_update(itinerary_id, update.type, path, working.version, persisted)
        if self.metrics:
            self.metrics.inc_update(update.type, path)
        return working

    def _apply_with_retry(
        self, current: ItineraryState, update: ItineraryUpdate
    ) -> ItineraryState | None:
        attempts = max(1, self.settings.max_update_retry_attempts)
        for attempt in range(1, attempts + 1):
            working = current.model_copy(deep=True)
            try:
                self._apply(working, update)
            except (ItineraryError, ValidationError, ValueError) as e:
                logger.error(
                    "Applying update failed",
                    extra={
                        "itinerary_id": current.id,
                        "update_type": update.type,
                        "attempt": attempt,
                        "error": str(e),
                    },
                )
                continue
            return working
        return None

    def _apply(self, state: ItineraryState, update: ItineraryUpdate) -> None:
        if isinstance(update, BudgetChangeUpdate):
            if state.itinerary is None:
                raise ValueError("State has no plan to rebudget")
            new_budget = update.data.budget
            if state.input is not None:
                prefs = state.input.preferences.model_copy(update={"budget": new_budget})
                state.input = state.input.model_copy(update={"preferences": prefs})
            state.itinerary = recompute_budget_view(
                state.itinerary, new_budget, self._config_for(state)
            )
            return

        base = state.input
        if base is None:
            if state.itinerary is None:
                raise ValueError("State has neither input nor plan")
            base = input_from_output(state.itinerary, state.user_id)

        if isinstance(update, RegenerateUpdate):
            self._regenerate(state, base)
            return

        new_input = apply_update_to_input(base, update)
        if isinstance(update, DestinationAdd):
            self.destination_cache.put(update.data)
        if new_input == base and state.itinerary is not None:
            # Nothing changed (e.g. a replayed add); keep the plan
            state.input = base
            return
        self._regenerate(state, new_input)

    def process_batch_updates(
        self, updates: Sequence[tuple[str, ItineraryUpdate | Mapping[str, Any]]]
    ) -> dict[str, list[ItineraryState | None]]:
        """Apply updates grouped by itinerary, each group in submission order."""
        grouped: OrderedDict[str, list[ItineraryUpdate | Mapping[str, Any]]] = OrderedDict()
        for itinerary_id, update in updates:
            grouped.setdefault(itinerary_id, []).append(update)

        results: dict[str, list[ItineraryState | None]] = {}
        for itinerary_id, group in grouped.items():
            results[itinerary_id] = [self.update_itinerary(itinerary_id, u) for u in group]
        return results

    def add_destinations(
        self, itinerary_id: str, destinations: Iterable[Destination]
    ) -> ItineraryState | None:
        state = None
        for dest in destinations:
            state = self.update_itinerary(itinerary_id, DestinationAdd(data=dest))
            if state is None:
                return None
        return state or self.get_itinerary(itinerary_id)

    def remove_destinations(
        self, itinerary_id: str, destination_ids: Iterable[str]
    ) -> ItineraryState | None:
        state = None
        for dest_id in destination_ids:
            state = self.update_itinerary(
                itinerary_id, DestinationRemove(data=DestinationRef(id=dest_id))
            )
            if state is None:
                return None
        return state or self.get_itinerary(itinerary_id)

    # Reads and maintenance

    def get_itinerary(self, itinerary_id: str) -> ItineraryState | None:
        """Get a state from memory or storage, refreshing it once it is stale."""
        with self._lock:
            state = self._states.get(itinerary_id)
        if state is None:
            state = self._load_stored(itinerary_id)
            if state is None:
                return None
            self._swap(state)

        if datetime.now(UTC) - state.last_modified <= self.cache_timeout or state.input is None:
            return state

        with self._lock_for(itinerary_id):
            with self._lock:
                current = self._states.get(itinerary_id, state)
            refreshed = current.model_copy(deep=True)
            self._regenerate(refreshed, current.input)
            refreshed.version = current.version + 1
            refreshed.last_modified = datetime.now(UTC)
            refreshed.sync_status = SyncStatus.pending
            self._check_and_repair(refreshed)
            refreshed, _ = self._commit(refreshed)
            logger.info(
                "Stale itinerary refreshed",
                extra={"itinerary_id": itinerary_id, "version": refreshed.version},
            )
            return refreshed

    def delete_itinerary(self, itinerary_id: str) -> bool:
        """Remove a state from memory and from every storage tier."""
        with self._lock_for(itinerary_id):
            with self._lock:
                existed = self._states.pop(itinerary_id, None) is not None
            self.persistence.delete(itinerary_id)
        return existed

    def evict_stale(self) -> int:
        """Drop in-memory states older than twice the cache timeout.

        Durable copies are kept. An entry modified after the scan survives.
        """
        cutoff = datetime.now(UTC) - 2 * self.cache_timeout
        with self._lock:
            candidates = [
                (s.id, s.version, s.last_modified)
                for s in self._states.values()
                if s.last_modified < cutoff
            ]

        evicted = 0
        for itinerary_id, version, modified in candidates:
            with self._lock:
                current = self._states.get(itinerary_id)
                if (
                    current is not None
                    and current.version == version
                    and current.last_modified == modified
                ):
                    del self._states[itinerary_id]
                    evicted += 1

        if evicted:
            logger.info("Evicted stale states", extra={"count": evicted})
            if self.metrics:
                self.metrics.inc_eviction(evicted)
        return evicted

    def sync_pending(self) -> dict[str, str]:
        """Sync every pending state; returns the outcome per itinerary."""
        if self.sync is None:
            return {}
        with self._lock:
            pending = [s for s in self._states.values() if s.sync_status is SyncStatus.pending]

        outcomes: dict[str, str] = {}
        for state in pending:
            with self._lock_for(state.id):
                with self._lock:
                    current = self._states.get(state.id)
                if current is None or current.sync_status is not SyncStatus.pending:
                    continue
                working = current.model_copy(deep=True)
                result = self.sync.sync_itinerary(working)
                resolution = result.conflict_resolution
                if result.has_conflict:
                    outcomes[state.id] = "conflict"
                    if resolution is not None and resolution.resolved_state is not None:
                        working = resolution.resolved_state
                        self._persist(working)
                    else:
                        working.sync_status = SyncStatus.conflict
                elif result.success:
                    outcomes[state.id] = "synced"
                    working.sync_status = SyncStatus.synced
                elif result.queued:
                    outcomes[state.id] = "queued"
                    continue
                else:
                    outcomes[state.id] = "error"
                    working.sync_status = SyncStatus.error
                    working.log_error(f"Sync failed: {result.error}", self.settings.error_log_limit)
                self._swap(working)
        return outcomes

    def validate_itinerary_manually(self, itinerary_id: str) -> ManualValidationResult:
        """Validate a state now, regenerating it on structural violations."""
        state = self.get_itinerary(itinerary_id)
        if state is None:
            return ManualValidationResult(is_valid=False, errors=["Itinerary not found"])

        with self._lock_for(itinerary_id):
            working = state.model_copy(deep=True)
            errors = [v.describe() for v in self._validate(working) if v.blocking]
            regenerated = self._check_and_repair(working)
            if regenerated:
                working.sync_status = SyncStatus.pending
                working, _ = self._commit(working)
            else:
                self._swap(working)

        return ManualValidationResult(
            is_valid=working.validation_status is ValidationStatus.valid,
            errors=errors,
            regenerated=regenerated,
        )

    def recover_itinerary_with_backup(self, itinerary_id: str) -> ItineraryState | None:
        """Replace the in-memory state with the durable copy, if one exists."""
        with self._lock_for(itinerary_id):
            state = self._load_stored(itinerary_id)
            if state is None:
                logger.warning("No backup to recover from", extra={"itinerary_id": itinerary_id})
                return None
            self._swap(state)
        logger.info(
            "Itinerary recovered from storage",
            extra={"itinerary_id": itinerary_id, "version": state.version},
        )
        return state

    def handle_cross_context_update(
        self, itinerary_id: str, payload: SyncPayload
    ) -> ItineraryState | None:
        """Adopt the stored copy when another context reports a newer version.

        Returns:
            The adopted state, or None if the local state was already current.
        """
        with self._lock_for(itinerary_id):
            with self._lock:
                local = self._states.get(itinerary_id)
            local_version = local.version if local is not None else 0
            if payload.version <= local_version:
                return None
            stored = self._load_stored(itinerary_id)
            if stored is None or stored.version <= local_version:
                return None
            stored.sync_status = SyncStatus.synced
            self._swap(stored)
        logger.info(
            "Adopted newer version from another context",
            extra={"itinerary_id": itinerary_id, "version": stored.version},
        )
        return stored

    def _on_sync_message(self, message: SyncMessage) -> None:
        self.handle_cross_context_update(message.itinerary_id, message.data)

    def get_stats(self) -> EngineStats:
        with self._lock:
            states = list(self._states.values())
        return EngineStats(
            states_in_memory=len(states),
            pending_sync=sum(1 for s in states if s.sync_status is SyncStatus.pending),
            invalid_states=sum(
                1 for s in states if s.validation_status is ValidationStatus.invalid
            ),
            errored_states=sum(1 for s in states if s.sync_status is SyncStatus.error),
            destination_cache_size=len(self.destination_cache),
        )

    def get_persistence_health(self) -> StorageHealth:
        return self.persistence.get_health_status()
