"""Cross-context synchronization of itinerary versions.

Only the version tuple travels over the channel; receivers reload the
plan from durable storage when they need it.
"""

import logging
import threading
import uuid
from collections import OrderedDict
from collections.abc import Callable
from datetime import UTC, datetime

import redis

from backend.itinerary.errors import ItineraryError
from backend.itinerary.metrics.registry import MetricsClient
from backend.itinerary.models.common import SyncStatus
from backend.itinerary.models.state import ItineraryState
from backend.itinerary.models.sync import (
    ConflictResolution,
    ConflictStrategy,
    SyncConfig,
    SyncMessage,
    SyncPayload,
    SyncResult,
    SyncStatusReport,
)

from .channel import Channel

logger = logging.getLogger(__name__)

StateLoader = Callable[[str], ItineraryState | None]
SyncListener = Callable[[SyncMessage], None]


class SyncManager:
    """Broadcasts local versions and resolves version conflicts."""

    def __init__(
        self,
        channel: Channel,
        config: SyncConfig | None = None,
        state_loader: StateLoader | None = None,
        context_id: str | None = None,
        metrics: MetricsClient | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            channel: Broadcast transport shared with other contexts.
            config: Sync policy.
            state_loader: Reads the durable copy of a state, used to detect
                that another context has already moved ahead.
            context_id: Identity of this context; messages it sent are ignored.
            metrics: Optional metrics client.
        """
        self.channel = channel
        self.config = config or SyncConfig()
        self.context_id = context_id or uuid.uuid4().hex
        self.metrics = metrics
        self._state_loader = state_loader
        self._online = True
        self._visible = True
        self._queue: OrderedDict[str, ItineraryState] = OrderedDict()
        self._last_sync: dict[str, datetime] = {}
        self._listeners: list[SyncListener] = []
        self._lock = threading.Lock()

        if self.config.enable_cross_context_sync:
            self.channel.subscribe(self._on_message)

    def add_listener(self, listener: SyncListener) -> None:
        """Register a callback for updates from other contexts."""
        with self._lock:
            self._listeners.append(listener)

    def _outcome(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.inc_sync_outcome(outcome)

    def sync_itinerary(self, state: ItineraryState) -> SyncResult:
        """Publish a state's version, or queue it while this context is inactive.

        Returns:
            SyncResult; ``has_conflict`` is set when the durable copy was newer.
        """
        with self._lock:
            active = self._online and self._visible
        if not active:
            self.queue_sync(state)
            self._outcome("queued")
            return SyncResult(success=False, queued=True)

        try:
            stored = self._state_loader(state.id) if self._state_loader else None
            if stored is not None and stored.version > state.version:
                resolution = self.resolve_conflict(state, stored)
                logger.warning(
                    "Sync conflict",
                    extra={
                        "itinerary_id": state.id,
                        "local_version": state.version,
                        "remote_version": stored.version,
                        "strategy": resolution.strategy.value,
                    },
                )
                self._outcome("conflict")
                return SyncResult(
                    success=resolution.resolved_state is not None,
                    has_conflict=True,
                    conflict_resolution=resolution,
                )

            if self.config.enable_cross_context_sync:
                self.channel.publish(
                    SyncMessage(
                        itinerary_id=state.id,
                        sender_id=self.context_id,
                        data=SyncPayload(
                            version=state.version,
                            last_modified=state.last_modified,
                            sync_status=SyncStatus.synced,
                        ),
                    )
                )
        except (ItineraryError, redis.RedisError, OSError) as e:
            logger.warning(
                "Sync failed", extra={"itinerary_id": state.id, "error": str(e)}
            )
            self._outcome("error")
            return SyncResult(success=False, error=str(e))

        with self._lock:
            self._last_sync[state.id] = datetime.now(UTC)
            self._queue.pop(state.id, None)
        self._outcome("synced")
        return SyncResult(success=True, synced_version=state.version)

    def resolve_conflict(
        self, local: ItineraryState, remote: ItineraryState
    ) -> ConflictResolution:
        """Resolve a version conflict with the configured strategy.

        ``client_wins`` produces a version above the remote one so the local
        state can overwrite it; ``manual`` leaves the choice to the caller.
        """
        strategy = self.config.conflict_resolution_strategy
        if strategy is ConflictStrategy.server_wins:
            resolved = remote.model_copy(deep=True, update={"sync_status": SyncStatus.synced})
        elif strategy is ConflictStrategy.client_wins:
            resolved = local.model_copy(
                deep=True,
                update={
                    "version": remote.version + 1,
                    "sync_status": SyncStatus.synced,
                    "last_modified": datetime.now(UTC),
                },
            )
        else:
            resolved = None
        return ConflictResolution(
            strategy=strategy,
            resolved_state=resolved,
            local_version=local,
            remote_version=remote,
        )

    def queue_sync(self, state: ItineraryState) -> None:
        """Hold a state until the context is online and visible; latest wins."""
        with self._lock:
            self._queue[state.id] = state
            self._queue.move_to_end(state.id)

    def set_online(self, online: bool) -> None:
        with self._lock:
            self._online = online
        if online:
            self._flush_if_active()

    def set_visible(self, visible: bool) -> None:
        with self._lock:
            self._visible = visible
        if visible:
            self._flush_if_active()

    def _flush_if_active(self) -> None:
        with self._lock:
            active = self._online and self._visible
        if active:
            self.force_sync_all()

    def force_sync_all(self) -> dict[str, SyncResult]:
        """Sync every queued state now."""
        with self._lock:
            pending = list(self._queue.values())
        return {state.id: self.sync_itinerary(state) for state in pending}

    def get_sync_status(self, itinerary_id: str) -> SyncStatusReport:
        with self._lock:
            last = self._last_sync.get(itinerary_id)
            return SyncStatusReport(
                last_sync=last,
                is_queued=itinerary_id in self._queue,
                seconds_since_last_sync=(
                    (datetime.now(UTC) - last).total_seconds() if last else None
                ),
                is_online=self._online,
                is_visible=self._visible,
            )

    def _on_message(self, message: SyncMessage) -> None:
        if message.sender_id == self.context_id:
            return
        with self._lock:
            self._last_sync[message.itinerary_id] = message.data.last_modified
            listeners = list(self._listeners)
        logger.info(
            "Received sync message",
            extra={"itinerary_id": message.itinerary_id, "version": message.data.version},
        )
        for listener in listeners:
            try:
                listener(message)
            except ItineraryError as e:
                logger.warning(
                    "Sync listener failed",
                    extra={"itinerary_id": message.itinerary_id, "error": str(e)},
                )

    def destroy(self) -> None:
        """Close the channel and drop queued work."""
        self.channel.close()
        with self._lock:
            self._queue.clear()
            self._listeners.clear()
