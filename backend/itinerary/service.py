"""Service entry points wiring generation, persistence, management and sync."""

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any, Literal

from pydantic import BaseModel, Field

from backend.itinerary.adapters.catalog import FixtureCatalog
from backend.itinerary.adapters.oracle import HeuristicOracle, RecommendationOracle
from backend.itinerary.config import Settings, get_settings
from backend.itinerary.generator.pipeline import ItineraryGenerator
from backend.itinerary.management.engine import ItineraryManagementEngine, state_from_record
from backend.itinerary.metrics.registry import MetricsClient
from backend.itinerary.models.config import GeneratorConfig
from backend.itinerary.models.input import GeneratorInput
from backend.itinerary.models.output import GeneratorOutput
from backend.itinerary.models.state import ItineraryState, ItineraryUpdate
from backend.itinerary.models.storage import StorageHealth, StorageTier, TierHealth
from backend.itinerary.models.sync import SyncConfig
from backend.itinerary.persistence.backends import (
    DatabaseBackend,
    InMemoryKeyValueStore,
    KeyValueBackend,
    KeyValueStore,
    RedisKeyValueStore,
)
from backend.itinerary.persistence.db import Base, get_engine, get_session_factory
from backend.itinerary.persistence.manager import PersistenceManager
from backend.itinerary.sync.channel import Channel, RedisChannel
from backend.itinerary.sync.manager import SyncManager

logger = logging.getLogger(__name__)

CheckStatus = Literal["ok", "down"]


class HealthStatus(BaseModel):
    """Service health: overall status plus per-tier checks."""

    status: Literal["ok", "degraded", "down"]
    checks: dict[str, CheckStatus] = Field(default_factory=dict)
    storage: StorageHealth


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


class ItineraryService:
    """Facade over one fully wired set of components.

    Each service owns its stores, channel and background timers, so several
    services can run side by side in one process.
    """

    def __init__(
        self,
        settings: Settings,
        generator: ItineraryGenerator,
        persistence: PersistenceManager,
        engine: ItineraryManagementEngine,
        sync: SyncManager,
        catalog: FixtureCatalog | None = None,
    ) -> None:
        self.settings = settings
        self.generator = generator
        self.persistence = persistence
        self.engine = engine
        self.sync = sync
        self.catalog = catalog

    def _with_catalog(
        self, gen_input: GeneratorInput | Mapping[str, Any]
    ) -> GeneratorInput | Mapping[str, Any]:
        """Fill an empty destination pool from the catalog for the requested cities."""
        if self.catalog is None:
            return gen_input
        if isinstance(gen_input, GeneratorInput):
            if gen_input.available_destinations:
                return gen_input
            pool = self.catalog.all_destinations(gen_input.preferences.cities)
            return gen_input.model_copy(update={"available_destinations": pool})

        if gen_input.get("available_destinations"):
            return gen_input
        prefs = gen_input.get("preferences")
        cities = prefs.get("cities", []) if isinstance(prefs, Mapping) else []
        pool = self.catalog.all_destinations(c for c in cities if isinstance(c, str))
        enriched = dict(gen_input)
        enriched["available_destinations"] = [d.model_dump(mode="json") for d in pool]
        return enriched

    def generate(self, gen_input: GeneratorInput | Mapping[str, Any]) -> GeneratorOutput:
        """Generate a plan and put it under management at version 1.

        Raises:
            InputValidationError: If the input cannot be repaired.
        """
        state = self.engine.create_itinerary(self._with_catalog(gen_input))
        return state.itinerary

    def update(
        self, itinerary_id: str, update: ItineraryUpdate | Mapping[str, Any]
    ) -> ItineraryState | None:
        return self.engine.update_itinerary(itinerary_id, update)

    def get_itinerary(self, itinerary_id: str) -> ItineraryState | None:
        return self.engine.get_itinerary(itinerary_id)

    def get_health(self) -> HealthStatus:
        """Probe every storage tier and summarize."""
        storage = self.persistence.get_health_status()
        checks: dict[str, CheckStatus] = {
            tier: "ok" if up else "down" for tier, up in storage.tiers.items()
        }
        if storage.primary_storage is TierHealth.failed:
            status: Literal["ok", "degraded", "down"] = "down"
        elif all(c == "ok" for c in checks.values()) and (
            storage.primary_storage is TierHealth.healthy
        ):
            status = "ok"
        else:
            status = "degraded"
        return HealthStatus(status=status, checks=checks, storage=storage)

    def start(self) -> None:
        self.engine.start()

    def shutdown(self) -> None:
        """Stop timers, close the channel and the build pool."""
        self.engine.shutdown()
        self.sync.destroy()
        self.generator.close()
        logger.info("Itinerary service stopped")


def create_service(
    settings: Settings | None = None,
    *,
    config: GeneratorConfig | Mapping[str, Any] | None = None,
    kv_store: KeyValueStore | None = None,
    session_store: KeyValueStore | None = None,
    channel: Channel | None = None,
    oracle: RecommendationOracle | None = None,
    catalog: FixtureCatalog | None = None,
    sync_config: SyncConfig | None = None,
    metrics: MetricsClient | None = None,
    sleep: Callable[[float], None] = time.sleep,
    context_id: str | None = None,
) -> ItineraryService:
    """Build a service with its own stores and channel.

    Args:
        settings: Deployment settings; defaults to the process settings.
        config: Generation policy overrides merged onto the defaults.
        kv_store: Persistent key-value store; defaults to redis at ``redis_url``.
        session_store: Session key-value store; defaults to process memory.
        channel: Sync channel; defaults to redis pub/sub on ``sync_channel_name``.
        oracle: Recommendation oracle; defaults to HeuristicOracle.
        catalog: Catalog used to fill an empty destination pool.
        sync_config: Sync policy; defaults follow the persistence config.
        metrics: Optional metrics client shared by all components.
        sleep: Backoff sleeper, injected so tests never block.
        context_id: Identity of this service on the sync channel.

    Raises:
        ConfigValidationError: If ``config`` is invalid.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    db_engine = get_engine(settings)
    Base.metadata.create_all(db_engine)
    backends = [
        DatabaseBackend(get_session_factory(db_engine)),
        KeyValueBackend(
            kv_store or RedisKeyValueStore.from_url(settings.redis_url), StorageTier.local
        ),
        KeyValueBackend(session_store or InMemoryKeyValueStore(), StorageTier.session),
    ]

    generator = ItineraryGenerator(
        settings, oracle or HeuristicOracle(), config=config, metrics=metrics, sleep=sleep
    )
    persistence_config = generator.get_config().persistence
    persistence = PersistenceManager(
        backends, persistence_config, settings, sleep=sleep, metrics=metrics
    )

    def load_state(itinerary_id: str) -> ItineraryState | None:
        record = persistence.load(itinerary_id)
        return state_from_record(record) if record is not None else None

    sync = SyncManager(
        channel or RedisChannel.from_url(settings.redis_url, settings.sync_channel_name),
        config=sync_config
        or SyncConfig(
            sync_interval_ms=persistence_config.sync_interval_ms,
            max_retries=persistence_config.max_retries,
        ),
        state_loader=load_state,
        context_id=context_id,
        metrics=metrics,
    )
    engine = ItineraryManagementEngine(
        generator, persistence, settings, sync=sync, metrics=metrics
    )

    logger.info(
        "Itinerary service created",
        extra={"context_id": sync.context_id, "primary": persistence.primary.tier.value},
    )
    return ItineraryService(settings, generator, persistence, engine, sync, catalog)
