"""Pytest configuration and fixtures for testing."""

from typing import Any

import pytest

from backend.itinerary.adapters.oracle import HeuristicOracle
from backend.itinerary.config import Settings
from backend.itinerary.generator.pipeline import ItineraryGenerator
from backend.itinerary.management.engine import ItineraryManagementEngine
from backend.itinerary.models.common import StorageMode
from backend.itinerary.models.config import PersistenceConfig
from backend.itinerary.models.input import GeneratorInput
from backend.itinerary.models.storage import StorageTier
from backend.itinerary.persistence.backends import (
    DatabaseBackend,
    InMemoryKeyValueStore,
    KeyValueBackend,
)
from backend.itinerary.persistence.db import Base, get_engine, get_session_factory
from backend.itinerary.persistence.manager import PersistenceManager
from backend.itinerary.sync.channel import InMemoryBroadcastHub
from tests.itinerary_test_helpers import SleepRecorder, make_raw_input


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment, backed by in-memory SQLite."""
    return Settings(
        database_url="sqlite:///:memory:",
        recovery_max_attempts=3,
        max_update_retry_attempts=2,
        error_log_limit=5,
    )


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def raw_input() -> dict[str, Any]:
    return make_raw_input()


@pytest.fixture
def sample_input() -> GeneratorInput:
    return GeneratorInput.model_validate(make_raw_input())


@pytest.fixture(scope="function")
def test_db_engine(settings: Settings):
    """Create a test database engine with in-memory SQLite."""
    engine = get_engine(settings)

    # Create all tables
    Base.metadata.create_all(engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    return get_session_factory(test_db_engine)


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def session_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def hub() -> InMemoryBroadcastHub:
    return InMemoryBroadcastHub()


@pytest.fixture
def backends(session_factory, kv_store, session_store):
    """Database, persistent key-value and session tiers, in priority order."""
    return [
        DatabaseBackend(session_factory),
        KeyValueBackend(kv_store, StorageTier.local),
        KeyValueBackend(session_store, StorageTier.session),
    ]


@pytest.fixture
def persistence(backends, settings, sleeper) -> PersistenceManager:
    return PersistenceManager(
        backends,
        PersistenceConfig(primary_storage=StorageMode.local_storage),
        settings,
        sleep=sleeper,
    )


@pytest.fixture
def generator(settings, sleeper):
    """Generator without persistence; outputs are kept in memory."""
    gen = ItineraryGenerator(settings, HeuristicOracle(), sleep=sleeper)
    yield gen
    gen.close()


@pytest.fixture
def engine(generator, persistence, settings) -> ItineraryManagementEngine:
    """Management engine without cross-context sync."""
    mgmt = ItineraryManagementEngine(generator, persistence, settings)
    yield mgmt
    mgmt.shutdown()
