"""End-to-end lifecycle of managed itineraries: create, update, refresh, evict."""

from datetime import UTC, datetime, timedelta

import pytest
from hypothesis import HealthCheck, given, settings as hyp_settings
from hypothesis import strategies as st

from backend.itinerary.errors import ErrorCode, PipelineError
from backend.itinerary.models.common import SyncStatus, ValidationStatus
from backend.itinerary.models.state import (
    BudgetChangeUpdate,
    DestinationAdd,
    StateSnapshot,
)
from tests.itinerary_test_helpers import destination, make_output

NEW_SPOT = destination(
    "selecta",
    name="Taman Rekreasi Selecta",
    category="Park",
    estimated_cost=40000,
    duration=90,
    coordinates={"lat": -7.8194, "lng": 112.5253},
    tags=["garden", "family"],
    rating=4.4,
)


def _plan_ids(state):
    return {d.id for day in state.itinerary.itinerary.days for d in day.destinations}


def _broken_output():
    """A plan whose second day lost its destinations."""
    output = make_output()
    days = list(output.itinerary.days)
    days[1] = days[1].model_copy(update={"destinations": []})
    return output.model_copy(
        update={"itinerary": output.itinerary.model_copy(update={"days": days})}
    )


@pytest.fixture
def created(engine, raw_input):
    return engine.create_itinerary(raw_input)


class TestCreate:
    def test_new_itinerary_starts_at_version_one(self, created):
        assert created.version == 1
        assert created.user_id == "user_123"
        assert created.validation_status is ValidationStatus.valid
        assert created.itinerary.success is True
        assert created.itinerary.itinerary_id == created.id
        assert created.input is not None

    def test_new_itinerary_is_persisted(self, created, persistence):
        record = persistence.load(created.id)

        assert record is not None
        assert record.version == 1
        assert record.owner_id == "user_123"

    def test_pending_without_sync(self, created):
        assert created.sync_status is SyncStatus.pending

    def test_same_input_twice_gets_distinct_ids(self, engine, raw_input):
        first = engine.create_itinerary(raw_input)
        second = engine.create_itinerary(raw_input)

        assert first.id != second.id
        assert engine.get_itinerary(first.id).version == 1
        assert engine.get_itinerary(second.id).version == 1

    def test_destinations_are_cached(self, engine, created):
        assert len(engine.destination_cache) == 3
        assert engine.destination_cache.get("coban_rondo") is not None

    def test_broken_plan_is_regenerated_on_registration(self, engine):
        state = engine.create_from_generator_output(_broken_output(), owner_id="user_123")

        assert state.version == 2
        assert state.validation_status is ValidationStatus.valid
        assert all(day.destinations for day in state.itinerary.itinerary.days)
        assert any("missing destinations" in entry for entry in state.error_log)
        assert state.itinerary.itinerary_id == state.id

    def test_plan_still_broken_after_regeneration_is_replaced(self, engine, monkeypatch):
        requests = []

        def broken_generate(gen_input, use_cache=True):
            requests.append(use_cache)
            return _broken_output()

        monkeypatch.setattr(engine.generator, "generate", broken_generate)

        state = engine.create_from_generator_output(_broken_output(), owner_id="user_123")

        assert requests == [False]
        assert state.version == 2
        assert state.validation_status is ValidationStatus.valid
        assert state.itinerary.success is False
        assert state.itinerary.itinerary_id == state.id
        assert all(day.destinations for day in state.itinerary.itinerary.days)
        assert any(entry.startswith("DATA_MISSING") for entry in state.error_log)


class TestUpdates:
    def test_budget_change_rebudgets_without_rescheduling(self, engine, created):
        before = _plan_ids(created)

        state = engine.update_itinerary(
            created.id, {"type": "budget_change", "data": {"budget": 3_000_000}}
        )

        assert state.version == 2
        assert _plan_ids(state) == before
        assert state.itinerary.itinerary.budget_breakdown.total_budget == 3_000_000
        assert sum(state.itinerary.itinerary.budget_breakdown.daily_allocations) == pytest.approx(
            3_000_000
        )
        assert state.input.preferences.budget == 3_000_000

    def test_update_is_persisted(self, engine, created, persistence):
        engine.update_itinerary(created.id, BudgetChangeUpdate(data={"budget": 2_500_000}))

        assert persistence.load(created.id).version == 2

    def test_added_destination_enters_the_plan(self, engine, created):
        state = engine.update_itinerary(created.id, DestinationAdd(data=NEW_SPOT))

        assert state.version == 2
        assert "selecta" in _plan_ids(state)
        assert state.id == created.id
        assert state.itinerary.itinerary_id == created.id

    def test_replayed_add_does_not_change_the_plan(self, engine, created):
        first = engine.update_itinerary(created.id, DestinationAdd(data=NEW_SPOT))
        second = engine.update_itinerary(created.id, DestinationAdd(data=NEW_SPOT))

        assert second.version == first.version + 1
        assert _plan_ids(second) == _plan_ids(first)
        assert [d.id for d in second.input.available_destinations].count("selecta") == 1

    def test_removed_destination_leaves_the_plan(self, engine, created):
        state = engine.remove_destinations(created.id, ["coban_rondo"])

        assert "coban_rondo" not in _plan_ids(state)
        assert state.version == 2

    def test_add_destinations_applies_each(self, engine, created):
        other = destination("paralayang", category="Nature", rating=4.2)

        state = engine.add_destinations(created.id, [NEW_SPOT, other])

        assert state.version == 3
        assert {"selecta", "paralayang"} <= {d.id for d in state.input.available_destinations}

    def test_date_change_moves_the_trip(self, engine, created):
        state = engine.update_itinerary(
            created.id, {"type": "date_change", "data": {"start_date": "2026-08-01", "days": 2}}
        )

        days = state.itinerary.itinerary.days
        assert [d.day for d in days] == [1, 2]
        assert days[0].date.isoformat() == "2026-08-01"

    def test_preference_update_regenerates(self, engine, created):
        state = engine.update_itinerary(
            created.id,
            {
                "type": "preference_update",
                "data": {"constraints": {"preferred_start_time": "10:00"}},
            },
        )

        first = state.itinerary.itinerary.days[0].destinations[0]
        assert first.scheduled_time >= "10:00"
        assert state.input.preferences.constraints.preferred_start_time == "10:00"

    def test_regenerate_keeps_the_id(self, engine, created):
        state = engine.update_itinerary(created.id, {"type": "regenerate"})

        assert state.id == created.id
        assert state.itinerary.itinerary_id == created.id
        assert state.version == 2

    def test_unknown_itinerary_without_snapshot(self, engine):
        assert engine.update_itinerary("missing", {"type": "regenerate"}) is None

    def test_snapshot_rebuilds_lost_state(self, engine, sample_input):
        snapshot = StateSnapshot(
            user_id="user_123", version=4, itinerary=make_output(sample_input), input=sample_input
        )

        state = engine.update_itinerary(
            "restored_1",
            BudgetChangeUpdate(data={"budget": 1_500_000}, snapshot=snapshot),
        )

        assert state.id == "restored_1"
        assert state.version == 5
        assert state.itinerary.itinerary.budget_breakdown.total_budget == 1_500_000

    def test_failed_update_marks_state_in_error(self, engine, created, monkeypatch):
        def broken_generate(gen_input, use_cache=True):
            raise PipelineError(ErrorCode.NETWORK_ERROR, "oracle down")

        monkeypatch.setattr(engine.generator, "generate", broken_generate)

        state = engine.update_itinerary(created.id, DestinationAdd(data=NEW_SPOT))

        assert state.version == 1
        assert state.sync_status is SyncStatus.error
        assert state.error_log[-1] == "Update destination_add failed after retries"
        assert engine.get_itinerary(created.id).sync_status is SyncStatus.error

    def test_error_log_is_bounded(self, engine, created, monkeypatch, settings):
        def broken_generate(gen_input, use_cache=True):
            raise PipelineError(ErrorCode.DATA_MISSING, "no destinations")

        monkeypatch.setattr(engine.generator, "generate", broken_generate)

        for _ in range(settings.error_log_limit + 3):
            state = engine.update_itinerary(created.id, {"type": "regenerate"})

        assert len(state.error_log) == settings.error_log_limit

    def test_batch_updates_apply_in_order(self, engine, created):
        results = engine.process_batch_updates(
            [
                (created.id, {"type": "budget_change", "data": {"budget": 2_200_000}}),
                ("missing", {"type": "regenerate"}),
                (created.id, {"type": "budget_change", "data": {"budget": 2_400_000}}),
            ]
        )

        assert [s.version for s in results[created.id]] == [2, 3]
        assert results["missing"] == [None]
        final = engine.get_itinerary(created.id)
        assert final.itinerary.itinerary.budget_breakdown.total_budget == 2_400_000


class TestNewerStoredCopy:
    def _store(self, persistence, state, version):
        persistence.save(
            state.id, state.itinerary, owner_id=state.user_id, version=version, input=state.input
        )

    def test_update_adopts_newer_stored_copy(self, engine, created, persistence):
        self._store(persistence, created, 5)

        state = engine.update_itinerary(
            created.id, {"type": "budget_change", "data": {"budget": 2_500_000}}
        )

        assert state.version == 5
        assert state.sync_status is SyncStatus.synced
        assert state.itinerary.itinerary.budget_breakdown.total_budget == 2_000_000
        assert persistence.load(created.id).version == 5
        assert engine.get_itinerary(created.id) is state

    def test_stale_refresh_keeps_newer_stored_copy(self, engine, created, persistence):
        self._store(persistence, created, 5)
        created.last_modified = datetime.now(UTC) - timedelta(hours=2)

        state = engine.get_itinerary(created.id)

        assert state.version == 5
        assert persistence.load(created.id).version == 5


class TestVersionMonotonicity:
    @hyp_settings(
        max_examples=10,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(
        budgets=st.lists(
            st.integers(min_value=500_000, max_value=5_000_000), min_size=1, max_size=5
        )
    )
    def test_versions_strictly_increase(self, engine, raw_input, budgets):
        state = engine.create_itinerary(raw_input)
        versions = [state.version]

        for budget in budgets:
            state = engine.update_itinerary(
                state.id, {"type": "budget_change", "data": {"budget": budget}}
            )
            versions.append(state.version)

        assert versions == sorted(set(versions))
        assert versions[-1] == len(budgets) + 1


class TestReadsAndMaintenance:
    def test_stale_state_is_refreshed_on_read(self, engine, created):
        created.last_modified = datetime.now(UTC) - timedelta(hours=2)

        state = engine.get_itinerary(created.id)

        assert state.version == 2
        assert state.last_modified > datetime.now(UTC) - timedelta(minutes=1)

    def test_fresh_state_is_returned_as_is(self, engine, created):
        assert engine.get_itinerary(created.id).version == 1

    def test_eviction_keeps_durable_copy(self, engine, created):
        created.last_modified = datetime.now(UTC) - timedelta(hours=3)

        assert engine.evict_stale() == 1
        assert engine.get_stats().states_in_memory == 0

        reloaded = engine.get_itinerary(created.id)
        assert reloaded is not None
        assert reloaded.id == created.id

    def test_recent_states_survive_eviction(self, engine, created):
        assert engine.evict_stale() == 0
        assert engine.get_stats().states_in_memory == 1

    def test_delete_removes_everywhere(self, engine, created, persistence):
        assert engine.delete_itinerary(created.id) is True

        assert engine.get_itinerary(created.id) is None
        assert persistence.load(created.id) is None
        assert engine.delete_itinerary(created.id) is False

    def test_manual_validation(self, engine, created):
        result = engine.validate_itinerary_manually(created.id)

        assert result.is_valid
        assert result.errors == []
        assert result.regenerated is False

    def test_manual_validation_of_unknown_id(self, engine):
        result = engine.validate_itinerary_manually("missing")

        assert not result.is_valid
        assert result.errors == ["Itinerary not found"]

    def test_recover_from_backup(self, engine, created):
        created.error_log.append("in-memory only")

        recovered = engine.recover_itinerary_with_backup(created.id)

        assert recovered.version == 1
        assert "in-memory only" not in recovered.error_log
        assert engine.get_itinerary(created.id) is recovered

    def test_recover_without_backup(self, engine):
        assert engine.recover_itinerary_with_backup("missing") is None

    def test_stats(self, engine, created):
        stats = engine.get_stats()

        assert stats.states_in_memory == 1
        assert stats.pending_sync == 1
        assert stats.invalid_states == 0
        assert stats.errored_states == 0
        assert stats.destination_cache_size == 3

    def test_persistence_health(self, engine):
        health = engine.get_persistence_health()

        assert health.tiers == {"database": True, "local": True, "session": True}

    def test_sync_pending_without_sync_manager(self, engine, created):
        assert engine.sync_pending() == {}
