"""Tests for error classification, recovery strategies and the fallback plan."""

from concurrent.futures import TimeoutError as FuturesTimeoutError

import pytest
import redis
from pydantic import ValidationError

from backend.itinerary.errors import ErrorCode, PipelineError
from backend.itinerary.generator.recovery import (
    DEFAULT_BUDGET,
    DEFAULT_CITY,
    DEFAULT_DAYS,
    FALLBACK_DESTINATION,
    ErrorRecoveryManager,
    RecoveryContext,
    classify,
)
from backend.itinerary.models.input import GeneratorInput
from backend.itinerary.verify.schema import validate_output
from backend.itinerary.verify.structure import validate_structure
from tests.itinerary_test_helpers import make_raw_input


@pytest.fixture
def recovery(settings, sleeper) -> ErrorRecoveryManager:
    return ErrorRecoveryManager(settings, sleep=sleeper)


def _validation_error() -> ValidationError:
    try:
        GeneratorInput.model_validate({})
    except ValidationError as e:
        return e
    raise AssertionError("expected a validation error")


class TestClassify:
    def test_pipeline_error_keeps_its_code(self):
        assert classify(PipelineError(ErrorCode.DATA_MISSING, "empty")) is ErrorCode.DATA_MISSING

    def test_pydantic_error_is_validation(self):
        assert classify(_validation_error()) is ErrorCode.VALIDATION_ERROR

    @pytest.mark.parametrize(
        "exc",
        [FuturesTimeoutError(), TimeoutError("slow"), redis.exceptions.TimeoutError("slow")],
    )
    def test_timeouts(self, exc):
        assert classify(exc) is ErrorCode.TIMEOUT_ERROR

    @pytest.mark.parametrize(
        "exc",
        [ConnectionError("down"), OSError("reset"), redis.exceptions.ConnectionError("down")],
    )
    def test_network_failures(self, exc):
        assert classify(exc) is ErrorCode.NETWORK_ERROR

    def test_unknown_errors_are_unclassified(self):
        assert classify(RuntimeError("boom")) is None
        assert classify(KeyError("x")) is None


class TestCanRecover:
    @pytest.mark.parametrize(
        "code", [ErrorCode.VALIDATION_ERROR, ErrorCode.TIMEOUT_ERROR, ErrorCode.DATA_MISSING]
    )
    def test_relaxable_codes(self, recovery, code):
        assert recovery.can_recover(code, 0)

    def test_network_is_bounded(self, recovery):
        assert recovery.can_recover(ErrorCode.NETWORK_ERROR, 2)
        assert not recovery.can_recover(ErrorCode.NETWORK_ERROR, 3)

    def test_config_errors_are_fatal(self, recovery):
        assert not recovery.can_recover(ErrorCode.CONFIG_ERROR, 0)
        assert not recovery.can_recover(None, 0)


class TestExecuteRecovery:
    def test_validation_substitutes_defaults(self, recovery):
        raw = make_raw_input(budget=-5, days=99, travelers=0, cities=[])

        context = recovery.execute_recovery(
            ErrorCode.VALIDATION_ERROR, RecoveryContext(raw_input=raw)
        )

        prefs = context.raw_input["preferences"]
        assert prefs["budget"] == DEFAULT_BUDGET
        assert prefs["days"] == DEFAULT_DAYS
        assert prefs["travelers"] == 2
        assert prefs["cities"] == [DEFAULT_CITY]
        assert context.retry_count == 1
        assert context.applied == [ErrorCode.VALIDATION_ERROR]
        # The previous context is left untouched
        assert raw["preferences"]["budget"] == -5

    def test_valid_values_survive_substitution(self, recovery):
        raw = make_raw_input()

        context = recovery.execute_recovery(
            ErrorCode.VALIDATION_ERROR, RecoveryContext(raw_input=raw)
        )

        assert context.raw_input["preferences"]["budget"] == 2_000_000
        assert context.raw_input["preferences"]["cities"] == ["Malang", "Batu"]

    def test_network_backs_off_exponentially(self, recovery, sleeper):
        context = RecoveryContext(raw_input=make_raw_input())
        for _ in range(3):
            context = recovery.execute_recovery(ErrorCode.NETWORK_ERROR, context)

        assert sleeper.calls == [1.0, 2.0, 4.0]
        assert context.retry_count == 3

    def test_timeout_doubles_the_budget(self, recovery):
        context = recovery.execute_recovery(
            ErrorCode.TIMEOUT_ERROR, RecoveryContext(raw_input=make_raw_input())
        )
        assert context.raw_input["config"]["performance"]["timeout_ms"] == 60_000

        context = recovery.execute_recovery(ErrorCode.TIMEOUT_ERROR, context)
        assert context.raw_input["config"]["performance"]["timeout_ms"] == 120_000

    def test_data_missing_adds_fallback_destination_once(self, recovery):
        raw = make_raw_input()
        raw["available_destinations"] = []

        context = recovery.execute_recovery(ErrorCode.DATA_MISSING, RecoveryContext(raw_input=raw))
        context = recovery.execute_recovery(ErrorCode.DATA_MISSING, context)

        destinations = context.raw_input["available_destinations"]
        assert len(destinations) == 1
        assert destinations[0]["id"] == FALLBACK_DESTINATION["id"]
        assert destinations[0]["location"] == "Malang"

    def test_attempts_are_counted(self, settings, sleeper):
        from backend.itinerary.metrics.registry import MetricsClient

        metrics = MetricsClient()
        recovery = ErrorRecoveryManager(settings, sleep=sleeper, metrics=metrics)

        recovery.execute_recovery(ErrorCode.DATA_MISSING, RecoveryContext(raw_input={}))

        assert metrics.recovery_attempts["DATA_MISSING"] == 1


class TestFallbackPlan:
    def test_fallback_is_structurally_valid(self, recovery, sample_input):
        output = recovery.get_fallback_data(RuntimeError("boom"), sample_input)

        assert output.success is False
        assert output.itinerary_id.startswith("fallback_")
        assert [d.day for d in output.itinerary.days] == [1, 2, 3]
        assert all(d.destinations for d in output.itinerary.days)
        assert validate_output(output).is_valid
        assert not [v for v in validate_structure(output.itinerary) if v.structural]

    def test_fallback_day_totals_add_up_to_summary(self, recovery, sample_input):
        output = recovery.get_fallback_data(RuntimeError("boom"), sample_input)

        plan = output.itinerary
        assert plan.summary.total_cost == 1_000_000
        assert sum(d.total_cost for d in plan.days) == pytest.approx(plan.summary.total_cost)

    def test_fallback_reports_error_and_warning(self, recovery, sample_input):
        error = PipelineError(ErrorCode.CONFIG_ERROR, "bad config")

        output = recovery.get_fallback_data(error, sample_input)

        assert output.errors[0].code == "CONFIG_ERROR"
        assert output.errors[0].recoverable is False
        assert output.warnings[0].code == "FALLBACK_MODE"

    def test_fallback_follows_input_dates_and_city(self, recovery, sample_input):
        output = recovery.get_fallback_data(RuntimeError("boom"), sample_input)

        first_day = output.itinerary.days[0]
        assert first_day.date == sample_input.preferences.start_date
        assert first_day.destinations[0].location == "Malang"
        assert output.itinerary.budget_breakdown.total_budget == 2_000_000

    def test_fallback_from_garbage_uses_defaults(self, recovery):
        output = recovery.get_fallback_data(
            RuntimeError("boom"), {"preferences": {"budget": "lots", "days": -1}}
        )

        assert len(output.itinerary.days) == DEFAULT_DAYS
        assert output.itinerary.budget_breakdown.total_budget == DEFAULT_BUDGET
        assert output.itinerary.days[0].destinations[0].location == DEFAULT_CITY

    def test_fallback_without_input(self, recovery):
        output = recovery.get_fallback_data(RuntimeError("boom"))

        assert len(output.itinerary.days) == DEFAULT_DAYS
        assert output.errors[0].code == "UNKNOWN_ERROR"
