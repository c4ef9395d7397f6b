"""Tests for input/output schema checks and structural plan verification."""

import pytest

from backend.itinerary.generator.recovery import ErrorRecoveryManager
from backend.itinerary.metrics.registry import MetricsClient
from backend.itinerary.models.common import ViolationKind
from backend.itinerary.models.input import TravelConstraints
from backend.itinerary.verify import validate_input, validate_output, validate_structure
from tests.itinerary_test_helpers import make_raw_input


@pytest.fixture
def plan(settings, sleeper, sample_input):
    """A small, sound three-day plan."""
    output = ErrorRecoveryManager(settings, sleep=sleeper).get_fallback_data(
        RuntimeError("seed"), sample_input
    )
    return output.itinerary


def _kinds(violations):
    return [v.kind for v in violations]


class TestValidateInput:
    def test_valid_input_is_parsed(self):
        result = validate_input(make_raw_input())

        assert result.is_valid
        assert result.input is not None
        assert result.input.preferences.days == 3
        assert result.errors == []

    def test_errors_are_itemized_with_paths(self):
        raw = make_raw_input(budget=-1, days=0)

        result = validate_input(raw)

        assert not result.is_valid
        assert result.input is None
        assert any(e.startswith("preferences.budget") for e in result.errors)
        assert any(e.startswith("preferences.days") for e in result.errors)

    def test_missing_sections_are_reported(self):
        result = validate_input({"user_id": "u1"})

        assert not result.is_valid
        assert any("session_id" in e for e in result.errors)
        assert any("preferences" in e for e in result.errors)

    def test_parsed_model_is_rechecked(self, sample_input):
        assert validate_input(sample_input).is_valid


class TestValidateOutput:
    def test_fallback_output_passes(self, settings, sleeper, sample_input):
        output = ErrorRecoveryManager(settings, sleep=sleeper).get_fallback_data(
            RuntimeError("boom"), sample_input
        )

        assert validate_output(output).is_valid

    def test_broken_output_is_itemized(self):
        result = validate_output({"success": True, "itinerary_id": ""})

        assert not result.is_valid
        assert any(e.startswith("itinerary_id") for e in result.errors)
        assert any(e.startswith("itinerary") for e in result.errors)


class TestValidateStructure:
    def test_sound_plan_has_no_violations(self, plan, sample_input):
        assert validate_structure(plan, sample_input) == []

    def test_empty_plan(self, plan):
        violations = validate_structure(plan.model_copy(update={"days": []}))

        assert _kinds(violations) == [ViolationKind.empty_itinerary]
        assert violations[0].structural
        assert violations[0].blocking

    def test_day_numbering_gap(self, plan):
        days = [plan.days[0], plan.days[1].model_copy(update={"day": 3})]

        violations = validate_structure(plan.model_copy(update={"days": days}))

        assert ViolationKind.inconsistent_day_structure in _kinds(violations)
        broken = next(
            v for v in violations if v.kind is ViolationKind.inconsistent_day_structure
        )
        assert broken.details["days"] == [1, 3]

    def test_day_without_destinations(self, plan):
        days = list(plan.days)
        days[1] = days[1].model_copy(update={"destinations": []})

        violations = validate_structure(plan.model_copy(update={"days": days}))

        assert _kinds(violations) == [ViolationKind.missing_destinations]
        assert violations[0].node_ref == "day_2"

    def test_unnamed_destination(self, plan):
        days = list(plan.days)
        dest = days[0].destinations[0].model_copy(update={"name": "  "})
        days[0] = days[0].model_copy(update={"destinations": [dest]})

        violations = validate_structure(plan.model_copy(update={"days": days}))

        assert _kinds(violations) == [ViolationKind.invalid_destination_data]
        assert violations[0].node_ref == "day_1.destinations[0]"

    def test_schedule_overflow_is_advisory(self, plan, sample_input):
        days = list(plan.days)
        late = days[0].destinations[0].model_copy(update={"scheduled_time": "17:00"})
        days[0] = days[0].model_copy(update={"destinations": [late]})

        violations = validate_structure(plan.model_copy(update={"days": days}), sample_input)

        assert _kinds(violations) == [ViolationKind.schedule_overflow]
        assert not violations[0].structural
        assert not violations[0].blocking

    def test_traveler_window_overrides_config(self, plan, sample_input):
        prefs = sample_input.preferences.model_copy(
            update={"constraints": TravelConstraints(preferred_end_time="12:00")}
        )
        gen_input = sample_input.model_copy(update={"preferences": prefs})

        violations = validate_structure(plan, gen_input)

        # 09:00 + 240 minutes + buffer runs past noon on every day
        assert _kinds(violations) == [ViolationKind.schedule_overflow] * 3

    def test_budget_overrun_beyond_tolerance(self, plan, sample_input):
        days = [d.model_copy(update={"total_cost": 900_000}) for d in plan.days]

        violations = validate_structure(plan.model_copy(update={"days": days}), sample_input)

        assert _kinds(violations) == [ViolationKind.budget_exceeded]
        assert violations[0].details["total_cost"] == 2_700_000
        assert violations[0].details["limit"] == pytest.approx(2_400_000)

    def test_overrun_within_tolerance_is_accepted(self, plan, sample_input):
        days = [d.model_copy(update={"total_cost": 750_000}) for d in plan.days]

        assert validate_structure(plan.model_copy(update={"days": days}), sample_input) == []

    def test_violations_are_counted(self, plan):
        metrics = MetricsClient()

        validate_structure(plan.model_copy(update={"days": []}), metrics=metrics)

        assert metrics.violation_counts["empty_itinerary"] == 1
