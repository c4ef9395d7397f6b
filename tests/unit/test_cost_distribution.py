"""Tests for budget allocation across days and categories."""

import math
from datetime import date

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from backend.itinerary.generator.costs import CATEGORY_SHARES, CostDistributionEngine
from backend.itinerary.models.common import AllocationStrategy, Level
from backend.itinerary.models.config import CostDistributionConfig
from tests.itinerary_test_helpers import destination


def _engine(**overrides) -> CostDistributionEngine:
    return CostDistributionEngine(CostDistributionConfig(**overrides))


class TestBudgetConservation:
    """Allocations always add back up to the trip budget."""

    @settings(max_examples=100, deadline=None)
    @given(
        budget=st.floats(min_value=1, max_value=1e10, allow_nan=False, allow_infinity=False),
        days=st.integers(min_value=1, max_value=30),
        strategy=st.sampled_from(list(AllocationStrategy)),
    )
    def test_daily_allocations_sum_to_budget(self, budget, days, strategy):
        allocations = _engine().daily_allocations(budget, days, strategy)

        assert len(allocations) == days
        assert all(a >= 0 for a in allocations)
        assert math.isclose(sum(allocations), budget, rel_tol=1e-9)

    @settings(max_examples=100, deadline=None)
    @given(
        budget=st.floats(min_value=1, max_value=1e10, allow_nan=False, allow_infinity=False),
        fund=st.floats(min_value=5, max_value=15),
    )
    def test_categories_plus_reserve_equal_budget(self, budget, fund):
        emergency_fund, breakdown = _engine(emergency_fund_percentage=fund).category_breakdown(
            budget
        )

        total = emergency_fund + sum(c.allocated for c in breakdown.values())
        assert math.isclose(total, budget, rel_tol=1e-9)
        assert set(breakdown) == set(CATEGORY_SHARES)


def test_equal_strategy_splits_evenly():
    assert _engine().daily_allocations(900, 3) == [300, 300, 300]


def test_front_loaded_decreases_day_by_day():
    allocations = _engine().daily_allocations(1000, 4, AllocationStrategy.front_loaded)

    assert allocations == sorted(allocations, reverse=True)
    assert allocations[0] > allocations[-1]


def test_back_loaded_mirrors_front_loaded():
    engine = _engine()

    front = engine.daily_allocations(1000, 4, AllocationStrategy.front_loaded)
    back = engine.daily_allocations(1000, 4, AllocationStrategy.back_loaded)

    assert back == list(reversed(front))


def test_peak_day_gets_forty_percent_mid_trip():
    allocations = _engine().daily_allocations(1000, 5, AllocationStrategy.peak_day)

    assert allocations[2] == pytest.approx(400)
    assert allocations[0] == pytest.approx(150)


def test_single_peak_day_gets_everything():
    assert _engine().daily_allocations(1000, 1, AllocationStrategy.peak_day) == [1000]


def test_configured_strategy_is_used_by_default():
    engine = _engine(budget_allocation_strategy=AllocationStrategy.front_loaded)

    allocations = engine.daily_allocations(1000, 3)

    assert allocations[0] > allocations[1] > allocations[2]


def test_emergency_fund_is_held_back():
    emergency_fund, breakdown = _engine(emergency_fund_percentage=10).category_breakdown(1_000_000)

    assert emergency_fund == pytest.approx(100_000)
    assert breakdown["accommodation"].allocated == pytest.approx(315_000)
    assert breakdown["food"].allocated == pytest.approx(225_000)


def test_optimizations_for_group_trip_in_low_season():
    destinations = [destination(f"d{i}") for i in range(3)]

    optimizations = _engine().optimizations(destinations, 1_000_000, date(2026, 1, 15))

    by_type = {o.type: o for o in optimizations}
    assert set(by_type) == {"group", "seasonal", "early_bird"}
    assert by_type["group"].potential_savings == pytest.approx(50_000)
    assert by_type["group"].impact is Level.medium
    assert by_type["seasonal"].category == "accommodation"
    assert by_type["seasonal"].impact is Level.high
    assert by_type["early_bird"].potential_savings == pytest.approx(30_000)


def test_only_early_bird_for_small_summer_trip():
    optimizations = _engine().optimizations([destination("solo")], 1_000_000, date(2026, 7, 1))

    assert [o.type for o in optimizations] == ["early_bird"]


def test_savings_reduce_recommended_spend():
    engine = _engine()
    optimizations = engine.optimizations([destination("solo")], 1_000_000, date(2026, 7, 1))

    _, breakdown = engine.category_breakdown(1_000_000, optimizations)

    transport = breakdown["transportation"]
    assert transport.savings == pytest.approx(30_000)
    assert transport.recommended == pytest.approx(transport.allocated - 30_000)
    assert breakdown["food"].savings == 0


def test_distribute_costs_bundles_everything():
    destinations = [destination(f"d{i}") for i in range(3)]

    distribution = _engine().distribute_costs(1_000_000, 3, destinations, date(2026, 1, 10))

    assert distribution.total_budget == 1_000_000
    assert len(distribution.daily_allocations) == 3
    assert len(distribution.optimizations) == 3
    assert distribution.confidence == pytest.approx(0.85)
    assert distribution.reasoning
