"""Tests for activity density filtering and warnings."""

from backend.itinerary.generator.density import ActivityDensityManager, DensityMetrics
from backend.itinerary.models.config import ActivityDensityConfig
from tests.itinerary_test_helpers import destination, make_input


def _manager(**overrides) -> ActivityDensityManager:
    return ActivityDensityManager(ActivityDensityConfig(**overrides))


def test_preferred_types_match_category_or_tags_case_insensitively():
    museum = destination("museum", category="Museum")
    hike = destination("hike", category="Nature", tags=["Hiking"])
    mall = destination("mall", category="Shopping")
    pool = [museum, hike, mall]

    result = _manager(preferred_activity_types=("museum", "hik")).optimize_activity_density(
        pool, make_input(pool, days=1)
    )

    assert [d.id for d in result.filtered] == ["museum", "hike"]


def test_no_preferred_types_keeps_everything():
    pool = [destination("a"), destination("b")]

    result = _manager().optimize_activity_density(pool, make_input(pool, days=1))

    assert [d.id for d in result.filtered] == ["a", "b"]


def test_cap_keeps_highest_rated():
    pool = [destination(f"d{i}", rating=r) for i, r in enumerate([3.0, 4.9, 4.0, 4.5])]

    result = _manager(max_activities_per_day=2).optimize_activity_density(
        pool, make_input(pool, days=1)
    )

    assert [d.id for d in result.filtered] == ["d1", "d3"]


def test_cap_scales_with_trip_length():
    pool = [destination(f"d{i}") for i in range(10)]

    result = _manager(max_activities_per_day=2).optimize_activity_density(
        pool, make_input(pool, days=3)
    )

    assert len(result.filtered) == 6


def test_equal_ratings_keep_incoming_order_when_capped():
    pool = [destination(f"d{i}", rating=4.0) for i in range(5)]

    result = _manager(max_activities_per_day=3).optimize_activity_density(
        pool, make_input(pool, days=1)
    )

    assert [d.id for d in result.filtered] == ["d0", "d1", "d2"]


def test_metrics_describe_load():
    pool = [destination("a", duration=120), destination("b", duration=180)]

    metrics = _manager().compute_metrics(pool, days=1)

    assert metrics.activities_per_day == 2
    assert metrics.total_duration == 300
    assert metrics.free_time_percentage == 50
    assert metrics.intensity == "low"


def test_packed_schedule_warns_about_free_time():
    pool = [destination(f"d{i}", duration=300) for i in range(3)]

    result = _manager().optimize_activity_density(pool, make_input(pool, days=1))

    assert len(result.filtered) == 3
    assert any("free time" in w for w in result.warnings)


def test_over_scheduling_warning():
    metrics = DensityMetrics(
        activities_per_day=6, total_duration=300, free_time_percentage=50, intensity="high"
    )

    warnings = _manager(max_activities_per_day=4).validate_density(metrics)

    assert len(warnings) == 1
    assert "above the limit of 4" in warnings[0]


def test_warnings_never_empty_the_result():
    pool = [destination("a", duration=600)]

    result = _manager().optimize_activity_density(pool, make_input(pool, days=1))

    assert result.filtered
    assert result.warnings
