"""Tests for meal planning."""

from backend.itinerary.generator.meals import MealPlanningEngine
from backend.itinerary.models.common import MealType
from backend.itinerary.models.config import MealConfig, MealTiming, MealWindow


def test_three_meals_at_window_starts():
    meals = MealPlanningEngine(MealConfig()).plan_meals("Malang")

    assert [m.type for m in meals] == [MealType.breakfast, MealType.lunch, MealType.dinner]
    assert [m.time for m in meals] == ["07:00", "12:00", "18:00"]
    assert all(m.location == "Malang" for m in meals)
    assert all(m.cuisine == "local" for m in meals)


def test_costs_scale_with_meal_budget():
    engine = MealPlanningEngine(MealConfig(meal_budget=300000))

    assert engine.meal_cost(MealType.breakfast) == 50000
    assert engine.meal_cost(MealType.lunch) == 80000
    assert engine.meal_cost(MealType.dinner) == 120000


def test_default_budget_uses_base_costs():
    meals = MealPlanningEngine(MealConfig()).plan_meals("Batu")

    assert sum(m.estimated_cost for m in meals) == 125000


def test_preferred_cuisine_is_used():
    meals = MealPlanningEngine(MealConfig(preferred_cuisine=("Javanese", "Padang"))).plan_meals(
        "Malang"
    )

    assert all(m.cuisine == "Javanese" for m in meals)
    assert "Javanese" in meals[0].recommendation


def test_custom_timing():
    timing = MealTiming(breakfast=MealWindow(start="06:30", end="08:00"))

    meals = MealPlanningEngine(MealConfig(meal_timing=timing)).plan_meals("Malang")

    assert meals[0].time == "06:30"


def test_disabled_meals_return_nothing():
    assert MealPlanningEngine(MealConfig(include_meals=False)).plan_meals("Malang") == []
