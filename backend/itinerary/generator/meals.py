"""Meal planning."""

from backend.itinerary.models.common import MealType
from backend.itinerary.models.config import MealConfig
from backend.itinerary.models.output import Meal

REFERENCE_MEAL_BUDGET = 150000

BASE_MEAL_COSTS: dict[MealType, float] = {
    MealType.breakfast: 25000,
    MealType.lunch: 40000,
    MealType.dinner: 60000,
    MealType.snack: 15000,
}

_RECOMMENDATIONS: dict[MealType, str] = {
    MealType.breakfast: "Traditional {cuisine} breakfast with local specialties",
    MealType.lunch: "Local {cuisine} restaurant with authentic flavors",
    MealType.dinner: "Fine dining experience with {cuisine} cuisine",
}


class MealPlanningEngine:
    """Adds breakfast, lunch and dinner to each day."""

    def __init__(self, config: MealConfig) -> None:
        self.config = config

    def meal_cost(self, meal_type: MealType) -> float:
        scale = self.config.meal_budget / REFERENCE_MEAL_BUDGET
        return round(BASE_MEAL_COSTS[meal_type] * scale, 2)

    def plan_meals(self, location: str) -> list[Meal]:
        """Plan the three main meals for one day.

        Returns an empty list when meals are disabled.
        """
        if not self.config.include_meals:
            return []

        cuisine = self.config.preferred_cuisine[0] if self.config.preferred_cuisine else "local"
        timing = self.config.meal_timing
        windows = {
            MealType.breakfast: timing.breakfast,
            MealType.lunch: timing.lunch,
            MealType.dinner: timing.dinner,
        }
        return [
            Meal(
                type=meal_type,
                time=window.start,
                cuisine=cuisine,
                estimated_cost=self.meal_cost(meal_type),
                location=location,
                recommendation=_RECOMMENDATIONS[meal_type].format(cuisine=cuisine),
            )
            for meal_type, window in windows.items()
        ]
