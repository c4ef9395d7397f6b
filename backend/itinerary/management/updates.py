"""Applying typed updates to generation inputs and plans.

Every function here returns new objects; callers swap them in.
"""

import logging

from backend.itinerary.generator.costs import CostDistributionEngine
from backend.itinerary.generator.insights import optimization_metrics
from backend.itinerary.models.config import GeneratorConfig
from backend.itinerary.models.input import (
    Destination,
    GeneratorInput,
    Preferences,
    TravelConstraints,
)
from backend.itinerary.models.output import BudgetBreakdown, GeneratorOutput
from backend.itinerary.models.state import (
    DateChangeUpdate,
    DestinationAdd,
    DestinationRemove,
    DestinationUpdate,
    ItineraryUpdate,
    PreferenceUpdate,
)

logger = logging.getLogger(__name__)

RESTORED_SESSION_ID = "restored"


def plan_destinations(output: GeneratorOutput) -> list[Destination]:
    """Unique destinations of a plan, in schedule order, as catalog records."""
    fields = set(Destination.model_fields)
    seen: set[str] = set()
    result: list[Destination] = []
    for day in output.itinerary.days:
        for dest in day.destinations:
            if dest.id in seen:
                continue
            seen.add(dest.id)
            result.append(Destination.model_validate(dest.model_dump(include=fields)))
    return result


def input_from_output(output: GeneratorOutput, user_id: str) -> GeneratorInput:
    """Reconstruct a generation input for a plan whose input was not kept."""
    itinerary = output.itinerary
    destinations = plan_destinations(output)
    cities = list(dict.fromkeys(d.location for d in destinations))
    return GeneratorInput(
        user_id=user_id,
        session_id=RESTORED_SESSION_ID,
        preferences=Preferences(
            budget=itinerary.budget_breakdown.total_budget,
            days=max(1, len(itinerary.days)),
            travelers=1,
            cities=cities,
            start_date=itinerary.days[0].date,
        ),
        available_destinations=destinations,
    )


def apply_update_to_input(gen_input: GeneratorInput, update: ItineraryUpdate) -> GeneratorInput:
    """Return the input an update implies; unknown ids leave it unchanged."""
    destinations = list(gen_input.available_destinations)
    prefs = gen_input.preferences

    if isinstance(update, DestinationAdd):
        if any(d.id == update.data.id for d in destinations):
            return gen_input
        destinations.append(update.data)
        return gen_input.model_copy(update={"available_destinations": destinations})

    if isinstance(update, DestinationRemove):
        kept = [d for d in destinations if d.id != update.data.id]
        if len(kept) == len(destinations):
            logger.info("Destination to remove not found", extra={"destination_id": update.data.id})
        return gen_input.model_copy(update={"available_destinations": kept})

    if isinstance(update, DestinationUpdate):
        patch = update.data.model_dump(exclude_unset=True, exclude={"id"})
        patched = []
        for d in destinations:
            if d.id == update.data.id:
                d = Destination.model_validate({**d.model_dump(), **patch})
            patched.append(d)
        return gen_input.model_copy(update={"available_destinations": patched})

    if isinstance(update, DateChangeUpdate):
        changes = update.data.model_dump(exclude_none=True)
        new_prefs = Preferences.model_validate({**prefs.model_dump(), **changes})
        return gen_input.model_copy(update={"preferences": new_prefs})

    if isinstance(update, PreferenceUpdate):
        changes = update.data.model_dump(exclude_unset=True, exclude={"constraints"})
        merged = {**prefs.model_dump(), **changes}
        if update.data.constraints is not None:
            base = prefs.constraints.model_dump() if prefs.constraints else {}
            merged["constraints"] = TravelConstraints.model_validate(
                {**base, **update.data.constraints}
            ).model_dump()
        return gen_input.model_copy(update={"preferences": Preferences.model_validate(merged)})

    return gen_input


def recompute_budget_view(
    output: GeneratorOutput,
    budget: float,
    config: GeneratorConfig,
) -> GeneratorOutput:
    """Rebuild only the budget figures of a plan for a new total budget.

    Destinations, schedule and day totals are left unchanged.
    """
    itinerary = output.itinerary
    engine = CostDistributionEngine(config.cost_distribution)
    distribution = engine.distribute_costs(
        budget,
        len(itinerary.days),
        plan_destinations(output),
        itinerary.days[0].date if itinerary.days else itinerary.summary.generated_at.date(),
    )
    allocations = distribution.daily_allocations
    days = [
        day.model_copy(deep=True, update={"budget_allocation": round(allocations[i], 2)})
        for i, day in enumerate(itinerary.days)
    ]
    new_itinerary = itinerary.model_copy(
        deep=True,
        update={
            "days": days,
            "budget_breakdown": BudgetBreakdown(
                total_budget=budget,
                emergency_fund=distribution.emergency_fund,
                daily_allocations=distribution.daily_allocations,
                category_breakdown=distribution.category_breakdown,
                optimizations=distribution.optimizations,
                confidence=distribution.confidence,
                reasoning=distribution.reasoning,
            ),
            "optimization": optimization_metrics(days, budget),
        }
    )
    return output.model_copy(deep=True, update={"itinerary": new_itinerary})
