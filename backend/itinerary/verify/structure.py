"""Structural verification of a generated plan.

Pure function returning violations. Structural kinds (empty plan, empty
day, broken day numbering, unnamed destination) mark a plan as unusable;
schedule overflow and budget overrun are advisory.
"""

from backend.itinerary.generator.scheduler import resolve_day_window
from backend.itinerary.metrics.registry import MetricsClient
from backend.itinerary.models.common import ViolationKind, parse_hhmm
from backend.itinerary.models.config import GeneratorConfig
from backend.itinerary.models.input import GeneratorInput
from backend.itinerary.models.output import Itinerary
from backend.itinerary.models.violations import Violation


def validate_structure(
    itinerary: Itinerary,
    gen_input: GeneratorInput | None = None,
    config: GeneratorConfig | None = None,
    metrics: MetricsClient | None = None,
) -> list[Violation]:
    """Verify the plan's structure.

    Args:
        itinerary: Plan to verify.
        gen_input: Input that produced the plan; supplies time constraints
            and the budget. Without it the plan's own budget is used.
        config: Config used for the day window and cost tolerance; defaults
            to the input's config.
        metrics: Optional metrics client for telemetry

    Returns:
        List of violations (empty if the plan is sound)
    """
    violations: list[Violation] = []
    if config is None:
        config = gen_input.config if gen_input is not None else GeneratorConfig()

    if not itinerary.days:
        violations.append(
            Violation(
                kind=ViolationKind.empty_itinerary,
                node_ref="itinerary",
                details={"message": "Itinerary has no days"},
                blocking=True,
            )
        )
        _count(violations, metrics)
        return violations

    indices = [d.day for d in itinerary.days]
    expected = list(range(1, len(indices) + 1))
    if indices != expected:
        violations.append(
            Violation(
                kind=ViolationKind.inconsistent_day_structure,
                node_ref="itinerary.days",
                details={
                    "message": "Day numbers must run 1..N without gaps",
                    "days": indices,
                },
                blocking=True,
            )
        )

    constraints = gen_input.preferences.constraints if gen_input is not None else None
    _, day_end = resolve_day_window(config.day_structure, constraints)
    buffer = config.day_structure.buffer_time_minutes

    for day in itinerary.days:
        if not day.destinations:
            violations.append(
                Violation(
                    kind=ViolationKind.missing_destinations,
                    node_ref=f"day_{day.day}",
                    details={"message": f"Day {day.day} has no destinations"},
                    blocking=True,
                )
            )
            continue

        for idx, dest in enumerate(day.destinations):
            ref = f"day_{day.day}.destinations[{idx}]"
            if not (dest.id or "").strip() or not (dest.name or "").strip():
                violations.append(
                    Violation(
                        kind=ViolationKind.invalid_destination_data,
                        node_ref=ref,
                        details={"message": "Destination needs an id and a name"},
                        blocking=True,
                    )
                )
                continue

            finish = parse_hhmm(dest.scheduled_time) + dest.duration + buffer
            if finish > day_end:
                violations.append(
                    Violation(
                        kind=ViolationKind.schedule_overflow,
                        node_ref=ref,
                        details={
                            "message": f"{dest.name} runs past the end of day {day.day}",
                            "finish_minutes": finish,
                            "day_end_minutes": day_end,
                        },
                        blocking=False,
                    )
                )

    budget = (
        gen_input.preferences.budget
        if gen_input is not None
        else itinerary.budget_breakdown.total_budget
    )
    limit = budget * (1 + config.cost_distribution.cost_variability_tolerance)
    total = sum(day.total_cost for day in itinerary.days)
    if total > limit:
        violations.append(
            Violation(
                kind=ViolationKind.budget_exceeded,
                node_ref="budget_check",
                details={
                    "message": f"Planned cost {total:,.0f} exceeds budget {budget:,.0f}",
                    "total_cost": total,
                    "budget": budget,
                    "limit": limit,
                },
                blocking=False,
            )
        )

    _count(violations, metrics)
    return violations


def _count(violations: list[Violation], metrics: MetricsClient | None) -> None:
    if metrics:
        for v in violations:
            metrics.inc_violation(v.kind.value)
