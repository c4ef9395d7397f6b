"""Error classification, bounded recovery strategies and the fallback plan."""

import copy
import logging
import time
from collections.abc import Callable, Mapping
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import Any

import redis
from pydantic import ValidationError

from backend.itinerary.config import Settings
from backend.itinerary.errors import ErrorCode, PipelineError
from backend.itinerary.metrics.registry import MetricsClient
from backend.itinerary.models.common import Coordinates, Level
from backend.itinerary.models.config import GeneratorConfig
from backend.itinerary.models.input import GeneratorInput
from backend.itinerary.models.output import (
    BudgetBreakdown,
    CategoryAllocation,
    DayPlan,
    GenerationMetadata,
    GeneratorOutput,
    Itinerary,
    ItinerarySummary,
    MLInsights,
    OptimizationMetrics,
    OutputError,
    OutputWarning,
    ScheduledDestination,
)

logger = logging.getLogger(__name__)

MAX_NETWORK_RETRIES = 3
ENGINE_VERSION = "1.0.0"

DEFAULT_BUDGET = 1_000_000
DEFAULT_DAYS = 3
DEFAULT_TRAVELERS = 2
DEFAULT_CITY = "Jakarta"

FALLBACK_DESTINATION: dict[str, Any] = {
    "id": "fallback",
    "name": "Local Exploration",
    "category": "Cultural",
    "estimated_cost": 50000,
    "duration": 120,
    "tags": ["local", "flexible"],
    "rating": 4.0,
}

FALLBACK_CATEGORY_SHARES: dict[str, float] = {
    "accommodation": 0.30,
    "food": 0.20,
    "transportation": 0.20,
    "activities": 0.20,
    "miscellaneous": 0.10,
}

_JAKARTA = Coordinates(lat=-6.2088, lng=106.8456)


@dataclass
class RecoveryContext:
    """State carried between recovery rounds.

    ``raw_input`` is the input as a plain dict so that invalid inputs can
    still be repaired before they become a model.
    """

    raw_input: dict[str, Any]
    retry_count: int = 0
    applied: list[ErrorCode] = field(default_factory=list)


def classify(exc: BaseException) -> ErrorCode | None:
    """Map an exception to an error code; ``None`` means unclassified (fatal)."""
    if isinstance(exc, PipelineError):
        return exc.code
    if isinstance(exc, ValidationError):
        return ErrorCode.VALIDATION_ERROR
    # TimeoutError subclasses OSError, so check it first
    if isinstance(exc, (FuturesTimeoutError, TimeoutError, redis.exceptions.TimeoutError)):
        return ErrorCode.TIMEOUT_ERROR
    if isinstance(exc, (ConnectionError, OSError, redis.exceptions.ConnectionError)):
        return ErrorCode.NETWORK_ERROR
    return None


def _first_city(raw_input: Mapping[str, Any]) -> str:
    prefs = raw_input.get("preferences") or {}
    cities = prefs.get("cities") if isinstance(prefs, Mapping) else None
    if isinstance(cities, list) and cities and isinstance(cities[0], str):
        return cities[0]
    return DEFAULT_CITY


def _valid_number(value: Any, low: float, high: float | None = None) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if value < low:
        return False
    return high is None or value <= high


class ErrorRecoveryManager:
    """Applies one relaxation per error code before the caller retries."""

    def __init__(
        self,
        settings: Settings,
        sleep: Callable[[float], None] = time.sleep,
        metrics: MetricsClient | None = None,
    ) -> None:
        self.settings = settings
        self._sleep = sleep
        self.metrics = metrics

    def can_recover(self, code: ErrorCode | None, retry_count: int) -> bool:
        """Check whether a strategy exists for the code at this retry count."""
        if code in (
            ErrorCode.VALIDATION_ERROR,
            ErrorCode.TIMEOUT_ERROR,
            ErrorCode.DATA_MISSING,
        ):
            return True
        if code is ErrorCode.NETWORK_ERROR:
            return retry_count < MAX_NETWORK_RETRIES
        return False

    def execute_recovery(
        self, code: ErrorCode, context: RecoveryContext
    ) -> RecoveryContext:
        """Apply the strategy for ``code`` and return the next context.

        Args:
            code: Classified error to recover from.
            context: Current recovery context; it is not modified.

        Returns:
            A new context with the relaxed input and an incremented retry count.
        """
        raw = copy.deepcopy(context.raw_input)
        logger.info(
            "recovery_attempt",
            extra={"error_code": code.value, "retry_count": context.retry_count},
        )
        if self.metrics:
            self.metrics.inc_recovery_attempt(code.value)

        if code is ErrorCode.VALIDATION_ERROR:
            raw = self._substitute_defaults(raw)
        elif code is ErrorCode.NETWORK_ERROR:
            self._sleep(float(2**context.retry_count))
        elif code is ErrorCode.TIMEOUT_ERROR:
            config = raw.setdefault("config", {})
            performance = config.setdefault("performance", {})
            current = performance.get("timeout_ms", GeneratorConfig().performance.timeout_ms)
            performance["timeout_ms"] = int(current) * 2
        elif code is ErrorCode.DATA_MISSING:
            destinations = list(raw.get("available_destinations") or [])
            if not any(
                isinstance(d, Mapping) and d.get("id") == FALLBACK_DESTINATION["id"]
                for d in destinations
            ):
                destinations.append({**FALLBACK_DESTINATION, "location": _first_city(raw)})
            raw["available_destinations"] = destinations

        return RecoveryContext(
            raw_input=raw,
            retry_count=context.retry_count + 1,
            applied=[*context.applied, code],
        )

    def _substitute_defaults(self, raw: dict[str, Any]) -> dict[str, Any]:
        prefs = raw.get("preferences")
        prefs = dict(prefs) if isinstance(prefs, Mapping) else {}
        if not _valid_number(prefs.get("budget"), 0) or prefs.get("budget") == 0:
            prefs["budget"] = DEFAULT_BUDGET
        if not _valid_number(prefs.get("days"), 1, 30) or not float(prefs["days"]).is_integer():
            prefs["days"] = DEFAULT_DAYS
        if not _valid_number(prefs.get("travelers"), 1, 20) or not float(
            prefs["travelers"]
        ).is_integer():
            prefs["travelers"] = DEFAULT_TRAVELERS
        cities = prefs.get("cities")
        if not isinstance(cities, list) or not cities:
            prefs["cities"] = [DEFAULT_CITY]
        raw["preferences"] = prefs
        return raw

    def get_fallback_data(
        self,
        error: BaseException,
        gen_input: GeneratorInput | Mapping[str, Any] | None = None,
    ) -> GeneratorOutput:
        """Build a minimal, structurally valid plan for a failed generation.

        Works from a partially valid input; anything unusable is replaced
        by the recovery defaults.
        """
        if isinstance(gen_input, GeneratorInput):
            raw: Mapping[str, Any] = gen_input.model_dump(mode="json")
        else:
            raw = gen_input or {}
        prefs = raw.get("preferences") if isinstance(raw.get("preferences"), Mapping) else {}

        budget = prefs.get("budget")
        budget = float(budget) if _valid_number(budget, 0) and budget > 0 else DEFAULT_BUDGET
        days = prefs.get("days")
        days = int(days) if _valid_number(days, 1, 30) else DEFAULT_DAYS
        start = prefs.get("start_date")
        try:
            start_date = date.fromisoformat(str(start)) if start else None
        except ValueError:
            start_date = None
        start_date = start_date or datetime.now(UTC).date()
        city = _first_city(raw)

        day_cost = round(budget * 0.5 / days, 2)
        now = datetime.now(UTC)
        day_plans = [
            DayPlan(
                day=i + 1,
                date=start_date + timedelta(days=i),
                destinations=[
                    ScheduledDestination(
                        id=f"fallback_{i + 1}",
                        name="Local Exploration",
                        location=city,
                        category="Cultural",
                        estimated_cost=100000,
                        duration=240,
                        coordinates=_JAKARTA,
                        tags=["local", "flexible"],
                        rating=4.0,
                        scheduled_time="09:00",
                        ml_score=0.5,
                        predicted_satisfaction=0.7,
                    )
                ],
                total_cost=day_cost,
                total_time=240,
                ml_confidence=0.3,
                optimization_reasons=["Fallback plan"],
            )
            for i in range(days)
        ]

        code = classify(error)
        return GeneratorOutput(
            success=False,
            itinerary_id=f"fallback_{int(now.timestamp() * 1000)}",
            itinerary=Itinerary(
                summary=ItinerarySummary(
                    total_days=days,
                    total_cost=budget * 0.5,
                    total_duration=days * 480,
                    confidence=0.3,
                    generated_at=now,
                ),
                days=day_plans,
                budget_breakdown=BudgetBreakdown(
                    total_budget=budget,
                    emergency_fund=0,
                    category_breakdown={
                        name: CategoryAllocation(
                            allocated=budget * share, recommended=budget * share, savings=0
                        )
                        for name, share in FALLBACK_CATEGORY_SHARES.items()
                    },
                    confidence=0.3,
                    reasoning=["Fallback mode activated"],
                ),
                ml_insights=MLInsights(
                    personalization_score=0.3,
                    predicted_user_satisfaction=0.5,
                    risk_factors=["Generated in fallback mode"],
                    recommendations=["Try again later for a personalized itinerary"],
                ),
                optimization=OptimizationMetrics(
                    time_optimization=0,
                    cost_optimization=0,
                    satisfaction_optimization=0,
                    reasoning=["Fallback mode"],
                ),
            ),
            metadata=GenerationMetadata(
                generation_time_ms=0,
                config_used=GeneratorConfig().model_dump(mode="json"),
                engine_versions={
                    "itinerary": ENGINE_VERSION,
                    "budget": ENGINE_VERSION,
                    "ml": ENGINE_VERSION,
                },
            ),
            errors=[
                OutputError(
                    code=code.value if code else "UNKNOWN_ERROR",
                    message=str(error) or type(error).__name__,
                    severity=Level.high,
                    recoverable=False,
                )
            ],
            warnings=[
                OutputWarning(
                    code="FALLBACK_MODE",
                    message="Generated itinerary using fallback mode",
                    suggestion="Try again later for a personalized itinerary",
                )
            ],
        )
