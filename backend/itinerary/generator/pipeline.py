"""Itinerary generator: validation, cached build with timeout, recovery, fallback."""

import logging
import math
import random
import threading
import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import UTC, datetime, timedelta
from typing import Any

import redis

from backend.itinerary.adapters.oracle import RecommendationOracle
from backend.itinerary.config import Settings
from backend.itinerary.errors import (
    ConfigValidationError,
    ErrorCode,
    InputValidationError,
    PipelineError,
    StorageExhaustedError,
)
from backend.itinerary.metrics.core import record_generation
from backend.itinerary.metrics.registry import MetricsClient
from backend.itinerary.models.common import Level, fingerprint
from backend.itinerary.models.config import GeneratorConfig
from backend.itinerary.models.external import Recommendation
from backend.itinerary.models.input import Destination, GeneratorInput, Preferences
from backend.itinerary.models.output import (
    Alternative,
    BudgetBreakdown,
    DayPlan,
    GenerationMetadata,
    GeneratorOutput,
    Itinerary,
    ItinerarySummary,
    OutputError,
    OutputWarning,
    ScheduledDestination,
)
from backend.itinerary.persistence.manager import PersistenceManager
from backend.itinerary.verify.schema import validate_input, validate_output

from .config_manager import default_config, merge_configs
from .costs import CostDistributionEngine
from .density import ActivityDensityManager
from .insights import cost_variability, ml_insights, optimization_metrics
from .meals import MealPlanningEngine
from .recovery import ENGINE_VERSION, ErrorRecoveryManager, RecoveryContext, classify
from .scheduler import DaySchedule, DayStructureScheduler, PlacedDestination
from .transport import TransportationModeSelector

logger = logging.getLogger(__name__)

MAX_ALTERNATIVES = 2
_INPUT_STAGE = "input"


class GenerationCache:
    """In-memory TTL cache of generated outputs keyed by input fingerprint."""

    def __init__(self) -> None:
        self._store: dict[str, tuple[GeneratorOutput, datetime]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> GeneratorOutput | None:
        """Get value from cache if not expired."""
        with self._lock:
            if key not in self._store:
                return None
            value, expires_at = self._store[key]
            if datetime.now(UTC) > expires_at:
                del self._store[key]
                return None
            return value.model_copy(deep=True)

    def set(self, key: str, value: GeneratorOutput, ttl_seconds: float) -> None:
        """Set value in cache with TTL."""
        with self._lock:
            expires_at = datetime.now(UTC) + timedelta(seconds=ttl_seconds)
            self._store[key] = (value.model_copy(deep=True), expires_at)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


def new_itinerary_id(user_id: str, now: datetime | None = None) -> str:
    """Unique plan id: ``itinerary_<user>_<epoch ms>_<6 hex>``."""
    now = now or datetime.now(UTC)
    return f"itinerary_{user_id}_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:6]}"


def _crowd_level(dest: Destination, prefs: Preferences) -> Level:
    if prefs.constraints is not None and prefs.constraints.avoid_crowds:
        return Level.low
    if dest.rating > 4.5:
        return Level.high
    if dest.rating > 4.0:
        return Level.medium
    return Level.low


def split_into_days(destinations: Sequence[Destination], days: int) -> list[list[Destination]]:
    """Chunk destinations by ceil(n/days); days past the pool reuse destinations round-robin."""
    if not destinations or days < 1:
        return [[] for _ in range(max(0, days))]
    size = math.ceil(len(destinations) / days)
    chunks = []
    for i in range(days):
        chunk = list(destinations[i * size : (i + 1) * size])
        if not chunk:
            chunk = [destinations[i % len(destinations)]]
        chunks.append(chunk)
    return chunks


class ItineraryGenerator:
    """Turns a generation input into a scheduled multi-day plan.

    Collaborators are injected; the generator reads no globals.
    """

    def __init__(
        self,
        settings: Settings,
        oracle: RecommendationOracle,
        persistence: PersistenceManager | None = None,
        config: GeneratorConfig | Mapping[str, Any] | None = None,
        metrics: MetricsClient | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.oracle = oracle
        self.persistence = persistence
        self.metrics = metrics
        # Raises ConfigValidationError on an invalid config
        self.config = merge_configs(default_config(), config)
        self.recovery = ErrorRecoveryManager(settings, sleep=sleep, metrics=metrics)
        self.cache = GenerationCache()
        self._rng = random.Random(settings.rng_seed)
        self._rng_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.performance.max_concurrent_requests,
            thread_name_prefix="itinerary-build",
        )
        self._results: dict[str, GeneratorOutput] = {}
        self._counter_lock = threading.Lock()
        self._cache_hits = 0
        self._oracle_calls = 0

    def get_config(self) -> GeneratorConfig:
        return self.config

    def update_config(self, overrides: GeneratorConfig | Mapping[str, Any]) -> GeneratorConfig:
        """Merge overrides into a new config; the previous object is left untouched.

        Raises:
            ConfigValidationError: If the merged config is invalid.
        """
        self.config = merge_configs(self.config, overrides)
        self.cache.clear()
        logger.info("Generator config updated")
        return self.config

    def get_itinerary(self, itinerary_id: str) -> GeneratorOutput | None:
        if self.persistence is not None:
            record = self.persistence.load(itinerary_id)
            return record.output if record is not None else None
        return self._results.get(itinerary_id)

    def list_itineraries(self) -> list[str]:
        if self.persistence is not None:
            return self.persistence.list_itineraries()
        return list(self._results)

    def close(self) -> None:
        """Stop the build pool; running builds are abandoned."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def generate(
        self, gen_input: GeneratorInput | Mapping[str, Any], use_cache: bool = True
    ) -> GeneratorOutput:
        """Generate a plan, recovering from classified errors.

        Args:
            gen_input: A model or a raw dict. A raw ``config`` entry may be
                partial; it is merged onto the generator's config.
            use_cache: Whether a cached plan for the same input may be returned.

        Returns:
            A successful plan, or the fallback plan (``success=False``).

        Raises:
            InputValidationError: If the input stays invalid after default
                substitution.
        """
        started = time.perf_counter()
        if isinstance(gen_input, GeneratorInput):
            raw = gen_input.model_dump(mode="json")
            raw["config"] = gen_input.config.model_dump(mode="json", exclude_unset=True)
        else:
            raw = dict(gen_input)

        context = RecoveryContext(raw_input=raw)
        last_error: Exception | None = None
        while True:
            try:
                output, from_cache = self._attempt(context, started, use_cache)
            except Exception as e:
                last_error = e
                code = classify(e)
                if self._is_input_failure(e) and ErrorCode.VALIDATION_ERROR in context.applied:
                    raise InputValidationError(e.details["errors"]) from e
                if not self._should_recover(code, context):
                    logger.error(
                        "Generation failed, returning fallback plan",
                        extra={"error_code": code.value if code else None, "error": str(e)},
                    )
                    break
                logger.warning(
                    "Generation attempt failed, recovering",
                    extra={"error_code": code.value, "retry_count": context.retry_count},
                )
                context = self.recovery.execute_recovery(code, context)
                continue

            self._record(output, raw, started, len(context.applied), from_cache, None)
            return output

        fallback = self.recovery.get_fallback_data(last_error, context.raw_input)
        code = classify(last_error)
        self._record(
            fallback, raw, started, len(context.applied), False, code.value if code else None
        )
        return fallback

    @staticmethod
    def _is_input_failure(exc: Exception) -> bool:
        return (
            isinstance(exc, PipelineError)
            and isinstance(exc.details, dict)
            and exc.details.get("stage") == _INPUT_STAGE
        )

    def _should_recover(self, code: ErrorCode | None, context: RecoveryContext) -> bool:
        if code is None or context.retry_count >= self.settings.recovery_max_attempts:
            return False
        if not self.recovery.can_recover(code, context.retry_count):
            return False
        # Each strategy relaxes once; network errors retry with backoff instead
        return code is ErrorCode.NETWORK_ERROR or code not in context.applied

    def _record(
        self,
        output: GeneratorOutput,
        raw: Mapping[str, Any],
        started: float,
        recovery_rounds: int,
        from_cache: bool,
        error_code: str | None,
    ) -> None:
        latency_ms = int((time.perf_counter() - started) * 1000)
        user_id = raw.get("user_id")
        record_generation(
            itinerary_id=output.itinerary_id,
            user_id=user_id if isinstance(user_id, str) else "unknown",
            latency_ms=latency_ms,
            success=output.success,
            recovery_rounds=recovery_rounds,
            from_cache=from_cache,
            error_code=error_code,
        )
        if self.metrics:
            self.metrics.inc_generation("success" if output.success else "fallback", latency_ms)

    def _attempt(
        self, context: RecoveryContext, started: float, use_cache: bool = True
    ) -> tuple[GeneratorOutput, bool]:
        raw = context.raw_input
        raw_config = raw.get("config") or {}
        body = {k: v for k, v in raw.items() if k != "config"}

        result = validate_input(body)
        if not result.is_valid or result.input is None:
            raise PipelineError(
                ErrorCode.VALIDATION_ERROR,
                "Input validation failed",
                details={"stage": _INPUT_STAGE, "errors": result.errors},
            )

        if not isinstance(raw_config, (Mapping, GeneratorConfig)):
            raise PipelineError(ErrorCode.CONFIG_ERROR, "config must be an object")
        try:
            config = merge_configs(self.config, raw_config)
        except ConfigValidationError as e:
            raise PipelineError(ErrorCode.CONFIG_ERROR, str(e), details=e.errors) from e

        gen_input = result.input.model_copy(update={"config": config})

        cache_key = fingerprint(gen_input.model_dump(mode="json"))
        if config.performance.enable_caching and use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                with self._counter_lock:
                    self._cache_hits += 1
                logger.info("Generation cache hit", extra={"itinerary_id": cached.itinerary_id})
                return cached, True

        timeout_ms = config.performance.timeout_ms
        future = self._executor.submit(self._build, gen_input, started)
        try:
            output = future.result(timeout=timeout_ms / 1000.0)
        except FuturesTimeoutError as e:
            future.cancel()
            raise PipelineError(
                ErrorCode.TIMEOUT_ERROR, f"Generation exceeded {timeout_ms} ms"
            ) from e

        check = validate_output(output)
        if not check.is_valid:
            logger.warning(
                "Output failed schema validation",
                extra={"itinerary_id": output.itinerary_id, "errors": check.errors},
            )
            output.warnings.append(
                OutputWarning(
                    code="VALIDATION_WARNING",
                    message="Generated output failed schema validation",
                    suggestion="; ".join(check.errors[:3]),
                )
            )

        if self.persistence is not None:
            try:
                self.persistence.save(
                    output.itinerary_id,
                    output,
                    owner_id=gen_input.user_id,
                    input=gen_input,
                )
            except StorageExhaustedError as e:
                output.errors.append(
                    OutputError(
                        code="PERSISTENCE_ERROR",
                        message=str(e),
                        severity=Level.medium,
                        recoverable=True,
                    )
                )
        else:
            self._results[output.itinerary_id] = output

        if config.performance.enable_caching:
            self.cache.set(cache_key, output, config.performance.cache_timeout_ms / 1000.0)
        return output, False

    def _recommend(self, gen_input: GeneratorInput) -> list[Recommendation]:
        prefs = gen_input.preferences
        candidates = gen_input.available_destinations
        try:
            recs = self.oracle.recommend(
                gen_input.user_id,
                candidates,
                limit=len(candidates),
                interests=[*prefs.interests, *prefs.themes],
            )
        except (ConnectionError, OSError, redis.exceptions.ConnectionError) as e:
            raise PipelineError(ErrorCode.NETWORK_ERROR, f"Recommendation oracle unreachable: {e}") from e
        with self._counter_lock:
            self._oracle_calls += 1
        return recs

    def _enrich(
        self,
        placed: PlacedDestination,
        by_id: Mapping[str, Recommendation],
        pool: Sequence[Destination],
        prefs: Preferences,
    ) -> ScheduledDestination:
        dest = placed.destination
        rec = by_id.get(dest.id)
        alternatives = None
        if rec is not None:
            alternatives = [
                Alternative(id=d.id, name=d.name, reason=f"Similar {d.category.lower()} option")
                for d in pool
                if d.id != dest.id and d.category == dest.category
            ][:MAX_ALTERNATIVES] or None
        return ScheduledDestination(
            **dest.model_dump(),
            scheduled_time=placed.scheduled_time,
            ml_score=rec.score if rec is not None else 0.5,
            predicted_satisfaction=rec.predicted_rating if rec is not None else dest.rating,
            crowd_level=_crowd_level(dest, prefs),
            alternatives=alternatives,
        )

    @staticmethod
    def _schedule_substitute(
        scheduler: DayStructureScheduler,
        pool: Sequence[Destination],
        day: int,
        gen_input: GeneratorInput,
    ) -> DaySchedule:
        """Place the shortest destination of the pool on a day left empty.

        Raises:
            PipelineError: DATA_MISSING if not even the shortest visit fits.
        """
        shortest = min(pool, key=lambda d: (d.duration, d.id))
        schedule = scheduler.plan_day([shortest], day, gen_input)
        if not schedule.scheduled:
            raise PipelineError(
                ErrorCode.DATA_MISSING,
                f"No destination fits the window of day {day}",
                details={"day": day, "shortest_duration": shortest.duration},
            )
        logger.info(
            "Substituted destination for empty day",
            extra={"day": day, "destination_id": shortest.id},
        )
        return schedule

    def _build(self, gen_input: GeneratorInput, started: float) -> GeneratorOutput:
        prefs = gen_input.preferences
        config = gen_input.config

        recs = self._recommend(gen_input)
        by_id = {r.id: r for r in recs}
        rank = {r.id: i for i, r in enumerate(recs)}
        ranked = sorted(
            gen_input.available_destinations, key=lambda d: rank.get(d.id, len(rank))
        )

        density = ActivityDensityManager(config.activity_density).optimize_activity_density(
            ranked, gen_input
        )
        if not density.filtered:
            raise PipelineError(
                ErrorCode.DATA_MISSING, "No destinations available after filtering"
            )

        scheduler = DayStructureScheduler(
            config.day_structure, include_free_time=config.activity_density.include_free_time
        )
        transport = TransportationModeSelector(config.transportation)
        meals = MealPlanningEngine(config.meals)
        costs = CostDistributionEngine(config.cost_distribution)
        allocations = costs.daily_allocations(prefs.budget, prefs.days)

        days: list[DayPlan] = []
        for i, chunk in enumerate(split_into_days(density.filtered, prefs.days)):
            schedule = scheduler.plan_day(chunk, i + 1, gen_input)
            substituted = not schedule.scheduled
            if substituted:
                schedule = self._schedule_substitute(scheduler, density.filtered, i + 1, gen_input)
            scheduled = [self._enrich(p, by_id, density.filtered, prefs) for p in schedule.scheduled]
            day_transport = transport.plan_day([p.destination for p in schedule.scheduled])
            city = prefs.cities[0] if prefs.cities else chunk[0].location
            day_meals = meals.plan_meals(city) if config.meals.include_meals else None

            dest_cost = sum(d.estimated_cost for d in scheduled)
            meal_cost = sum(m.estimated_cost for m in day_meals or [])
            scores = [d.ml_score for d in scheduled]
            confidence = sum(scores) / len(scores) if scores else 0.5

            reasons = [f"Scheduled {len(scheduled)} of {len(chunk)} candidates"]
            if substituted:
                reasons.append(f"No candidate fit the day window; substituted {scheduled[0].name}")
            elif len(scheduled) < len(chunk):
                reasons.append("Some destinations did not fit the day window")
            reasons.append(f"{day_transport.mode.value} selected for {day_transport.distance_km:.1f} km")

            days.append(
                DayPlan(
                    day=i + 1,
                    date=prefs.start_date + timedelta(days=i),
                    destinations=scheduled,
                    meals=day_meals,
                    transportation=day_transport,
                    breaks=schedule.breaks,
                    free_time_slots=schedule.free_time_slots,
                    budget_allocation=round(allocations[i], 2),
                    total_cost=round(dest_cost + meal_cost + day_transport.estimated_cost, 2),
                    total_time=sum(d.duration for d in scheduled),
                    ml_confidence=max(0.0, min(1.0, confidence)),
                    optimization_reasons=reasons,
                )
            )

        distribution = costs.distribute_costs(
            prefs.budget, prefs.days, density.filtered, prefs.start_date
        )
        insights = ml_insights(days, recs, gen_input)
        optimization = optimization_metrics(days, prefs.budget)
        with self._rng_lock:
            variability = cost_variability(days, gen_input, self._rng)

        now = datetime.now(UTC)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        with self._counter_lock:
            counters = {
                "cache_hits": self._cache_hits,
                "oracle_calls": self._oracle_calls,
                "processing_time": elapsed_ms,
            }

        return GeneratorOutput(
            success=True,
            itinerary_id=new_itinerary_id(gen_input.user_id, now),
            itinerary=Itinerary(
                summary=ItinerarySummary(
                    total_days=prefs.days,
                    total_cost=round(sum(d.total_cost for d in days), 2),
                    total_duration=sum(d.total_time for d in days),
                    confidence=insights.personalization_score,
                    generated_at=now,
                ),
                days=days,
                budget_breakdown=BudgetBreakdown(
                    total_budget=prefs.budget,
                    emergency_fund=distribution.emergency_fund,
                    daily_allocations=distribution.daily_allocations,
                    category_breakdown=distribution.category_breakdown,
                    optimizations=distribution.optimizations,
                    confidence=distribution.confidence,
                    reasoning=distribution.reasoning,
                ),
                ml_insights=insights,
                optimization=optimization,
                cost_variability=variability,
            ),
            metadata=GenerationMetadata(
                generation_time_ms=elapsed_ms,
                config_used=config.model_dump(mode="json"),
                engine_versions={
                    "itinerary": ENGINE_VERSION,
                    "budget": ENGINE_VERSION,
                    "ml": ENGINE_VERSION,
                },
                performance_metrics=counters,
            ),
            warnings=[OutputWarning(code="DENSITY_WARNING", message=w) for w in density.warnings],
        )
