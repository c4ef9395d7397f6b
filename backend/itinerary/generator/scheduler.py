"""Day structure scheduling.

Single-pass greedy placement: candidates are ordered once, then placed on
the timeline while they fit. The result is deterministic but not cost- or
satisfaction-optimal; that is a known limitation of the approach.
"""

import functools
import logging
from collections.abc import Sequence

from pydantic import BaseModel, Field

from backend.itinerary.models.common import format_hhmm, parse_hhmm
from backend.itinerary.models.config import DayStructureConfig
from backend.itinerary.models.input import Destination, GeneratorInput, TravelConstraints
from backend.itinerary.models.output import FreeTimeSlot, TimeSlot

logger = logging.getLogger(__name__)

FREE_TIME_THRESHOLD_MIN = 60
FREE_TIME_SUGGESTION = "Free time for relaxation or spontaneous activities"
RATING_TIE_BAND = 0.5


class PlacedDestination(BaseModel):
    """A destination with its assigned start time."""

    destination: Destination
    scheduled_time: str


class DaySchedule(BaseModel):
    """Output of scheduling one day."""

    day: int
    scheduled: list[PlacedDestination] = Field(default_factory=list)
    breaks: list[TimeSlot] = Field(default_factory=list)
    free_time_slots: list[FreeTimeSlot] = Field(default_factory=list)
    day_start: str
    day_end: str
    buffer_minutes: int


def _compare(must_visit: set[str], a: Destination, b: Destination) -> int:
    a_must = a.id in must_visit
    b_must = b.id in must_visit
    if a_must != b_must:
        return -1 if a_must else 1
    if abs(a.rating - b.rating) > RATING_TIE_BAND:
        return -1 if a.rating > b.rating else 1
    return a.duration - b.duration


def order_candidates(
    destinations: Sequence[Destination], must_visit: set[str]
) -> list[Destination]:
    """Sort by must-visit, then rating; ratings within 0.5 prefer shorter visits."""
    return sorted(destinations, key=functools.cmp_to_key(functools.partial(_compare, must_visit)))


def resolve_day_window(
    config: DayStructureConfig, constraints: TravelConstraints | None
) -> tuple[int, int]:
    """Day window in minutes; traveler constraints override the config."""
    start = config.preferred_start_time
    end = config.preferred_end_time
    if constraints is not None:
        start = constraints.preferred_start_time or start
        end = constraints.preferred_end_time or end
    start_min, end_min = parse_hhmm(start), parse_hhmm(end)
    if start_min >= end_min:
        logger.warning(
            "Constraint window is empty, using configured day window",
            extra={"start": start, "end": end},
        )
        start_min = parse_hhmm(config.preferred_start_time)
        end_min = parse_hhmm(config.preferred_end_time)
    return start_min, end_min


class DayStructureScheduler:
    """Lays out a day's destinations into a time-boxed schedule."""

    def __init__(self, config: DayStructureConfig, include_free_time: bool = True) -> None:
        self.config = config
        self.include_free_time = include_free_time

    def plan_day(
        self,
        destinations: Sequence[Destination],
        day: int,
        gen_input: GeneratorInput,
    ) -> DaySchedule:
        """Schedule one day.

        Args:
            destinations: Candidates for this day, already density-filtered.
            day: 1-based day index.
            gen_input: Full generation input (for must-visit and time constraints).

        Returns:
            DaySchedule where every placement satisfies
            ``start + duration + buffer <= day end``.
        """
        cfg = self.config
        start_min, end_min = resolve_day_window(cfg, gen_input.preferences.constraints)
        buffer = cfg.buffer_time_minutes

        ordered = order_candidates(destinations, gen_input.preferences.must_visit)

        clock = start_min
        scheduled: list[PlacedDestination] = []
        breaks: list[TimeSlot] = []
        scheduled_minutes = 0
        break_minutes = 0

        for dest in ordered:
            if len(scheduled) >= cfg.max_daily_activities:
                break
            if clock + dest.duration + buffer > end_min:
                continue

            scheduled.append(
                PlacedDestination(destination=dest, scheduled_time=format_hhmm(clock))
            )
            scheduled_minutes += dest.duration
            clock += dest.duration + buffer

            # Break after every second placement
            if (
                cfg.include_breaks
                and len(scheduled) % 2 == 0
                and clock + cfg.break_duration <= end_min
            ):
                breaks.append(
                    TimeSlot(
                        start=format_hhmm(clock),
                        end=format_hhmm(clock + cfg.break_duration),
                        duration=cfg.break_duration,
                    )
                )
                break_minutes += cfg.break_duration
                clock += cfg.break_duration

        free_time_slots: list[FreeTimeSlot] = []
        free_minutes = (end_min - start_min) - scheduled_minutes - break_minutes
        if self.include_free_time and free_minutes > FREE_TIME_THRESHOLD_MIN and clock < end_min:
            free_time_slots.append(
                FreeTimeSlot(
                    start=format_hhmm(clock),
                    end=format_hhmm(end_min),
                    duration=end_min - clock,
                    suggestions=[FREE_TIME_SUGGESTION],
                )
            )

        return DaySchedule(
            day=day,
            scheduled=scheduled,
            breaks=breaks,
            free_time_slots=free_time_slots,
            day_start=format_hhmm(start_min),
            day_end=format_hhmm(end_min),
            buffer_minutes=buffer,
        )
