"""Rebuild a route's arrival/departure schedule from its plan and checkpoints.

The schedule is recomputed from scratch on every call:

1. The route start (checkpoint ``-1``) anchors the schedule. Without it the
   route has not started and every stop is projected from the planned
   departure time.
2. The highest stop index with an actual arrival or departure is the
   progress frontier ``k``. Stops ``0..k`` report their recorded times.
3. Stops after ``k`` are projected from the frontier's departure by adding
   the leg into each stop plus the dwell at every stop passed on the way.

Malformed plan data never raises: leg lists of the wrong length or with
non-numeric values fall back to an even split of the total duration, and
negative legs are clamped to zero.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Optional

from ...config import parse_clock, settings
from ...models.domain import ROUTE_START_INDEX, Checkpoint, RoutePlan, ScheduleEntry

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_TIME_MINUTES = 5.0
DEFAULT_DEPARTURE = time(8, 0)
# Calendar day for planned schedules when neither caller nor plan provides one.
PLANNING_EPOCH = date(2000, 1, 1)
MAX_LEG_SECONDS = 7 * 24 * 3600.0


@dataclass(slots=True, frozen=True)
class ScheduleOptions:
    """Explicit configuration for a reconstruction.

    ``service_time_minutes`` overrides the plan's dwell time when set.
    ``service_date`` is the day the planned departure falls on; it defaults
    to the plan's route date.
    """

    service_time_minutes: Optional[float] = None
    default_departure: time = DEFAULT_DEPARTURE
    service_date: Optional[date] = None
    default_service_time_minutes: float = DEFAULT_SERVICE_TIME_MINUTES

    @classmethod
    def from_settings(cls, **overrides: Any) -> "ScheduleOptions":
        values: dict[str, Any] = {
            "default_departure": parse_clock(settings.default_departure_time),
            "default_service_time_minutes": settings.default_service_time_minutes,
        }
        values.update(overrides)
        return cls(**values)


def format_clock(value: datetime) -> str:
    return value.strftime("%H:%M")


def _clean_seconds(value: Any) -> Optional[float]:
    """Return a usable non-negative duration, or None when the value is not a number."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return min(max(number, 0.0), MAX_LEG_SECONDS)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def even_leg_seconds(plan: RoutePlan) -> float:
    total = _clean_seconds(plan.total_duration_seconds) or 0.0
    return total / (len(plan.stops) + 1)


def resolve_legs(plan: RoutePlan) -> list[float]:
    """Per-leg travel seconds for ``[start->stop0, ..., stopN-1->start]``."""
    leg_count = len(plan.stops) + 1
    if plan.legs is not None:
        if len(plan.legs) == leg_count:
            resolved = [_clean_seconds(value) for value in plan.legs]
            if all(value is not None for value in resolved):
                return resolved  # type: ignore[return-value]
            logger.debug("Plan legs contain non-numeric durations, using even split")
        else:
            logger.debug(
                f"Plan has {len(plan.legs)} legs for {len(plan.stops)} stops, using even split"
            )
    return [even_leg_seconds(plan)] * leg_count


def service_seconds(plan: RoutePlan, options: ScheduleOptions) -> float:
    for candidate in (options.service_time_minutes, plan.service_time_minutes):
        if candidate is None:
            continue
        minutes = _clean_seconds(candidate)
        if minutes is not None:
            return minutes * 60.0
    return max(float(options.default_service_time_minutes), 0.0) * 60.0


def planned_departure(plan: RoutePlan, options: ScheduleOptions) -> datetime:
    service_date = options.service_date or plan.route_date or PLANNING_EPOCH
    return datetime.combine(service_date, options.default_departure)


def align_timezone(value: Optional[datetime], reference: datetime) -> Optional[datetime]:
    # Mixed naive/aware values cannot be compared; adopt the reference's tzinfo.
    if value is None:
        return None
    if value.tzinfo is None and reference.tzinfo is not None:
        return value.replace(tzinfo=reference.tzinfo)
    if value.tzinfo is not None and reference.tzinfo is None:
        return value.replace(tzinfo=None)
    return value


def _merge(existing: Checkpoint, update: Checkpoint) -> Checkpoint:
    return Checkpoint(
        stop_index=existing.stop_index,
        actual_arrival_time=update.actual_arrival_time or existing.actual_arrival_time,
        actual_departure_time=update.actual_departure_time or existing.actual_departure_time,
        route_started_at=update.route_started_at or existing.route_started_at,
    )


def _index_checkpoints(
    checkpoints: Iterable[Checkpoint] | None, stop_count: int
) -> tuple[Optional[datetime], dict[int, Checkpoint]]:
    started_at: Optional[datetime] = None
    by_index: dict[int, Checkpoint] = {}
    for checkpoint in checkpoints or ():
        index = checkpoint.stop_index
        if index == ROUTE_START_INDEX:
            if checkpoint.started_at is not None:
                started_at = checkpoint.started_at
            continue
        if not isinstance(index, int) or not 0 <= index < stop_count:
            logger.debug(f"Ignoring checkpoint for unknown stop index {index!r}")
            continue
        existing = by_index.get(index)
        by_index[index] = checkpoint if existing is None else _merge(existing, checkpoint)

    if started_at is not None:
        by_index = {
            index: Checkpoint(
                stop_index=index,
                actual_arrival_time=align_timezone(checkpoint.actual_arrival_time, started_at),
                actual_departure_time=align_timezone(checkpoint.actual_departure_time, started_at),
            )
            for index, checkpoint in by_index.items()
        }
    return started_at, by_index


def _actual_departure(checkpoint: Checkpoint | None, service: timedelta) -> Optional[datetime]:
    if checkpoint is None:
        return None
    arrival = checkpoint.actual_arrival_time
    departure = checkpoint.actual_departure_time
    if departure is not None:
        return max(departure, arrival) if arrival is not None else departure
    if arrival is not None:
        return arrival + service
    return None


def _entry(
    index: int,
    arrival: datetime,
    departure: datetime,
    is_actual: bool,
    estimated_minutes: Optional[int] = None,
) -> ScheduleEntry:
    return ScheduleEntry(
        stop_index=index,
        arrival=format_clock(arrival),
        departure=format_clock(departure),
        arrival_at=arrival,
        departure_at=departure,
        is_actual=is_actual,
        estimated_minutes_from_now=estimated_minutes,
    )


def _project(
    legs: list[float],
    service: timedelta,
    anchor: datetime,
    first_index: int,
    stop_count: int,
) -> list[ScheduleEntry]:
    entries: list[ScheduleEntry] = []
    elapsed = 0.0
    for index in range(first_index, stop_count):
        if index > first_index:
            elapsed += service.total_seconds()
        elapsed += legs[index]
        arrival = anchor + timedelta(seconds=elapsed)
        entries.append(
            _entry(index, arrival, arrival + service, False, _round_half_up(elapsed / 60.0))
        )
    return entries


def _recorded_ceilings(by_index: dict[int, Checkpoint], anchor_index: int) -> dict[int, Optional[datetime]]:
    """Earliest recorded time at any later stop up to the anchor, per stop index.

    Gap stops are projected but never past a stop the driver already reached.
    """
    ceilings: dict[int, Optional[datetime]] = {}
    ceiling: Optional[datetime] = None
    for index in range(anchor_index, -1, -1):
        ceilings[index] = ceiling
        checkpoint = by_index.get(index)
        recorded = (checkpoint.actual_arrival_time or checkpoint.actual_departure_time) if checkpoint else None
        if recorded is not None:
            ceiling = recorded if ceiling is None else min(ceiling, recorded)
    return ceilings


def find_anchor(
    by_index: dict[int, Checkpoint],
    stop_count: int,
    started_at: datetime,
    service: timedelta,
) -> tuple[int, datetime]:
    """Highest stop index with recorded progress and its (possibly inferred) departure.

    Earlier stops without checkpoints do not move the anchor back.
    """
    for index in range(stop_count - 1, -1, -1):
        departure = _actual_departure(by_index.get(index), service)
        if departure is not None:
            return index, departure
    return ROUTE_START_INDEX, started_at


def reconstruct(
    plan: RoutePlan,
    checkpoints: Iterable[Checkpoint] | None,
    options: ScheduleOptions | None = None,
) -> list[ScheduleEntry]:
    """Return one :class:`ScheduleEntry` per stop, in stop order."""
    options = options or ScheduleOptions()
    stop_count = len(plan.stops)
    if stop_count == 0:
        return []

    legs = resolve_legs(plan)
    service = timedelta(seconds=service_seconds(plan, options))
    started_at, by_index = _index_checkpoints(checkpoints, stop_count)

    if started_at is None:
        return _project(legs, service, planned_departure(plan, options), 0, stop_count)

    anchor_index, anchor_departure = find_anchor(by_index, stop_count, started_at, service)

    ceilings = _recorded_ceilings(by_index, anchor_index)
    entries: list[ScheduleEntry] = []
    previous_departure = started_at
    for index in range(anchor_index + 1):
        checkpoint = by_index.get(index)
        arrival = checkpoint.actual_arrival_time if checkpoint else None
        if arrival is not None:
            departure = _actual_departure(checkpoint, service)
            entries.append(_entry(index, arrival, departure, True))
        else:
            # Gap in recorded progress: treat the stop as if it had no data.
            arrival = previous_departure + timedelta(seconds=legs[index])
            departure = arrival + service
            recorded = checkpoint.actual_departure_time if checkpoint else None
            if recorded is not None:
                departure = recorded
                arrival = min(arrival, recorded)
            elif ceilings[index] is not None:
                arrival = min(arrival, ceilings[index])
                departure = min(departure, ceilings[index])
            entries.append(_entry(index, arrival, departure, False))
        previous_departure = departure

    entries.extend(_project(legs, service, anchor_departure, anchor_index + 1, stop_count))
    return entries


def estimate_end_time(
    plan: RoutePlan,
    start: datetime,
    options: ScheduleOptions | None = None,
) -> datetime:
    """Planned return to the origin when leaving at ``start``, dwell included."""
    options = options or ScheduleOptions()
    travel = sum(resolve_legs(plan))
    dwell = service_seconds(plan, options) * len(plan.stops)
    return start + timedelta(seconds=travel + dwell)
