"""Domain models for routes, checkpoints and reconstructed schedules."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

ROUTE_START_INDEX = -1


@dataclass(slots=True)
class Stop:
    """A stop on a planned route; only ``index`` takes part in scheduling."""

    index: int
    name: str
    address: Optional[str] = None
    coordinates: Optional[tuple[float, float]] = None  # (longitude, latitude)
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass(slots=True)
class RoutePlan:
    """Static plan for a loop from the origin through every stop and back.

    ``legs`` holds travel durations in seconds for
    ``[start->stop0, stop0->stop1, ..., stopN-1->start]``.
    A missing ``service_time_minutes`` uses the configured default dwell.
    """

    stops: List[Stop]
    total_duration_seconds: float = 0.0
    legs: Optional[List[float]] = None
    service_time_minutes: Optional[float] = None
    route_date: Optional[date] = None
    total_distance_meters: Optional[float] = None


@dataclass(slots=True)
class Checkpoint:
    """A recorded real-world event for a stop, or the route start (index -1)."""

    stop_index: int
    actual_arrival_time: Optional[datetime] = None
    actual_departure_time: Optional[datetime] = None
    route_started_at: Optional[datetime] = None

    @property
    def is_route_start(self) -> bool:
        return self.stop_index == ROUTE_START_INDEX

    @property
    def started_at(self) -> Optional[datetime]:
        return self.route_started_at or self.actual_arrival_time or self.actual_departure_time


@dataclass(slots=True)
class ScheduleEntry:
    stop_index: int
    arrival: str
    departure: str
    arrival_at: datetime
    departure_at: datetime
    is_actual: bool
    estimated_minutes_from_now: Optional[int] = None


@dataclass(slots=True)
class RouteRecord:
    """A stored route together with its live-tracking state."""

    route_id: str
    owner_id: Optional[str]
    name: str
    route_date: Optional[date]
    status: str
    plan: RoutePlan
    started_at: Optional[datetime] = None
    live_token: Optional[str] = None
    stop_tokens: dict[str, str] = field(default_factory=dict)
    driver_id: Optional[str] = None
    departure_time: Optional[str] = None

    @property
    def is_started(self) -> bool:
        return self.status == "started"
