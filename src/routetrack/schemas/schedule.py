"""Schedule reconstruction request/response schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field


class StopModel(BaseModel):
    name: str = ""
    address: Optional[str] = None
    coordinates: Optional[Tuple[float, float]] = Field(default=None, description="(longitude, latitude)")
    email: Optional[str] = None
    phone: Optional[str] = None


class RoutePlanModel(BaseModel):
    stops: List[StopModel]
    total_duration_seconds: float = 0.0
    legs: Optional[List[Optional[float]]] = Field(
        default=None,
        description="Travel seconds for start->stop0, ..., stopN-1->start (N+1 values).",
    )
    service_time_minutes: Optional[float] = None
    route_date: Optional[date] = None


class CheckpointModel(BaseModel):
    stop_index: int = Field(..., ge=-1, description="-1 for the route start, otherwise the stop position.")
    actual_arrival_time: Optional[datetime] = None
    actual_departure_time: Optional[datetime] = None
    route_started_at: Optional[datetime] = None


class ScheduleOptionsModel(BaseModel):
    service_time_minutes: Optional[float] = Field(None, ge=0)
    default_departure_time: Optional[str] = Field(None, description="Planned departure as HH:MM.")
    service_date: Optional[date] = None


class ReconstructRequest(BaseModel):
    plan: RoutePlanModel
    checkpoints: List[CheckpointModel] = Field(default_factory=list)
    options: Optional[ScheduleOptionsModel] = None


class ScheduleEntryModel(BaseModel):
    stop_index: int
    arrival: str
    departure: str
    arrival_at: datetime
    departure_at: datetime
    is_actual: bool
    estimated_minutes_from_now: Optional[int] = None


class ReconstructResponse(BaseModel):
    schedule: List[ScheduleEntryModel]
