"""Live tracking and driver progress schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from .schedule import ScheduleEntryModel, StopModel


class LiveStopModel(BaseModel):
    stop_index: int
    name: str
    address: Optional[str] = None
    arrival: str
    departure: str
    is_actual: bool
    estimated_minutes_from_now: Optional[int] = None


class LiveRouteResponse(BaseModel):
    route_id: str
    name: str
    route_date: Optional[date] = None
    status: str
    started_at: Optional[datetime] = None
    target_stop_index: Optional[int] = None
    poll_interval_seconds: int
    generated_at: datetime
    stops: List[LiveStopModel]


class OverviewStopModel(BaseModel):
    stop_index: int
    name: str
    address: Optional[str] = None
    planned_arrival: str
    planned_departure: str
    arrival: str
    departure: str
    is_actual: bool
    actual_arrival_time: Optional[datetime] = None
    actual_departure_time: Optional[datetime] = None


class RouteOverviewResponse(BaseModel):
    route_id: str
    name: str
    status: str
    planned_start: str
    planned_end: str
    expected_end: str
    stops: List[OverviewStopModel]


class CheckpointUpdateRequest(BaseModel):
    actual_arrival_time: Optional[datetime] = None
    actual_departure_time: Optional[datetime] = None


class StartRouteRequest(BaseModel):
    started_at: Optional[datetime] = None
    notify: bool = True


class StartRouteResponse(BaseModel):
    route_id: str
    started_at: datetime
    live_route_link: str
    stop_links: Dict[str, str]
    persisted: bool
    webhooks_sent: int
    emails_sent: int
    schedule: List[ScheduleEntryModel]


class PlanRouteRequest(BaseModel):
    origin: Tuple[float, float] = Field(..., description="(longitude, latitude) of the start and end point.")
    stops: List[StopModel] = Field(..., min_length=1)
    service_time_minutes: Optional[float] = Field(None, ge=0)
    route_date: Optional[date] = None
    route_id: Optional[str] = Field(default=None, description="Store the computed route data on this route.")


class PlanRouteResponse(BaseModel):
    total_duration_seconds: float
    total_distance_meters: Optional[float] = None
    legs: List[float]
    route_data: dict
    schedule: List[ScheduleEntryModel]


class WebhookRequest(BaseModel):
    webhook_url: str = Field(..., min_length=1)
    template_type: str = Field(..., min_length=1)
    data: dict = Field(default_factory=dict)


class EmailRequest(BaseModel):
    from_email: str = Field(..., alias="from")
    to: str | List[str]
    subject: str = Field(..., min_length=1)
    html: str = Field(..., min_length=1)

    model_config = {"populate_by_name": True}
