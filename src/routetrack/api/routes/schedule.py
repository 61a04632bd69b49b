"""Schedule reconstruction endpoint."""

from __future__ import annotations

import logging
from typing import Sequence

from fastapi import APIRouter, HTTPException, status

from ...config import parse_clock
from ...models.domain import Checkpoint, RoutePlan, ScheduleEntry, Stop
from ...schemas.schedule import (
    CheckpointModel,
    ReconstructRequest,
    ReconstructResponse,
    RoutePlanModel,
    ScheduleEntryModel,
    ScheduleOptionsModel,
    StopModel,
)
from ...services.schedule import ScheduleOptions, reconstruct

router = APIRouter(prefix="/schedule", tags=["schedule"])


def stops_from_models(stops: Sequence[StopModel]) -> list[Stop]:
    return [
        Stop(
            index=index,
            name=stop.name or f"Stop {index + 1}",
            address=stop.address,
            coordinates=stop.coordinates,
            email=stop.email,
            phone=stop.phone,
        )
        for index, stop in enumerate(stops)
    ]


def plan_from_model(model: RoutePlanModel) -> RoutePlan:
    return RoutePlan(
        stops=stops_from_models(model.stops),
        total_duration_seconds=model.total_duration_seconds,
        legs=list(model.legs) if model.legs is not None else None,
        service_time_minutes=model.service_time_minutes,
        route_date=model.route_date,
    )


def checkpoint_from_model(model: CheckpointModel) -> Checkpoint:
    return Checkpoint(
        stop_index=model.stop_index,
        actual_arrival_time=model.actual_arrival_time,
        actual_departure_time=model.actual_departure_time,
        route_started_at=model.route_started_at,
    )


def options_from_model(model: ScheduleOptionsModel | None) -> ScheduleOptions:
    if model is None:
        return ScheduleOptions.from_settings()
    overrides: dict = {"service_date": model.service_date}
    if model.service_time_minutes is not None:
        overrides["service_time_minutes"] = model.service_time_minutes
    if model.default_departure_time:
        overrides["default_departure"] = parse_clock(model.default_departure_time)
    return ScheduleOptions.from_settings(**overrides)


def entry_to_model(entry: ScheduleEntry) -> ScheduleEntryModel:
    return ScheduleEntryModel(
        stop_index=entry.stop_index,
        arrival=entry.arrival,
        departure=entry.departure,
        arrival_at=entry.arrival_at,
        departure_at=entry.departure_at,
        is_actual=entry.is_actual,
        estimated_minutes_from_now=entry.estimated_minutes_from_now,
    )


@router.post("/reconstruct", response_model=ReconstructResponse, status_code=status.HTTP_200_OK)
def reconstruct_schedule(payload: ReconstructRequest) -> ReconstructResponse:
    try:
        options = options_from_model(payload.options)
        plan = plan_from_model(payload.plan)
        checkpoints = [checkpoint_from_model(checkpoint) for checkpoint in payload.checkpoints]
        schedule = reconstruct(plan, checkpoints, options)
        return ReconstructResponse(schedule=[entry_to_model(entry) for entry in schedule])
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error reconstructing schedule: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to reconstruct schedule: {str(exc)}"
        ) from exc
