"""Driver and operator route endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import PlainTextResponse

from ...schemas.schedule import ReconstructResponse
from ...schemas.tracking import (
    CheckpointUpdateRequest,
    OverviewStopModel,
    PlanRouteRequest,
    PlanRouteResponse,
    RouteOverviewResponse,
    StartRouteRequest,
    StartRouteResponse,
)
from ...services.outputs.schedule_formatter import overview_to_csv
from ...services.routing.service import plan_route
from ...services.schedule import ScheduleOptions, format_clock, reconstruct, resolve_legs
from ...services.tracking.service import (
    RouteNotFoundError,
    RouteOverview,
    get_route_overview,
    personal_route_link,
    record_stop_progress,
    start_route,
)
from .schedule import entry_to_model, stops_from_models

router = APIRouter(prefix="/routes", tags=["routes"])


def _overview_to_response(overview: RouteOverview) -> RouteOverviewResponse:
    return RouteOverviewResponse(
        route_id=overview.route.route_id,
        name=overview.route.name,
        status=overview.route.status,
        planned_start=format_clock(overview.planned_start),
        planned_end=format_clock(overview.planned_end),
        expected_end=format_clock(overview.expected_end),
        stops=[
            OverviewStopModel(
                stop_index=row.stop.index,
                name=row.stop.name,
                address=row.stop.address,
                planned_arrival=row.planned.arrival,
                planned_departure=row.planned.departure,
                arrival=row.current.arrival,
                departure=row.current.departure,
                is_actual=row.current.is_actual,
                actual_arrival_time=row.actual_arrival_time,
                actual_departure_time=row.actual_departure_time,
            )
            for row in overview.rows
        ],
    )


def _load_overview(route_id: str) -> RouteOverview:
    try:
        return get_route_overview(route_id)
    except RouteNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error building overview for route {route_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to build route overview: {str(exc)}"
        ) from exc


@router.get("/{route_id}/overview", response_model=RouteOverviewResponse, status_code=status.HTTP_200_OK)
def route_overview(route_id: str) -> RouteOverviewResponse:
    return _overview_to_response(_load_overview(route_id))


@router.get("/{route_id}/overview.csv", response_class=PlainTextResponse, status_code=status.HTTP_200_OK)
def route_overview_csv(route_id: str) -> PlainTextResponse:
    overview = _load_overview(route_id)
    return PlainTextResponse(
        overview_to_csv(overview),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="route_{route_id}_overview.csv"'},
    )


@router.post("/{route_id}/start", response_model=StartRouteResponse, status_code=status.HTTP_200_OK)
def start(route_id: str, payload: StartRouteRequest | None = None) -> StartRouteResponse:
    payload = payload or StartRouteRequest()
    try:
        result = start_route(route_id, started_at=payload.started_at, notify=payload.notify)
    except RouteNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error starting route {route_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to start route: {str(exc)}"
        ) from exc

    return StartRouteResponse(
        route_id=result.route_id,
        started_at=result.started_at,
        live_route_link=personal_route_link(result.route_id, result.live_token),
        stop_links={
            index: personal_route_link(result.route_id, token)
            for index, token in result.stop_tokens.items()
        },
        persisted=result.persisted,
        webhooks_sent=result.webhooks_sent,
        emails_sent=result.emails_sent,
        schedule=[entry_to_model(entry) for entry in result.schedule],
    )


@router.put(
    "/{route_id}/checkpoints/{stop_index}",
    response_model=ReconstructResponse,
    status_code=status.HTTP_200_OK,
)
def update_checkpoint(route_id: str, stop_index: int, payload: CheckpointUpdateRequest) -> ReconstructResponse:
    """Record a driver's arrival and/or departure at a stop."""
    try:
        schedule = record_stop_progress(
            route_id,
            stop_index,
            arrival=payload.actual_arrival_time,
            departure=payload.actual_departure_time,
        )
        return ReconstructResponse(schedule=[entry_to_model(entry) for entry in schedule])
    except RouteNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error recording checkpoint {stop_index} for route {route_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to record checkpoint: {str(exc)}"
        ) from exc


@router.post("/plan", response_model=PlanRouteResponse, status_code=status.HTTP_200_OK)
def plan(payload: PlanRouteRequest) -> PlanRouteResponse:
    """Compute travel legs for the stops in the given order."""
    try:
        route_plan, route_data = plan_route(
            origin=payload.origin,
            stops=stops_from_models(payload.stops),
            service_time_minutes=payload.service_time_minutes,
            route_date=payload.route_date,
            route_id=payload.route_id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ConnectionError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error planning route: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to plan route: {str(exc)}"
        ) from exc

    planned = reconstruct(route_plan, [], ScheduleOptions.from_settings(service_date=payload.route_date))
    return PlanRouteResponse(
        total_duration_seconds=route_plan.total_duration_seconds,
        total_distance_meters=route_plan.total_distance_meters,
        legs=resolve_legs(route_plan),
        route_data=route_data,
        schedule=[entry_to_model(entry) for entry in planned],
    )
