"""Customer-facing live tracking endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, status

from ...schemas.tracking import LiveRouteResponse, LiveStopModel
from ...services.tracking.service import (
    InvalidTrackingTokenError,
    LiveRouteView,
    RouteNotFoundError,
    RouteNotStartedError,
    get_live_route,
)

router = APIRouter(prefix="/live", tags=["live"])


def _to_response(view: LiveRouteView) -> LiveRouteResponse:
    stops = view.route.plan.stops
    entries = view.schedule
    if view.target_stop_index is not None:
        entries = [entry for entry in entries if entry.stop_index == view.target_stop_index]
    return LiveRouteResponse(
        route_id=view.route.route_id,
        name=view.route.name,
        route_date=view.route.route_date,
        status=view.route.status,
        started_at=view.route.started_at,
        target_stop_index=view.target_stop_index,
        poll_interval_seconds=view.poll_interval_seconds,
        generated_at=view.generated_at,
        stops=[
            LiveStopModel(
                stop_index=entry.stop_index,
                name=stops[entry.stop_index].name,
                address=stops[entry.stop_index].address,
                arrival=entry.arrival,
                departure=entry.departure,
                is_actual=entry.is_actual,
                estimated_minutes_from_now=entry.estimated_minutes_from_now,
            )
            for entry in entries
        ],
    )


def _live_route(route_id: str, token: str, email: str | None) -> LiveRouteResponse:
    try:
        return _to_response(get_live_route(route_id, token, email=email))
    except (RouteNotFoundError, InvalidTrackingTokenError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RouteNotStartedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error loading live route {route_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load route data",
        ) from exc


@router.get("/{route_id}/{token}", response_model=LiveRouteResponse, status_code=status.HTTP_200_OK)
def live_route(
    route_id: str,
    token: str,
    email: str | None = Query(default=None, description="Show only the stop registered to this email."),
) -> LiveRouteResponse:
    return _live_route(route_id, token, email)


@router.get("/{route_id}/{token}/{email}", response_model=LiveRouteResponse, status_code=status.HTTP_200_OK)
def live_route_for_email(route_id: str, token: str, email: str) -> LiveRouteResponse:
    return _live_route(route_id, token, email)
