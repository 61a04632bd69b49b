"""Translate stored route data and routing-provider payloads into route plans."""

from __future__ import annotations

import logging
import math
from datetime import date
from typing import Any, Optional, Sequence

from ...config import settings
from ...models.domain import RoutePlan, Stop

logger = logging.getLogger(__name__)


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _first(row: dict, *keys: str) -> Any:
    for key in keys:
        value = row.get(key)
        if value not in (None, ""):
            return value
    return None


def _coordinates(row: dict) -> Optional[tuple[float, float]]:
    raw = row.get("coordinates")
    if isinstance(raw, (list, tuple)) and len(raw) >= 2:
        lon, lat = _number(raw[0]), _number(raw[1])
    elif isinstance(raw, dict):
        lon = _number(_first(raw, "lng", "lon", "longitude"))
        lat = _number(_first(raw, "lat", "latitude"))
    else:
        lon = _number(_first(row, "longitude", "lng", "lon"))
        lat = _number(_first(row, "latitude", "lat"))
    if lon is None or lat is None:
        return None
    return (lon, lat)


def stops_from_rows(rows: Sequence[Any] | None) -> list[Stop]:
    """Build stops from stored stop objects, keeping their positions as indices."""
    stops: list[Stop] = []
    for index, row in enumerate(rows or []):
        if not isinstance(row, dict):
            logger.warning(f"Stop {index} is not an object, keeping a placeholder")
            stops.append(Stop(index=index, name=f"Stop {index + 1}"))
            continue
        email = _first(row, "email", "customer_email", "customerEmail")
        stops.append(
            Stop(
                index=index,
                name=str(_first(row, "name", "stop_name", "stopName") or f"Stop {index + 1}"),
                address=_first(row, "address", "stop_address", "stopAddress"),
                coordinates=_coordinates(row),
                email=str(email).strip() if email else None,
                phone=_first(row, "phone", "customer_phone", "customerPhone"),
            )
        )
    return stops


def route_data_from_directions(response: dict) -> dict:
    """Keep the parts of a Directions response that later planning needs."""
    routes = response.get("routes") or []
    if response.get("code") != "Ok" or not routes:
        raise ValueError(f"Directions response has no route: {response.get('message') or response.get('code')}")
    route = routes[0]
    return {
        "geometry": route.get("geometry"),
        "distance": route.get("distance"),
        "duration": route.get("duration"),
        "legs": [
            {"duration": leg.get("duration"), "distance": leg.get("distance")}
            for leg in route.get("legs") or []
            if isinstance(leg, dict)
        ],
        "waypoints": response.get("waypoints") or [],
    }


def _legs_from_leg_list(legs: list, stop_count: int, total: Optional[float]) -> Optional[list[float]]:
    durations = [_number(leg.get("duration")) if isinstance(leg, dict) else _number(leg) for leg in legs]
    if any(duration is None for duration in durations):
        return None
    if len(durations) == stop_count + 1:
        return durations  # type: ignore[return-value]
    if len(durations) == stop_count and total is not None:
        # Provider route ended at the last stop; derive the return leg.
        return durations + [max(total - sum(durations), 0.0)]  # type: ignore[arg-type]
    return None


def _legs_from_waypoints(waypoints: list, stop_count: int, total: Optional[float]) -> Optional[list[float]]:
    if len(waypoints) < stop_count + 1:
        return None
    cumulative = [_number(point.get("duration")) if isinstance(point, dict) else None for point in waypoints]
    if cumulative[0] is None:
        cumulative[0] = 0.0
    if any(value is None for value in cumulative[1 : stop_count + 1]):
        return None
    # Waypoint durations are cumulative from the start; differences may be negative
    # for malformed data and are clamped by the reconstructor.
    legs = [cumulative[i + 1] - cumulative[i] for i in range(stop_count)]  # type: ignore[operator]
    if len(cumulative) > stop_count + 1 and cumulative[stop_count + 1] is not None:
        legs.append(cumulative[stop_count + 1] - cumulative[stop_count])  # type: ignore[operator]
    elif total is not None:
        legs.append(total - cumulative[stop_count])  # type: ignore[operator]
    else:
        return None
    return legs


def legs_from_route_data(route_data: Any, stop_count: int) -> Optional[list[float]]:
    """Per-leg durations from stored route data, or None when they cannot be derived."""
    if not isinstance(route_data, dict) or stop_count <= 0:
        return None
    total = _number(route_data.get("duration"))

    legs = route_data.get("legs")
    if isinstance(legs, list) and legs:
        resolved = _legs_from_leg_list(legs, stop_count, total)
        if resolved is not None:
            return resolved
        logger.warning(f"Route legs do not match {stop_count} stops, trying waypoint durations")

    waypoints = route_data.get("waypoints")
    if isinstance(waypoints, list) and waypoints:
        return _legs_from_waypoints(waypoints, stop_count, total)
    return None


def route_plan_from_route_data(
    route_data: Any,
    stops: Sequence[Stop],
    service_time_minutes: Optional[float] = None,
    route_date: Optional[date] = None,
) -> RoutePlan:
    data = route_data if isinstance(route_data, dict) else {}
    service_time = service_time_minutes
    if service_time is None:
        service_time = _number(data.get("service_time"))
    if service_time is None:
        service_time = settings.default_service_time_minutes
    return RoutePlan(
        stops=list(stops),
        total_duration_seconds=_number(data.get("duration")) or 0.0,
        legs=legs_from_route_data(data, len(stops)),
        service_time_minutes=service_time,
        route_date=route_date,
        total_distance_meters=_number(data.get("distance")),
    )
