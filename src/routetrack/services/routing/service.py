"""Route planning through the routing provider."""

from __future__ import annotations

import logging
from datetime import date
from typing import Sequence

from ...models.domain import RoutePlan, Stop
from ...persistence.routes import save_route_data
from .mapbox_client import MapboxClient, build_loop_coordinates
from .plan_builder import route_data_from_directions, route_plan_from_route_data

logger = logging.getLogger(__name__)


def plan_route(
    origin: tuple[float, float],
    stops: Sequence[Stop],
    service_time_minutes: float | None = None,
    route_date: date | None = None,
    client: MapboxClient | None = None,
    route_id: str | None = None,
) -> tuple[RoutePlan, dict]:
    """Compute travel legs for ``stops`` in their given order.

    The stop order is taken as-is; the provider only supplies geometry and
    durations. When ``route_id`` is given the route data is stored on the
    route record.
    """
    if not stops:
        raise ValueError("At least one stop is required to plan a route.")
    missing = [stop.index for stop in stops if stop.coordinates is None]
    if missing:
        raise ValueError(f"Stops without coordinates cannot be routed: {missing}")

    mapbox = client or MapboxClient()
    coordinates = build_loop_coordinates(origin, [stop.coordinates for stop in stops])  # type: ignore[misc]
    response = mapbox.directions(coordinates)
    route_data = route_data_from_directions(response)
    if service_time_minutes is not None:
        route_data["service_time"] = service_time_minutes

    plan = route_plan_from_route_data(route_data, stops, service_time_minutes, route_date)
    logger.info(
        f"Planned route through {len(stops)} stops: "
        f"{plan.total_duration_seconds / 60:.0f} min, {len(route_data['legs'])} legs"
    )

    if route_id:
        if not save_route_data(route_id, route_data):
            logger.warning(f"Route data for {route_id} was computed but not stored")
    return plan, route_data
