"""Routing provider integration."""

from .plan_builder import (
    legs_from_route_data,
    route_data_from_directions,
    route_plan_from_route_data,
    stops_from_rows,
)

__all__ = [
    "legs_from_route_data",
    "route_data_from_directions",
    "route_plan_from_route_data",
    "stops_from_rows",
]
