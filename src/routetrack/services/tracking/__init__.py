"""Live tracking services."""

from .service import (
    InvalidTrackingTokenError,
    RouteNotFoundError,
    RouteNotStartedError,
    get_live_route,
    get_route_overview,
    record_stop_progress,
    start_route,
)

__all__ = [
    "InvalidTrackingTokenError",
    "RouteNotFoundError",
    "RouteNotStartedError",
    "get_live_route",
    "get_route_overview",
    "record_stop_progress",
    "start_route",
]
