"""Route group exports."""

from . import health, live, notifications, routes, schedule

__all__ = ["health", "live", "notifications", "routes", "schedule"]
