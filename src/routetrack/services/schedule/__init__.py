"""Schedule reconstruction services."""

from .reconstructor import (
    ScheduleOptions,
    estimate_end_time,
    format_clock,
    reconstruct,
    resolve_legs,
)

__all__ = [
    "ScheduleOptions",
    "reconstruct",
    "resolve_legs",
    "format_clock",
    "estimate_end_time",
]
