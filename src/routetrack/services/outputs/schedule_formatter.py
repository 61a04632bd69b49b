"""Serializers for reconstructed schedules and route overviews."""

from __future__ import annotations

import csv
import io
from datetime import datetime
from typing import TYPE_CHECKING, Sequence

from ...models.domain import ScheduleEntry
from ..schedule.reconstructor import format_clock

if TYPE_CHECKING:
    from ..tracking.service import RouteOverview


def _clock(value: datetime | None) -> str:
    return format_clock(value) if value else ""


def schedule_to_json(entries: Sequence[ScheduleEntry]) -> list[dict]:
    return [
        {
            "stop_index": entry.stop_index,
            "arrival": entry.arrival,
            "departure": entry.departure,
            "arrival_at": entry.arrival_at.isoformat(),
            "departure_at": entry.departure_at.isoformat(),
            "is_actual": entry.is_actual,
            "estimated_minutes_from_now": entry.estimated_minutes_from_now,
        }
        for entry in entries
    ]


def overview_to_csv(overview: RouteOverview) -> str:
    buffer = io.StringIO()
    fieldnames = [
        "route_id",
        "stop_index",
        "stop_name",
        "address",
        "planned_arrival",
        "planned_departure",
        "arrival",
        "departure",
        "is_actual",
        "actual_arrival",
        "actual_departure",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for row in overview.rows:
        writer.writerow(
            {
                "route_id": overview.route.route_id,
                "stop_index": row.stop.index,
                "stop_name": row.stop.name,
                "address": row.stop.address or "",
                "planned_arrival": row.planned.arrival,
                "planned_departure": row.planned.departure,
                "arrival": row.current.arrival,
                "departure": row.current.departure,
                "is_actual": row.current.is_actual,
                "actual_arrival": _clock(row.actual_arrival_time),
                "actual_departure": _clock(row.actual_departure_time),
            }
        )
    return buffer.getvalue()
