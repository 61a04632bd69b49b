"""Checkpoint persistence keyed by (route_id, stop_index).

Writes are field-level upserts: fields left out of a write keep their stored
value, so recording a departure never clears an earlier arrival.
"""

from __future__ import annotations

import logging
from datetime import datetime
from functools import lru_cache
from threading import RLock
from typing import Any, Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..config import settings
from ..db.supabase import get_supabase_client
from ..models.domain import ROUTE_START_INDEX, Checkpoint

logger = logging.getLogger(__name__)

CHECKPOINT_TABLE = "route_stop_timestamps"


class CheckpointStore(Protocol):
    def get_checkpoints(self, route_id: str) -> list[Checkpoint]:
        ...

    def upsert_checkpoint(
        self,
        route_id: str,
        stop_index: int,
        arrival: datetime | None = None,
        departure: datetime | None = None,
        started_at: datetime | None = None,
    ) -> None:
        ...


@lru_cache()
def _display_zone() -> Optional[ZoneInfo]:
    if not settings.display_timezone:
        return None
    try:
        return ZoneInfo(settings.display_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown display timezone '{settings.display_timezone}', timestamps are shown as stored")
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp, converting aware values to the display timezone."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning(f"Ignoring unparseable timestamp {value!r}")
            return None
    zone = _display_zone()
    if zone is not None and parsed.tzinfo is not None:
        parsed = parsed.astimezone(zone)
    return parsed


def checkpoint_from_row(row: dict) -> Optional[Checkpoint]:
    """Translate a stored row into a Checkpoint, or None when the row has no stop index."""
    raw_index = row.get("stop_index", row.get("stopIndex"))
    try:
        stop_index = int(raw_index)
    except (TypeError, ValueError):
        logger.warning(f"Skipping checkpoint row without a valid stop index: {raw_index!r}")
        return None
    return Checkpoint(
        stop_index=stop_index,
        actual_arrival_time=parse_timestamp(row.get("actual_arrival_time", row.get("actualArrivalTime"))),
        actual_departure_time=parse_timestamp(row.get("actual_departure_time", row.get("actualDepartureTime"))),
        route_started_at=parse_timestamp(row.get("route_started_at", row.get("routeStartedAt"))),
    )


def _checkpoint_fields(
    arrival: datetime | None,
    departure: datetime | None,
    started_at: datetime | None,
) -> dict[str, datetime]:
    fields = {
        "actual_arrival_time": arrival,
        "actual_departure_time": departure,
        "route_started_at": started_at,
    }
    return {key: value for key, value in fields.items() if value is not None}


class SupabaseCheckpointStore:
    """Checkpoint rows in the hosted ``route_stop_timestamps`` table."""

    def __init__(self, client: Any) -> None:
        self.client = client

    def get_checkpoints(self, route_id: str) -> list[Checkpoint]:
        response = (
            self.client.table(CHECKPOINT_TABLE)
            .select("*")
            .eq("route_id", route_id)
            .order("stop_index")
            .execute()
        )
        checkpoints = []
        for row in response.data or []:
            checkpoint = checkpoint_from_row(row)
            if checkpoint is not None:
                checkpoints.append(checkpoint)
        return checkpoints

    def upsert_checkpoint(
        self,
        route_id: str,
        stop_index: int,
        arrival: datetime | None = None,
        departure: datetime | None = None,
        started_at: datetime | None = None,
    ) -> None:
        payload: dict[str, Any] = {"route_id": route_id, "stop_index": stop_index}
        # Only the provided columns are sent; the conflict update leaves the rest intact.
        payload.update(
            {key: value.isoformat() for key, value in _checkpoint_fields(arrival, departure, started_at).items()}
        )
        self.client.table(CHECKPOINT_TABLE).upsert(payload, on_conflict="route_id,stop_index").execute()
        logger.info(f"Stored checkpoint {stop_index} for route {route_id}: {sorted(payload)}")


class InMemoryCheckpointStore:
    """Process-local checkpoint store with the same upsert semantics."""

    def __init__(self) -> None:
        self._rows: dict[tuple[str, int], Checkpoint] = {}
        self._lock = RLock()

    def get_checkpoints(self, route_id: str) -> list[Checkpoint]:
        with self._lock:
            rows = [
                Checkpoint(
                    stop_index=checkpoint.stop_index,
                    actual_arrival_time=parse_timestamp(checkpoint.actual_arrival_time),
                    actual_departure_time=parse_timestamp(checkpoint.actual_departure_time),
                    route_started_at=parse_timestamp(checkpoint.route_started_at),
                )
                for (stored_route, _), checkpoint in self._rows.items()
                if stored_route == route_id
            ]
        return sorted(rows, key=lambda checkpoint: checkpoint.stop_index)

    def upsert_checkpoint(
        self,
        route_id: str,
        stop_index: int,
        arrival: datetime | None = None,
        departure: datetime | None = None,
        started_at: datetime | None = None,
    ) -> None:
        with self._lock:
            key = (route_id, stop_index)
            checkpoint = self._rows.get(key) or Checkpoint(stop_index=stop_index)
            for name, value in _checkpoint_fields(arrival, departure, started_at).items():
                setattr(checkpoint, name, value)
            self._rows[key] = checkpoint

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()


_memory_store = InMemoryCheckpointStore()


def get_checkpoint_store() -> CheckpointStore:
    """Hosted store when Supabase is configured, otherwise the process-local one."""
    client = get_supabase_client()
    if client is None:
        return _memory_store
    return SupabaseCheckpointStore(client)


def record_route_start(store: CheckpointStore, route_id: str, started_at: datetime) -> None:
    store.upsert_checkpoint(route_id, ROUTE_START_INDEX, started_at=started_at)
