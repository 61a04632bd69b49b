"""Database access for route records, owner profiles and email templates."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Optional

from ..db.supabase import get_supabase_client
from ..models.domain import RouteRecord
from ..services.routing.plan_builder import route_plan_from_route_data, stops_from_rows
from .checkpoints import parse_timestamp

logger = logging.getLogger(__name__)


def _parse_date(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            logger.warning(f"Ignoring invalid route date {value!r}")
    return None


def get_service_time_minutes(user_id: str | None) -> Optional[float]:
    """Dwell time configured on the owner's profile, None when the profile has none."""
    supabase = get_supabase_client()
    if not supabase or not user_id:
        return None

    try:
        response = (
            supabase.table("user_profiles")
            .select("service_time")
            .eq("id", user_id)
            .maybe_single()
            .execute()
        )
        row = response.data if response is not None else None
        if row and row.get("service_time") is not None:
            return max(float(row["service_time"]), 0.0)
    except Exception as e:
        logger.warning(f"Failed to load service time for user {user_id}: {e}")
    return None


def route_record_from_row(row: dict, service_time_minutes: float | None = None) -> RouteRecord:
    """Build a RouteRecord from a stored ``routes`` row."""
    route_date = _parse_date(row.get("date"))
    stops = stops_from_rows(row.get("stops"))
    plan = route_plan_from_route_data(row.get("route_data"), stops, service_time_minutes, route_date)
    stop_tokens = row.get("stop_tokens") or {}
    return RouteRecord(
        route_id=str(row.get("id")),
        owner_id=row.get("user_id"),
        name=row.get("name") or "",
        route_date=route_date,
        status=row.get("route_status") or "planned",
        plan=plan,
        started_at=parse_timestamp(row.get("route_started_at")),
        live_token=row.get("live_route_token"),
        stop_tokens={str(key): str(value) for key, value in stop_tokens.items()} if isinstance(stop_tokens, dict) else {},
        driver_id=row.get("driver_id"),
        departure_time=row.get("departure_time"),
    )


def get_route_record(route_id: str) -> RouteRecord | None:
    """Load a route with its plan; None when missing or the database is unavailable."""
    supabase = get_supabase_client()
    if not supabase:
        logger.info("Supabase not configured - route records are unavailable")
        return None

    try:
        response = supabase.table("routes").select("*").eq("id", route_id).limit(1).execute()
    except Exception as e:
        logger.warning(f"Failed to load route {route_id}: {e}")
        return None

    rows = response.data or []
    if not rows:
        return None
    row = rows[0]
    return route_record_from_row(row, get_service_time_minutes(row.get("user_id")))


def mark_route_started(
    route_id: str,
    started_at: datetime,
    live_token: str,
    stop_tokens: dict[str, str],
) -> bool:
    supabase = get_supabase_client()
    if not supabase:
        logger.info("Supabase not configured - route start is not persisted")
        return False

    try:
        supabase.table("routes").update(
            {
                "route_status": "started",
                "route_started_at": started_at.isoformat(),
                "live_route_token": live_token,
                "stop_tokens": stop_tokens,
            }
        ).eq("id", route_id).execute()
        return True
    except Exception as e:
        logger.error(f"Failed to mark route {route_id} as started: {e}")
        return False


def save_route_data(route_id: str, route_data: dict) -> bool:
    supabase = get_supabase_client()
    if not supabase:
        logger.info("Supabase not configured - route data is not persisted")
        return False

    try:
        supabase.table("routes").update({"route_data": route_data}).eq("id", route_id).execute()
        return True
    except Exception as e:
        logger.error(f"Failed to store route data for {route_id}: {e}")
        return False


def get_email_template(user_id: str | None, template_type: str) -> dict | None:
    """Owner's template (subject, html_content, from_email, webhook_url) for an event."""
    supabase = get_supabase_client()
    if not supabase or not user_id:
        return None

    try:
        response = (
            supabase.table("email_templates")
            .select("*")
            .eq("user_id", user_id)
            .eq("template_type", template_type)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.warning(f"Failed to load '{template_type}' template for user {user_id}: {e}")
        return None
    rows = response.data or []
    return rows[0] if rows else None
