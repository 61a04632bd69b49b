"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


def _get_mapbox_health_check():
    """Lazy import to avoid startup failures."""
    from ...services.routing.mapbox_client import check_health as mapbox_health_check
    return mapbox_health_check


@router.get("/health/mapbox", status_code=status.HTTP_200_OK)
def health_mapbox() -> dict:
    """Check Mapbox Directions availability."""
    try:
        mapbox_health_check = _get_mapbox_health_check()
        status_flag = mapbox_health_check()
        return {"service": "mapbox", "healthy": status_flag}
    except Exception as e:
        return {"service": "mapbox", "healthy": False, "error": str(e)}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Check database connection and checkpoint table status."""
    from ...db.supabase import get_supabase_client
    from ...persistence.checkpoints import CHECKPOINT_TABLE

    supabase = get_supabase_client()
    if not supabase:
        return {
            "configured": False,
            "message": "Supabase not configured. Set ROUTETRACK_SUPABASE_URL and ROUTETRACK_SUPABASE_KEY environment variables. "
            "Checkpoints are kept in memory.",
        }

    try:
        supabase.table(CHECKPOINT_TABLE).select("route_id", count="exact").limit(1).execute()
        return {
            "configured": True,
            "connected": True,
            "checkpoint_table_exists": True,
            "message": "Database connected.",
        }
    except Exception as exc:
        return {
            "configured": True,
            "connected": False,
            "error": str(exc),
            "message": f"Database connection error: {exc}",
        }
