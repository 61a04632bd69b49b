"""Outbound webhooks (e.g. Zapier) for route events."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from ...config import settings

logger = logging.getLogger(__name__)

TEMPLATE_EVENTS = {
    "klant-aangemeld": "customer_registered",
    "klanten-informeren": "customers_informed",
    "route-live-bekijken": "route_live_view",
    "route-gestart": "route_started",
    "user-registered": "user_registered",
}


def _pick(data: dict, *keys: str, default: Any = "") -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return default


def build_webhook_payload(template_type: str, data: dict, now: datetime | None = None) -> dict:
    """Flatten event data into the payload shape receivers expect for ``template_type``."""
    timestamp = (now or datetime.now(timezone.utc)).isoformat()
    payload: dict[str, Any] = {"template_type": template_type, "timestamp": timestamp, **data}

    match template_type:
        case "klant-aangemeld":
            payload.update(
                {
                    "customer_name": _pick(data, "stopName", "name"),
                    "customer_email": _pick(data, "email"),
                    "customer_phone": _pick(data, "phone"),
                    "customer_address": _pick(data, "stopAddress", "address"),
                    "route_name": _pick(data, "routeName"),
                    "route_date": _pick(data, "routeDate"),
                    "route_link": _pick(data, "routeLink"),
                }
            )
        case "klanten-informeren":
            payload.update(
                {
                    "route_name": _pick(data, "routeName"),
                    "route_date": _pick(data, "routeDate"),
                    "route_link": _pick(data, "routeLink"),
                    "stops_count": _pick(data, "stopsCount", default=0),
                    "customers": _pick(data, "customers", default=[]),
                }
            )
        case "route-live-bekijken":
            payload.update(
                {
                    "route_name": _pick(data, "routeName"),
                    "route_date": _pick(data, "routeDate"),
                    "route_link": _pick(data, "routeLink"),
                    "stops_count": _pick(data, "stopsCount", default=0),
                }
            )
        case "route-gestart":
            payload.update(
                {
                    "route_name": _pick(data, "routeName"),
                    "route_date": _pick(data, "routeDate"),
                    "route_link": _pick(data, "routeLink"),
                    "live_route_link": _pick(data, "liveRouteLink", "routeLink"),
                    "route_id": _pick(data, "routeId"),
                    "route_started_at": _pick(data, "routeStartedAt", default=timestamp),
                    "stops_count": _pick(data, "stopsCount", default=0),
                    "driver_name": _pick(data, "driverName"),
                    "vehicle_info": _pick(data, "vehicleInfo"),
                    "stops": _pick(data, "stops", default=[]),
                    "stop_name": _pick(data, "stopName"),
                    "stop_email": _pick(data, "stopEmail"),
                    "stop_phone": _pick(data, "stopPhone"),
                    "stop_address": _pick(data, "stopAddress"),
                    "stop_personal_route_link": _pick(data, "stopPersonalRouteLink"),
                    "stop_time_range": _pick(data, "stopTimeRange"),
                    "stop_index": data.get("stopIndex"),
                }
            )
        case "user-registered":
            payload.update(
                {
                    "user_id": _pick(data, "user_id", "userId"),
                    "user_name": _pick(data, "user_name", "name", "displayName"),
                    "user_email": _pick(data, "user_email", "email"),
                    "user_phone": _pick(data, "user_phone", "phone"),
                    "start_address": _pick(data, "start_address", "startAddress"),
                    "start_coordinates": _pick(data, "start_coordinates", "startCoordinates", default=None),
                    "registration_date": _pick(data, "registration_date", "registrationDate", default=timestamp),
                }
            )

    event = TEMPLATE_EVENTS.get(template_type)
    if event:
        payload["event"] = event
    return payload


def send_webhook(
    webhook_url: str | None,
    template_type: str,
    data: dict,
    transport: httpx.BaseTransport | None = None,
) -> bool:
    """POST the event payload; failures are logged and reported as False."""
    if not webhook_url or not webhook_url.strip():
        return False

    payload = build_webhook_payload(template_type, data)
    try:
        with httpx.Client(timeout=settings.webhook_timeout_seconds, transport=transport) as client:
            response = client.post(webhook_url.strip(), json=payload)
        if response.is_success:
            logger.info(f"Webhook '{template_type}' delivered")
            return True
        logger.warning(f"Webhook '{template_type}' rejected: {response.status_code} {response.reason_phrase}")
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning(f"Webhook '{template_type}' could not be delivered: {e}")
    return False
