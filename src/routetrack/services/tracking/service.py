"""Live tracking, driver progress and operator overview on top of the reconstructor."""

from __future__ import annotations

import logging
import secrets
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence
from urllib.parse import quote

from ...config import parse_clock, settings
from ...models.domain import ROUTE_START_INDEX, Checkpoint, RouteRecord, ScheduleEntry, Stop
from ...persistence.checkpoints import (
    CheckpointStore,
    get_checkpoint_store,
    parse_timestamp,
    record_route_start,
)
from ...persistence.routes import get_email_template, get_route_record, mark_route_started
from ..notifications.email import EmailClient, render_template
from ..notifications.webhook import send_webhook
from ..outputs.schedule_formatter import schedule_to_json
from ..schedule.reconstructor import (
    ScheduleOptions,
    align_timezone,
    estimate_end_time,
    planned_departure,
    reconstruct,
    resolve_legs,
)

logger = logging.getLogger(__name__)

ROUTE_STARTED_TEMPLATE = "route-gestart"
MAX_PARALLEL_NOTIFICATIONS = 8


class RouteNotFoundError(LookupError):
    pass


class InvalidTrackingTokenError(LookupError):
    pass


class RouteNotStartedError(ValueError):
    pass


@dataclass(slots=True)
class LiveRouteView:
    route: RouteRecord
    schedule: list[ScheduleEntry]
    target_stop_index: Optional[int]
    poll_interval_seconds: int
    generated_at: datetime


@dataclass(slots=True)
class OverviewRow:
    stop: Stop
    planned: ScheduleEntry
    current: ScheduleEntry
    actual_arrival_time: Optional[datetime] = None
    actual_departure_time: Optional[datetime] = None


@dataclass(slots=True)
class RouteOverview:
    route: RouteRecord
    rows: list[OverviewRow]
    planned_start: datetime
    planned_end: datetime
    expected_end: datetime


@dataclass(slots=True)
class StartRouteResult:
    route_id: str
    started_at: datetime
    live_token: str
    stop_tokens: dict[str, str]
    persisted: bool
    webhooks_sent: int = 0
    emails_sent: int = 0
    schedule: list[ScheduleEntry] = field(default_factory=list)


def schedule_options_for(record: RouteRecord) -> ScheduleOptions:
    departure = settings.default_departure_time
    if record.departure_time:
        try:
            parse_clock(record.departure_time)
            departure = record.departure_time
        except ValueError:
            logger.warning(f"Route {record.route_id} has invalid departure time {record.departure_time!r}")
    return ScheduleOptions.from_settings(
        default_departure=parse_clock(departure),
        service_date=record.route_date,
    )


def load_checkpoints(route_id: str, store: CheckpointStore | None = None) -> list[Checkpoint]:
    """Read checkpoints for a route; an unreachable store yields no checkpoints."""
    try:
        return (store or get_checkpoint_store()).get_checkpoints(route_id)
    except Exception as e:
        logger.warning(f"Failed to load checkpoints for route {route_id}, using planned schedule: {e}")
        return []


def _with_route_start(record: RouteRecord, checkpoints: list[Checkpoint]) -> list[Checkpoint]:
    # The route row also stores the start time; use it when the start checkpoint was never written.
    if record.started_at is None or any(c.is_route_start and c.started_at for c in checkpoints):
        return checkpoints
    return [Checkpoint(stop_index=ROUTE_START_INDEX, route_started_at=record.started_at), *checkpoints]


def _load_route(route_id: str) -> RouteRecord:
    record = get_route_record(route_id)
    if record is None:
        raise RouteNotFoundError(f"Route '{route_id}' not found.")
    return record


def _same_token(given: str, stored: str) -> bool:
    return secrets.compare_digest(given.encode("utf-8"), stored.encode("utf-8"))


def _token_target(record: RouteRecord, token: str) -> Optional[int]:
    """Stop index a per-stop token belongs to, None for the general token."""
    if record.live_token and _same_token(token, record.live_token):
        return None
    for key, stop_token in record.stop_tokens.items():
        if _same_token(token, stop_token):
            try:
                return int(key)
            except ValueError:
                break
    raise InvalidTrackingTokenError(f"Route '{record.route_id}' not found or link is invalid.")


def find_stop_by_email(stops: Sequence[Stop], email: str | None) -> Optional[int]:
    if not email or not email.strip():
        return None
    wanted = email.strip().lower()
    for stop in stops:
        if stop.email and stop.email.strip().lower() == wanted:
            return stop.index
    logger.info(f"No stop found for email {wanted}")
    return None


def personal_route_link(route_id: str, token: str, email: str | None = None) -> str:
    link = f"{settings.public_base_url.rstrip('/')}/route/{route_id}/{token}"
    if email and email.strip():
        link += "/" + quote(email.strip().lower(), safe="")
    return link


def current_schedule(record: RouteRecord, store: CheckpointStore | None = None) -> list[ScheduleEntry]:
    checkpoints = _with_route_start(record, load_checkpoints(record.route_id, store))
    return reconstruct(record.plan, checkpoints, schedule_options_for(record))


def get_live_route(
    route_id: str,
    token: str,
    email: str | None = None,
    store: CheckpointStore | None = None,
) -> LiveRouteView:
    """Customer-facing view: validates the link, then rebuilds the schedule."""
    record = _load_route(route_id)
    target = _token_target(record, token)
    if not record.is_started:
        raise RouteNotStartedError(f"Route has not been started yet (status: {record.status}).")

    schedule = current_schedule(record, store)
    if target is None:
        target = find_stop_by_email(record.plan.stops, email)
    if target is not None and not 0 <= target < len(schedule):
        target = None

    return LiveRouteView(
        route=record,
        schedule=schedule,
        target_stop_index=target,
        poll_interval_seconds=settings.live_poll_interval_seconds,
        generated_at=datetime.now(timezone.utc),
    )


def get_route_overview(route_id: str, store: CheckpointStore | None = None) -> RouteOverview:
    """Planned and current times for every stop, side by side."""
    record = _load_route(route_id)
    options = schedule_options_for(record)
    checkpoints = _with_route_start(record, load_checkpoints(route_id, store))

    current = reconstruct(record.plan, checkpoints, options)
    planned = reconstruct(record.plan, [c for c in checkpoints if c.is_route_start], options)

    started = next((c.started_at for c in checkpoints if c.is_route_start and c.started_at), None)
    planned_start = started or planned_departure(record.plan, options)
    planned_end = estimate_end_time(record.plan, planned_start, options)
    if current:
        return_leg = resolve_legs(record.plan)[-1]
        expected_end = current[-1].departure_at + timedelta(seconds=return_leg)
    else:
        expected_end = planned_end

    actual = {c.stop_index: c for c in checkpoints if not c.is_route_start}
    rows = [
        OverviewRow(
            stop=stop,
            planned=planned[stop.index],
            current=current[stop.index],
            actual_arrival_time=actual[stop.index].actual_arrival_time if stop.index in actual else None,
            actual_departure_time=actual[stop.index].actual_departure_time if stop.index in actual else None,
        )
        for stop in record.plan.stops
    ]
    return RouteOverview(
        route=record,
        rows=rows,
        planned_start=planned_start,
        planned_end=planned_end,
        expected_end=expected_end,
    )


def record_stop_progress(
    route_id: str,
    stop_index: int,
    arrival: datetime | None = None,
    departure: datetime | None = None,
    store: CheckpointStore | None = None,
) -> list[ScheduleEntry]:
    """Store a driver's arrival and/or departure and return the refreshed schedule."""
    record = _load_route(route_id)
    if not 0 <= stop_index < len(record.plan.stops):
        raise ValueError(f"Stop index {stop_index} is out of range for {len(record.plan.stops)} stops.")
    if arrival is None and departure is None:
        raise ValueError("An arrival or departure time is required.")
    if arrival is not None and departure is not None:
        departure = align_timezone(departure, arrival)
        if departure < arrival:
            raise ValueError("Departure cannot be earlier than arrival.")

    store = store or get_checkpoint_store()
    store.upsert_checkpoint(route_id, stop_index, arrival=arrival, departure=departure)
    logger.info(f"Recorded progress for route {route_id} stop {stop_index}")
    return current_schedule(record, store)


def _deliver_all(tasks: list[Callable[[], bool]]) -> int:
    if not tasks:
        return 0
    with ThreadPoolExecutor(max_workers=min(MAX_PARALLEL_NOTIFICATIONS, len(tasks))) as executor:
        results = list(executor.map(lambda task: task(), tasks))
    return sum(1 for delivered in results if delivered)


def notify_route_started(
    record: RouteRecord,
    schedule: list[ScheduleEntry],
    email_client: EmailClient | None = None,
    webhook_transport=None,
) -> tuple[int, int]:
    """One webhook per stop and one personal email per stop with an address.

    Returns the number of webhooks and emails delivered. Delivery failures
    never propagate.
    """
    template = get_email_template(record.owner_id, ROUTE_STARTED_TEMPLATE)
    if not template or not record.live_token:
        logger.info(f"No '{ROUTE_STARTED_TEMPLATE}' template for route {record.route_id}, skipping notifications")
        return 0, 0

    general_link = personal_route_link(record.route_id, record.live_token)
    times = {entry.stop_index: f"{entry.arrival} - {entry.departure}" for entry in schedule}
    base = {
        "routeName": record.name,
        "routeDate": record.route_date.isoformat() if record.route_date else "",
        "routeLink": general_link,
        "routeId": record.route_id,
        "routeStartedAt": record.started_at.isoformat() if record.started_at else "",
        "stopsCount": len(record.plan.stops),
        "stops": schedule_to_json(schedule),
    }

    webhook_url = (template.get("webhook_url") or "").strip()
    webhook_tasks: list[Callable[[], bool]] = []
    email_tasks: list[Callable[[], bool]] = []
    client = email_client or EmailClient()

    for stop in record.plan.stops:
        link = personal_route_link(record.route_id, record.live_token, stop.email) if stop.email else general_link
        data = {
            **base,
            "liveRouteLink": link,
            "stopName": stop.name,
            "stopEmail": stop.email or "",
            "stopPhone": stop.phone or "",
            "stopAddress": stop.address or "",
            "stopPersonalRouteLink": link,
            "stopTimeRange": times.get(stop.index, ""),
            "stopIndex": stop.index,
        }
        if webhook_url:
            webhook_tasks.append(
                lambda data=data: send_webhook(webhook_url, ROUTE_STARTED_TEMPLATE, data, transport=webhook_transport)
            )
        if stop.email and template.get("html_content"):
            context = {**data, "routeLink": link, "stopName": stop.name or "klant"}
            subject = render_template(template.get("subject") or record.name, context)
            html = render_template(template["html_content"], context)
            email_tasks.append(
                lambda to=stop.email, subject=subject, html=html: client.send(template.get("from_email"), to, subject, html)
            )

    webhooks_sent = _deliver_all(webhook_tasks)
    emails_sent = _deliver_all(email_tasks)
    logger.info(
        f"Route {record.route_id} start notifications: "
        f"{webhooks_sent}/{len(webhook_tasks)} webhooks, {emails_sent}/{len(email_tasks)} emails"
    )
    return webhooks_sent, emails_sent


def start_route(
    route_id: str,
    started_at: datetime | None = None,
    store: CheckpointStore | None = None,
    email_client: EmailClient | None = None,
    notify: bool = True,
) -> StartRouteResult:
    """Issue tracking links, record the start checkpoint and notify customers."""
    record = _load_route(route_id)
    if record.status == "completed":
        raise ValueError(f"Route '{route_id}' is already completed.")

    started_at = started_at or datetime.now(timezone.utc)
    live_token = secrets.token_urlsafe(24)
    stop_tokens = {str(stop.index): secrets.token_urlsafe(24) for stop in record.plan.stops if stop.email}

    persisted = mark_route_started(route_id, started_at, live_token, stop_tokens)
    store = store or get_checkpoint_store()
    try:
        record_route_start(store, route_id, started_at)
    except Exception as e:
        logger.error(f"Failed to store start checkpoint for route {route_id}: {e}")

    record.status = "started"
    record.started_at = parse_timestamp(started_at)
    record.live_token = live_token
    record.stop_tokens = stop_tokens
    schedule = current_schedule(record, store)

    result = StartRouteResult(
        route_id=route_id,
        started_at=started_at,
        live_token=live_token,
        stop_tokens=stop_tokens,
        persisted=persisted,
        schedule=schedule,
    )
    if notify:
        result.webhooks_sent, result.emails_sent = notify_route_started(record, schedule, email_client)
    return result
