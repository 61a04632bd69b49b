from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient

from routetrack.main import create_app
from routetrack.models.domain import RoutePlan, RouteRecord, Stop
from routetrack.persistence.checkpoints import InMemoryCheckpointStore


def _record(status: str = "started") -> RouteRecord:
    stops = [
        Stop(index=0, name="Bakery", address="Main 1", email="bakery@example.com"),
        Stop(index=1, name="Florist", address="Main 2"),
        Stop(index=2, name="Butcher", address="Main 3", email="butcher@example.com"),
    ]
    return RouteRecord(
        route_id="r1",
        owner_id="u1",
        name="Tuesday",
        route_date=date(2024, 5, 6),
        status=status,
        plan=RoutePlan(stops=stops, total_duration_seconds=3600, service_time_minutes=5),
        live_token="live-token",
        stop_tokens={"0": "bakery-token"},
    )


@pytest.fixture
def store(monkeypatch: pytest.MonkeyPatch) -> InMemoryCheckpointStore:
    from routetrack.services.tracking import service as tracking_service

    store = InMemoryCheckpointStore()
    monkeypatch.setattr(tracking_service, "get_checkpoint_store", lambda: store)
    return store


@pytest.fixture
def record(monkeypatch: pytest.MonkeyPatch) -> RouteRecord:
    from routetrack.services.tracking import service as tracking_service

    record = _record()
    monkeypatch.setattr(tracking_service, "get_route_record", lambda route_id: record if route_id == "r1" else None)
    return record


@pytest.fixture
def api_client() -> TestClient:
    return TestClient(create_app())


def test_health(api_client: TestClient):
    assert api_client.get("/api/health").json() == {"status": "ok"}


def test_reconstruct_endpoint(api_client: TestClient):
    body = {
        "plan": {
            "stops": [{"name": "A"}, {"name": "B"}, {"name": "C"}],
            "total_duration_seconds": 3600,
            "service_time_minutes": 5,
        },
        "checkpoints": [
            {"stop_index": -1, "route_started_at": "2024-05-06T08:00:00"},
            {"stop_index": 0, "actual_arrival_time": "2024-05-06T08:20:00", "actual_departure_time": "2024-05-06T08:26:00"},
        ],
    }

    response = api_client.post("/api/schedule/reconstruct", json=body)

    assert response.status_code == 200
    schedule = response.json()["schedule"]
    assert [(e["arrival"], e["departure"], e["is_actual"]) for e in schedule] == [
        ("08:20", "08:26", True),
        ("08:41", "08:46", False),
        ("09:01", "09:06", False),
    ]


def test_reconstruct_endpoint_rejects_bad_departure_time(api_client: TestClient):
    body = {"plan": {"stops": [{"name": "A"}]}, "options": {"default_departure_time": "8 uur"}}

    response = api_client.post("/api/schedule/reconstruct", json=body)

    assert response.status_code == 400


def test_live_route_for_stop_link(api_client: TestClient, record: RouteRecord, store: InMemoryCheckpointStore):
    store.upsert_checkpoint("r1", -1, started_at=datetime(2024, 5, 6, 8, 0))

    response = api_client.get("/api/live/r1/bakery-token")

    assert response.status_code == 200
    payload = response.json()
    assert payload["target_stop_index"] == 0
    assert [stop["name"] for stop in payload["stops"]] == ["Bakery"]
    assert payload["stops"][0]["arrival"] == "08:15"


def test_live_route_email_path(api_client: TestClient, record: RouteRecord, store: InMemoryCheckpointStore):
    response = api_client.get("/api/live/r1/live-token/butcher@example.com")

    assert response.status_code == 200
    assert response.json()["target_stop_index"] == 2


def test_live_route_errors(api_client: TestClient, record: RouteRecord, store: InMemoryCheckpointStore):
    assert api_client.get("/api/live/r1/wrong").status_code == 404
    assert api_client.get("/api/live/missing/live-token").status_code == 404

    record.status = "planned"
    assert api_client.get("/api/live/r1/live-token").status_code == 409


def test_checkpoint_update_and_overview(api_client: TestClient, record: RouteRecord, store: InMemoryCheckpointStore):
    record.started_at = datetime(2024, 5, 6, 8, 0)

    response = api_client.put("/api/routes/r1/checkpoints/0", json={"actual_arrival_time": "2024-05-06T08:20:00"})
    assert response.status_code == 200
    assert response.json()["schedule"][0]["departure"] == "08:25"

    overview = api_client.get("/api/routes/r1/overview").json()
    assert overview["planned_start"] == "08:00"
    assert overview["planned_end"] == "09:15"
    assert overview["stops"][0]["planned_arrival"] == "08:15"
    assert overview["stops"][0]["arrival"] == "08:20"

    csv_response = api_client.get("/api/routes/r1/overview.csv")
    assert csv_response.status_code == 200
    assert csv_response.headers["content-type"].startswith("text/csv")
    assert csv_response.text.splitlines()[0].startswith("route_id,stop_index")


def test_checkpoint_update_rejects_unknown_stop(api_client: TestClient, record: RouteRecord, store: InMemoryCheckpointStore):
    response = api_client.put("/api/routes/r1/checkpoints/9", json={"actual_arrival_time": "2024-05-06T08:20:00"})

    assert response.status_code == 400


def test_start_route_endpoint(
    api_client: TestClient, monkeypatch: pytest.MonkeyPatch, record: RouteRecord, store: InMemoryCheckpointStore
):
    from routetrack.services.tracking import service as tracking_service

    record.status = "planned"
    monkeypatch.setattr(tracking_service, "mark_route_started", lambda *args: False)

    response = api_client.post("/api/routes/r1/start", json={"started_at": "2024-05-06T08:00:00", "notify": False})

    assert response.status_code == 200
    payload = response.json()
    assert payload["persisted"] is False
    assert "/route/r1/" in payload["live_route_link"]
    assert set(payload["stop_links"]) == {"0", "2"}
    assert payload["schedule"][0]["arrival"] == "08:15"


def test_plan_route_endpoint(api_client: TestClient, monkeypatch: pytest.MonkeyPatch):
    from routetrack.api.routes import routes as routes_api

    def fake_plan_route(origin, stops, service_time_minutes=None, route_date=None, route_id=None):
        plan = RoutePlan(stops=list(stops), total_duration_seconds=1800, legs=[600, 600, 600], service_time_minutes=5)
        return plan, {"duration": 1800, "legs": [{"duration": 600}] * 3}

    monkeypatch.setattr(routes_api, "plan_route", fake_plan_route)

    response = api_client.post(
        "/api/routes/plan",
        json={
            "origin": [4.9, 52.37],
            "stops": [{"name": "A", "coordinates": [4.91, 52.36]}, {"name": "B", "coordinates": [4.92, 52.35]}],
            "route_date": "2024-05-06",
        },
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["legs"] == [600.0, 600.0, 600.0]
    assert [entry["arrival"] for entry in payload["schedule"]] == ["08:10", "08:25"]


def test_plan_route_endpoint_maps_provider_outage(api_client: TestClient, monkeypatch: pytest.MonkeyPatch):
    from routetrack.api.routes import routes as routes_api

    def failing_plan_route(**kwargs):
        raise ConnectionError("Mapbox unreachable")

    monkeypatch.setattr(routes_api, "plan_route", failing_plan_route)

    response = api_client.post(
        "/api/routes/plan",
        json={"origin": [4.9, 52.37], "stops": [{"name": "A", "coordinates": [4.91, 52.36]}]},
    )

    assert response.status_code == 502


def test_webhook_proxy(api_client: TestClient, monkeypatch: pytest.MonkeyPatch):
    from routetrack.api.routes import notifications as notifications_api

    calls = []
    monkeypatch.setattr(
        notifications_api, "send_webhook", lambda url, template_type, data: calls.append((url, template_type)) or True
    )

    response = api_client.post(
        "/api/notifications/webhook",
        json={"webhook_url": "https://hooks.example.com/catch", "template_type": "route-gestart", "data": {}},
    )

    assert response.json() == {"success": True, "delivered": True}
    assert calls == [("https://hooks.example.com/catch", "route-gestart")]


def test_email_proxy_requires_configuration(api_client: TestClient, monkeypatch: pytest.MonkeyPatch):
    from routetrack.config import settings

    monkeypatch.setattr(settings, "resend_api_key", None)

    response = api_client.post(
        "/api/notifications/email",
        json={"from": "a@example.com", "to": "b@example.com", "subject": "Hi", "html": "<p>Hi</p>"},
    )

    assert response.status_code == 503


def test_health_database_without_supabase(api_client: TestClient, monkeypatch: pytest.MonkeyPatch):
    from routetrack.db import supabase as supabase_module

    monkeypatch.setattr(supabase_module, "get_supabase_client", lambda: None)

    payload = api_client.get("/api/health/database").json()

    assert payload["configured"] is False


def test_health_mapbox_reports_status(api_client: TestClient, monkeypatch: pytest.MonkeyPatch):
    from routetrack.services.routing import mapbox_client

    monkeypatch.setattr(mapbox_client, "check_health", lambda: True)

    assert api_client.get("/api/health/mapbox").json() == {"service": "mapbox", "healthy": True}
