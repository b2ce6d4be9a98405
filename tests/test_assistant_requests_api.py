from datetime import datetime, time, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from assistline.apps.api.app import create_app
from assistline.domain.interfaces import AppointmentSnapshot, InMemoryAppointmentSource, StaticAvailabilityProvider
from assistline.services.notifications import EventType, InMemoryNotificationDispatcher


STYLIST = {"X-User-Id": "stylist-1", "X-User-Roles": "stylist"}
OTHER_STYLIST = {"X-User-Id": "stylist-2", "X-User-Roles": "stylist"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Roles": "admin"}
ASSISTANT_X = {"X-User-Id": "assistant-x", "X-User-Roles": "assistant"}
ASSISTANT_Y = {"X-User-Id": "assistant-y", "X-User-Roles": "assistant"}

FUTURE_DAY = datetime.now(timezone.utc).date() + timedelta(days=7)


@pytest.fixture
def api_dispatcher():
    return InMemoryNotificationDispatcher()


@pytest.fixture
def api_appointments():
    return InMemoryAppointmentSource()


@pytest.fixture
def api_availability():
    provider = StaticAvailabilityProvider()
    provider.add("assistant-x")
    provider.add("assistant-y")
    return provider


@pytest.fixture
def client(api_dispatcher, api_appointments, api_availability):
    app = create_app(
        dispatcher=api_dispatcher,
        appointments=api_appointments,
        availability=api_availability,
    )
    with TestClient(app) as test_client:
        yield test_client


def _payload(**overrides):
    data = {
        "client_name": "Dana Client",
        "service_id": "svc-balayage",
        "request_date": FUTURE_DAY.isoformat(),
        "start_time": "09:00",
        "end_time": "10:00",
    }
    data.update(overrides)
    return data


def _create(client, **overrides):
    response = client.post("/api/assistant-requests", json=_payload(**overrides), headers=STYLIST)
    assert response.status_code == 201, response.text
    return response.json()


def test_health_reports_database_and_disabled_sweeper(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["checks"] == {"database": "ok", "expiry_sweeper": "disabled"}


def test_create_returns_pending_request(client, api_dispatcher):
    body = _create(client, notes="foils")

    assert body["status"] == "pending"
    assert body["stylist_id"] == "stylist-1"
    assert body["assistant_id"] is None
    assert body["declined_by"] == []
    assert body["deadline"] is None
    assert body["version"] == 1
    assert [e.type for e in api_dispatcher.events] == [EventType.CREATED]


def test_missing_identity_is_unauthorized(client):
    response = client.post("/api/assistant-requests", json=_payload())
    assert response.status_code == 401


def test_invalid_window_is_bad_request(client):
    response = client.post(
        "/api/assistant-requests",
        json=_payload(start_time="11:00", end_time="10:00"),
        headers=STYLIST,
    )
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "validation_error"
    assert body["field"] == "start_time"


def test_malformed_body_is_unprocessable(client):
    response = client.post(
        "/api/assistant-requests",
        json={"client_name": "Dana Client"},
        headers=STYLIST,
    )
    assert response.status_code == 422


def test_full_flow_over_http(client, api_dispatcher):
    created = _create(client)
    request_id = created["id"]

    assigned = client.post(
        f"/api/assistant-requests/{request_id}/assign",
        json={"assistant_id": "assistant-x"},
        headers=ADMIN,
    )
    assert assigned.status_code == 200, assigned.text
    assigned_body = assigned.json()
    assert assigned_body["warnings"] == []
    assert assigned_body["request"]["status"] == "assigned"
    assert assigned_body["request"]["deadline"]["overdue"] is False

    declined = client.post(f"/api/assistant-requests/{request_id}/decline", json={}, headers=ASSISTANT_X)
    assert declined.status_code == 200
    assert declined.json()["status"] == "pending"
    assert declined.json()["declined_by"] == ["assistant-x"]

    claimed = client.post(f"/api/assistant-requests/{request_id}/assign", json={}, headers=ASSISTANT_Y)
    assert claimed.status_code == 200
    assert claimed.json()["request"]["assistant_id"] == "assistant-y"

    accepted = client.post(f"/api/assistant-requests/{request_id}/accept", json={}, headers=ASSISTANT_Y)
    assert accepted.status_code == 200
    assert accepted.json()["accepted_at"] is not None
    assert accepted.json()["deadline"] is None

    completed = client.post(f"/api/assistant-requests/{request_id}/complete", headers=STYLIST)
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"

    again = client.post(f"/api/assistant-requests/{request_id}/cancel", headers=STYLIST)
    assert again.status_code == 409
    assert again.json()["current_status"] == "completed"

    assert [e.type for e in api_dispatcher.events] == [
        EventType.CREATED,
        EventType.ASSIGNED,
        EventType.DECLINED,
        EventType.ASSIGNED,
        EventType.ACCEPTED,
        EventType.COMPLETED,
    ]


def test_stale_version_is_conflict(client):
    request_id = _create(client)["id"]
    client.post(f"/api/assistant-requests/{request_id}/assign", json={"assistant_id": "assistant-x"}, headers=ADMIN)

    response = client.post(
        f"/api/assistant-requests/{request_id}/assign",
        json={"assistant_id": "assistant-y", "expected_version": 1},
        headers=ADMIN,
    )
    assert response.status_code == 409
    assert response.json()["error"] == "conflict"


def test_unknown_request_is_not_found(client):
    response = client.post("/api/assistant-requests/4242/accept", json={}, headers=ASSISTANT_X)
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_permission_errors_are_forbidden(client):
    request_id = _create(client)["id"]

    assert client.post(f"/api/assistant-requests/{request_id}/cancel", headers=OTHER_STYLIST).status_code == 403
    assert client.get(f"/api/assistant-requests/{request_id}", headers=OTHER_STYLIST).status_code == 403
    assert client.get("/api/assistant-requests/attention", headers=STYLIST).status_code == 403
    assert client.get("/api/assistant-requests?view=all", headers=STYLIST).status_code == 403
    assert client.post(f"/api/assistant-requests/{request_id}/auto-assign", headers=STYLIST).status_code == 403


def test_list_views_follow_the_caller(client):
    mine = _create(client)
    other = client.post(
        "/api/assistant-requests",
        json=_payload(start_time="13:00", end_time="14:00"),
        headers=OTHER_STYLIST,
    ).json()
    client.post(f"/api/assistant-requests/{other['id']}/assign", json={"assistant_id": "assistant-x"}, headers=ADMIN)

    stylist_view = client.get("/api/assistant-requests", headers=STYLIST).json()
    assert [r["id"] for r in stylist_view] == [mine["id"]]

    assistant_view = client.get("/api/assistant-requests", headers=ASSISTANT_X).json()
    assert [r["id"] for r in assistant_view] == [other["id"]]

    open_view = client.get("/api/assistant-requests?view=open", headers=ASSISTANT_Y).json()
    assert [r["id"] for r in open_view] == [mine["id"]]

    admin_view = client.get("/api/assistant-requests", headers=ADMIN).json()
    assert [r["id"] for r in admin_view] == [mine["id"], other["id"]]

    assert client.get("/api/assistant-requests?view=open", headers=STYLIST).status_code == 403
    assert client.get("/api/assistant-requests?view=everything", headers=ADMIN).status_code == 422


def test_answering_someone_elses_offer_is_forbidden(client):
    request_id = _create(client)["id"]
    client.post(f"/api/assistant-requests/{request_id}/assign", json={"assistant_id": "assistant-x"}, headers=ADMIN)

    accepted = client.post(f"/api/assistant-requests/{request_id}/accept", json={}, headers=ASSISTANT_Y)
    assert accepted.status_code == 403
    declined = client.post(f"/api/assistant-requests/{request_id}/decline", json={}, headers=ASSISTANT_Y)
    assert declined.status_code == 403

    current = client.get(f"/api/assistant-requests/{request_id}", headers=ADMIN).json()
    assert current["assistant_id"] == "assistant-x"
    assert current["declined_by"] == []


def test_admin_assign_returns_warnings(client, api_appointments):
    request_id = _create(client)["id"]
    api_appointments.add(AppointmentSnapshot("appt-1", "assistant-x", FUTURE_DAY, time(9, 30), time(10, 30)))

    response = client.post(
        f"/api/assistant-requests/{request_id}/assign",
        json={"assistant_id": "assistant-x"},
        headers=ADMIN,
    )

    assert response.status_code == 200
    assert [w["code"] for w in response.json()["warnings"]] == ["appointment_conflict"]


def test_auto_assign_picks_from_rotation(client):
    request_id = _create(client)["id"]

    response = client.post(f"/api/assistant-requests/{request_id}/auto-assign", headers=ADMIN)

    assert response.status_code == 200
    assert response.json()["assistant_id"] == "assistant-x"

    # already offered
    assert client.post(f"/api/assistant-requests/{request_id}/auto-assign", headers=ADMIN).status_code == 409


def test_conflicts_report(client, api_appointments):
    request_id = _create(client)["id"]
    api_appointments.add(AppointmentSnapshot("appt-9", "stylist-1", FUTURE_DAY, time(9, 45), time(10, 15)))

    response = client.get("/api/assistant-requests/conflicts", headers=ADMIN)

    assert response.status_code == 200
    body = response.json()
    assert [(c["request_id"], c["appointment_id"]) for c in body["conflicts"]] == [(request_id, "appt-9")]
    assert body["double_bookings"] == []

    assert client.get("/api/assistant-requests/conflicts?party=client", headers=ADMIN).status_code == 422


def test_overview_counts_callers_requests(client):
    first = _create(client)["id"]
    _create(client, request_date=(FUTURE_DAY + timedelta(days=1)).isoformat())
    client.post(f"/api/assistant-requests/{first}/assign", json={"assistant_id": "assistant-x"}, headers=ADMIN)

    body = client.get("/api/assistant-requests/overview", headers=STYLIST).json()

    assert body["total"] == 2
    assert body["pending"] == 1
    assert body["awaiting_response"] == 1
    assert body["acceptance_rate"] == 0
