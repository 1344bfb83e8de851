from __future__ import annotations

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from app.api.routes import get_waiting_list_service
from app.main import app
from app.services.db import get_db
from app.services.waiting_list import WaitingListService
from tests.conftest import FakeMessenger


@pytest.fixture()
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture()
def client(session_factory, seed, messenger):
    def _get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _get_waiting_list_service(session=Depends(get_db)):
        return WaitingListService(session=session, messenger=messenger)

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_waiting_list_service] = _get_waiting_list_service
    yield TestClient(app)
    app.dependency_overrides.clear()


def _book(client: TestClient, start: str, **overrides):
    body = {
        "clinic_id": "clinic-1",
        "patient_id": "pat-a",
        "professional_id": "P2",
        "date": "2024-06-10",
        "start_time": start,
        "duration_minutes": 30,
    }
    body.update(overrides)
    return client.post("/appointments", json=body)


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_booking_conflict_returns_409(client) -> None:
    first = _book(client, "14:15", patient_id="pat-b")
    assert first.status_code == 201
    assert first.json()["end_time"] == "14:45"

    response = _book(client, "14:00")

    assert response.status_code == 409
    assert "Bruno Costa" in response.json()["detail"]
    assert response.json()["conflicting_ids"] == [first.json()["id"]]


def test_conflict_check_endpoint(client) -> None:
    _book(client, "14:15", patient_id="pat-b")

    response = client.post(
        "/appointments/conflicts/check",
        json={
            "clinic_id": "clinic-1",
            "date": "2024-06-10",
            "start_time": "14:00",
            "duration_minutes": 30,
            "professional_id": "P2",
        },
    )

    body = response.json()
    assert response.status_code == 200
    assert body["has_conflict"] is True
    assert "14:15 - 14:45" in body["message"]


def test_audit_endpoint_without_conflicts(client) -> None:
    _book(client, "09:00")
    _book(client, "09:30", patient_id="pat-b")

    response = client.get("/appointments/conflicts", params={"clinic_id": "clinic-1", "date": "2024-06-10"})

    assert response.status_code == 200
    assert response.json()["conflicting_ids"] == []


def test_malformed_time_is_a_validation_error(client) -> None:
    assert _book(client, "9h30").status_code == 422


def test_cancel_promotes_waiting_patient(client, messenger) -> None:
    appointment = _book(client, "14:00").json()
    added = client.post(
        "/waiting-list",
        json={"clinic_id": "clinic-1", "patient_id": "pat-c", "professional_id": "P2"},
    )
    assert added.status_code == 201

    response = client.post(f"/appointments/{appointment['id']}/cancel", json={"reason": "viagem"})

    body = response.json()
    assert response.status_code == 200
    assert body["appointment"]["status"] == "cancelled"
    assert body["waiting_list"]["outcome"] == "notified"
    assert body["waiting_list"]["notified"] is True
    assert body["waiting_list"]["patient_name"] == "Carla Dias"
    assert len(messenger.calls) == 1

    entries = client.get("/waiting-list", params={"clinic_id": "clinic-1"}).json()
    assert entries[0]["notification_status"] == "notified"
    assert entries[0]["offered_professional_name"] == "Dr. Bruno Lima"
    assert entries[0]["patient_name"] == "Carla Dias"


def test_notify_next_with_empty_queue(client) -> None:
    response = client.post(
        "/waiting-list/notify-next",
        json={
            "clinic_id": "clinic-1",
            "slot": {
                "date": "2024-06-10",
                "start_time": "14:00",
                "professional_id": "P2",
                "professional_name": "Dr. Bruno Lima",
            },
        },
    )

    assert response.status_code == 200
    assert response.json() == {
        "outcome": "skipped",
        "reason": "empty_queue",
        "waiting_count": 0,
        "patient_name": None,
        "error": None,
        "notified": False,
    }


def test_notify_next_skips_patient_without_phone(client) -> None:
    client.post("/waiting-list", json={"clinic_id": "clinic-1", "patient_id": "pat-nophone"})

    response = client.post(
        "/waiting-list/notify-next",
        json={
            "clinic_id": "clinic-1",
            "slot": {
                "date": "2024-06-10",
                "start_time": "14:00",
                "professional_id": "P1",
                "professional_name": "Dra. Ana Souza",
            },
        },
    )

    body = response.json()
    assert body["notified"] is False
    assert body["error"] == "Paciente sem telefone"
    assert body["waiting_count"] == 1


def test_unknown_appointment_is_404(client) -> None:
    response = client.post("/appointments/missing/status", json={"status": "confirmed"})

    assert response.status_code == 404


def test_invalid_transition_is_400(client) -> None:
    appointment = _book(client, "08:00").json()
    client.post(f"/appointments/{appointment['id']}/no-show")

    response = client.post(f"/appointments/{appointment['id']}/status", json={"status": "confirmed"})

    assert response.status_code == 400


def test_remove_and_decline_waiting_list_entries(client) -> None:
    entry = client.post("/waiting-list", json={"clinic_id": "clinic-1", "patient_id": "pat-a"}).json()

    assert client.post(f"/waiting-list/{entry['id']}/decline").status_code == 400
    removed = client.delete(f"/waiting-list/{entry['id']}")

    assert removed.status_code == 200
    assert removed.json()["is_active"] is False
    assert client.get("/waiting-list", params={"clinic_id": "clinic-1"}).json() == []


def test_notify_single_entry_out_of_queue_order(client, messenger) -> None:
    client.post("/waiting-list", json={"clinic_id": "clinic-1", "patient_id": "pat-a"})
    second = client.post(
        "/waiting-list",
        json={"clinic_id": "clinic-1", "patient_id": "pat-c", "preferred_times": ["Tarde", "Noite"]},
    ).json()

    response = client.post(f"/waiting-list/{second['id']}/notify")

    body = response.json()
    assert response.status_code == 200
    assert body["outcome"] == "notified"
    assert body["entry_id"] == second["id"]
    assert messenger.calls[0]["phone"] == "11955554444"
    entries = client.get("/waiting-list", params={"clinic_id": "clinic-1"}).json()
    by_id = {entry["id"]: entry for entry in entries}
    assert by_id[second["id"]]["notified_at"] is not None
    assert by_id[second["id"]]["preferred_times"] == ["Tarde", "Noite"]


def test_reschedule_past_midnight_is_400(client) -> None:
    appointment = _book(client, "09:00").json()

    response = client.patch(f"/appointments/{appointment['id']}", json={"date": "2024-06-10", "start_time": "23:45"})

    assert response.status_code == 400


def test_expire_offers_endpoint(client) -> None:
    response = client.post("/waiting-list/expire-offers")

    assert response.status_code == 200
    assert response.json() == {"expired": 0}
