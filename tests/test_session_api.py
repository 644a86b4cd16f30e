import pytest
from fastapi.testclient import TestClient

from active_session_service.main import create_app
from fake_persistence import OWNER

HEADERS = {"X-User-Id": OWNER}


@pytest.fixture()
def client(synchronizer):
    with TestClient(create_app(synchronizer=synchronizer), headers=HEADERS) as test_client:
        yield test_client


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "session_state": "no_session", "pending_writes": 0}


def test_owner_header_is_required(client):
    resp = client.get("/session", headers={"X-User-Id": ""})
    assert resp.status_code == 401


def test_finish_without_session_is_conflict(client, persistence):
    resp = client.post("/session/finish", json={"duration_seconds": 60})
    assert resp.status_code == 409
    assert persistence.count("POST", "/finish$") == 0


def test_unknown_set_index(client):
    client.post("/session/start")
    client.post("/session/exercises", json={"exercise_id": 1})

    assert client.patch("/session/exercises/0/sets/4", json={"reps": "5"}).status_code == 404
    assert client.post("/session/exercises/3/sets").status_code == 404


def test_unknown_exercise(client):
    client.post("/session/start")
    assert client.post("/session/exercises", json={"exercise_id": 999}).status_code == 404


def test_start_while_persistence_down(client, persistence):
    persistence.offline = True
    resp = client.post("/session/start")
    assert resp.status_code == 502
    assert client.get("/session").json()["state"] == "no_session"


def test_resume_unknown_session(client):
    resp = client.post("/session/resume/77")
    assert resp.status_code == 200
    assert resp.json()["state"] == "no_session"


def test_workout_flow(synchronizer, persistence):
    with TestClient(create_app(synchronizer=synchronizer), headers=HEADERS) as client:
        resp = client.post("/session/start")
        assert resp.status_code == 201
        session_id = resp.json()["session_id"]
        assert resp.json()["state"] == "active"

        resp = client.post("/session/exercises", json={"exercise_id": 1})
        assert resp.status_code == 201
        assert [a["exercise"]["name"] for a in resp.json()["active_exercises"]] == ["Bench Press"]

        resp = client.patch("/session/exercises/0/sets/0", json={"weight": "40", "reps": "8"})
        first_set = resp.json()["active_exercises"][0]["sets"][0]
        assert (first_set["weight"], first_set["reps"], first_set["is_completed"]) == ("40", "8", False)

        resp = client.post("/session/exercises/0/sets/0/toggle")
        body = resp.json()
        assert body["active_exercises"][0]["sets"][0]["is_completed"] is True
        assert body["rest_timer"]["running"] is True
        assert body["rest_timer"]["remaining_seconds"] == 60

        client.post("/session/exercises/0/sets/0/toggle")
        client.post("/session/exercises/0/sets/0/toggle")

        resp = client.post("/session/exercises/0/sets")
        second = resp.json()["active_exercises"][0]["sets"][1]
        assert (second["set_number"], second["weight"], second["reps"]) == (2, "40", "8")

        resp = client.put("/session/exercises/0/sets/0/note", json={"note": "paused reps"})
        assert resp.json()["active_exercises"][0]["sets"][0]["note"] == "paused reps"

        elapsed = client.get("/session/elapsed").json()
        assert elapsed == {"elapsed_seconds": 0, "elapsed_display": "00:00"}

        resp = client.post("/session/finish", json={"duration_seconds": 1800})
        assert resp.status_code == 200
        assert resp.json()["session_id"] == session_id
        assert resp.json()["duration_seconds"] == 1800
        assert client.get("/session").json()["state"] == "no_session"

    rows = persistence.rows_for(session_id)
    assert list(rows) == [(1, 1)]
    assert (rows[(1, 1)]["weight_kg"], rows[(1, 1)]["reps"], rows[(1, 1)]["is_completed"]) == (40.0, 8, True)
    assert persistence.sessions[session_id]["duration"] == 1800


def test_rest_timer_endpoints(client):
    resp = client.put("/session/rest-timer/target", json={"seconds": 90})
    assert resp.json() == {"running": False, "remaining_seconds": 0, "target_seconds": 90, "step_seconds": 30}

    assert client.post("/session/rest-timer/adjust", json={}).json()["remaining_seconds"] == 0

    client.post("/session/start")
    client.post("/session/exercises", json={"exercise_id": 2})
    client.post("/session/exercises/0/sets/0/toggle")

    assert client.get("/session/rest-timer").json()["remaining_seconds"] == 90
    assert client.post("/session/rest-timer/adjust", json={"direction": 1}).json()["remaining_seconds"] == 120
    assert client.post("/session/rest-timer/adjust", json={"direction": -1}).json()["remaining_seconds"] == 90
    assert client.post("/session/rest-timer/adjust", json={"delta_seconds": -500}).json()["remaining_seconds"] == 0

    resp = client.post("/session/rest-timer/skip")
    assert resp.json()["running"] is False
