from datetime import timedelta

from fastapi.testclient import TestClient

from conftest import bearer, make_user
from tsureben.core.security import create_refresh_token
from tsureben.services.document_store import ACTIVE_USERS, POMODORO_LOGS, TIMER_ANCHORS, DocumentStore

EMAIL = "taro@tsureben.jp"
DAY = "2025-05-12"


def _setup(client, db):
    make_user(db, EMAIL, name="山田太郎")
    client.post(
        f"/plans/{DAY}",
        json={"start": "09:00", "end": "10:00", "subject": "英語", "topic": "長文読解"},
        headers=bearer(EMAIL),
    )


def _store(db, app) -> DocumentStore:
    return DocumentStore(db, app.state.feed)


def test_full_session_with_pause(client, db, app, clock):
    _setup(client, db)
    headers = bearer(EMAIL)

    started = client.post("/pomodoro/start", headers=headers)
    assert started.status_code == 200
    assert started.json()["state"] == "running"

    store = _store(db, app)
    assert store.get(POMODORO_LOGS, EMAIL)[DAY] == [
        {
            "startTime": "09:00",
            "duration": None,
            "subject": "英語",
            "topic": "長文読解",
            "book": "",
            "content": "",
            "date": DAY,
        }
    ]
    assert store.get(ACTIVE_USERS, EMAIL)["name"] == "山田太郎"

    clock.advance(minutes=10)
    assert client.post("/pomodoro/pause", headers=headers).json()["elapsed_seconds"] == 600
    clock.advance(minutes=10)
    assert client.post("/pomodoro/resume", headers=headers).json()["state"] == "running"
    clock.advance(minutes=5)
    assert client.get("/pomodoro/state", headers=headers).json()["elapsed_seconds"] == 900

    finished = client.post("/pomodoro/finish", json={}, headers=headers)
    assert finished.json() == {"saved": True, "minutes": 15, "manual": False, "reason": None}
    assert store.get(POMODORO_LOGS, EMAIL)[DAY][0]["duration"] == 15
    assert store.get(ACTIVE_USERS, EMAIL) is None
    assert store.get(TIMER_ANCHORS, EMAIL) is None


def test_start_twice_writes_one_entry(client, db, app):
    _setup(client, db)
    client.post("/pomodoro/start", headers=bearer(EMAIL))
    client.post("/pomodoro/start", headers=bearer(EMAIL))

    assert len(_store(db, app).get(POMODORO_LOGS, EMAIL)[DAY]) == 1


def test_start_without_plan_conflicts(client, db, clock):
    _setup(client, db)
    clock.advance(hours=2)

    response = client.post("/pomodoro/start", headers=bearer(EMAIL))

    assert response.status_code == 409


def test_pause_when_idle_conflicts(client, db):
    make_user(db, EMAIL)
    assert client.post("/pomodoro/pause", headers=bearer(EMAIL)).status_code == 409


def test_short_session_asks_for_manual_minutes(client, db, app, clock):
    _setup(client, db)
    client.post("/pomodoro/start", headers=bearer(EMAIL))
    clock.advance(seconds=40)

    asked = client.post("/pomodoro/finish", json={}, headers=bearer(EMAIL))
    assert asked.status_code == 428
    assert asked.json()["detail"] == {"code": "invalid_duration", "min": 1, "max": 1000}

    rejected = client.post("/pomodoro/finish", json={"manual_minutes": "0"}, headers=bearer(EMAIL))
    assert rejected.status_code == 428

    saved = client.post("/pomodoro/finish", json={"manual_minutes": 20}, headers=bearer(EMAIL))
    assert saved.json()["manual"] is True
    assert _store(db, app).get(POMODORO_LOGS, EMAIL)[DAY][0]["duration"] == 20


def test_expired_token_renews_with_refresh_token(client, db, clock):
    _setup(client, db)
    client.post("/pomodoro/start", headers=bearer(EMAIL))
    clock.advance(minutes=30)
    expired = bearer(EMAIL, issued_at=clock.now - timedelta(hours=2))

    asked = client.post("/pomodoro/finish", json={}, headers=expired)
    assert asked.status_code == 428
    assert asked.json()["detail"]["code"] == "reauth_required"

    renewed = client.post(
        "/pomodoro/finish",
        json={"refresh_token": create_refresh_token(EMAIL)},
        headers=expired,
    )
    assert renewed.json() == {"saved": True, "minutes": 30, "manual": False, "reason": None}


def test_discard_needs_confirmation_and_keeps_log(client, db, app):
    _setup(client, db)
    client.post("/pomodoro/start", headers=bearer(EMAIL))

    assert client.post("/pomodoro/discard", headers=bearer(EMAIL)).status_code == 400
    discarded = client.post("/pomodoro/discard", params={"confirm": True}, headers=bearer(EMAIL))

    assert discarded.json()["state"] == "idle"
    store = _store(db, app)
    assert store.get(ACTIVE_USERS, EMAIL) is None
    assert store.get(POMODORO_LOGS, EMAIL)[DAY][0]["duration"] is None
    state = client.get("/pomodoro/state", headers=bearer(EMAIL)).json()
    assert [entry["startTime"] for entry in state["orphaned_entries"]] == ["09:00"]


def test_finish_with_lost_log_entry_conflicts(client, db, app, monkeypatch):
    _setup(client, db)
    client.post("/pomodoro/start", headers=bearer(EMAIL))
    _store(db, app).set(POMODORO_LOGS, EMAIL, {})
    monkeypatch.setattr("tsureben.services.pomodoro.time.sleep", lambda seconds: None)

    response = client.post("/pomodoro/finish", json={"manual_minutes": 5}, headers=bearer(EMAIL))

    assert response.status_code == 409


def test_stream_pushes_status_on_change(client: TestClient, db):
    _setup(client, db)
    token = bearer(EMAIL)["Authorization"].split()[1]

    with client.websocket_connect(f"/pomodoro/stream?token={token}") as websocket:
        assert websocket.receive_json()["state"] == "idle"
        client.post("/pomodoro/start", headers=bearer(EMAIL))
        message = websocket.receive_json()
        while message["type"] != "status":
            message = websocket.receive_json()
        assert message["state"] == "running"
