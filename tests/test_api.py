import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from autointerview.api import dependencies
from autointerview.api.endpoints import devices
from autointerview.core.session_controller import SessionController

from tests.conftest import make_settings
from tests.fakes import FakeCapture, FakeNarrator, FakeQuestionSource, FakeUploader


@pytest.fixture
def client(monkeypatch):
    from main import app

    def build_controller(job_id: str, interview_id: str) -> SessionController:
        return SessionController(
            job_id=job_id,
            interview_id=interview_id,
            question_source=FakeQuestionSource(("A", "B", "C")),
            capture=FakeCapture(),
            narrator=FakeNarrator(),
            uploader=FakeUploader(),
            settings=make_settings(auto_start_delay_seconds=1000, answer_time_limit_seconds=1000),
        )

    monkeypatch.setattr(dependencies, "_controller", None)
    monkeypatch.setattr(dependencies, "build_controller", build_controller)

    with TestClient(app) as test_client:
        yield test_client


def start(client):
    response = client.post("/api/session/start", json={"job_id": "job-1", "interview_id": "iv-1"})
    assert response.status_code == 200
    return response.json()


def receive_until(ws, message_type, predicate=lambda message: True, limit=500):
    for _ in range(limit):
        message = ws.receive_json()
        if message["type"] == message_type and predicate(message):
            return message
    raise AssertionError(f"No {message_type} message received")


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_snapshot_before_start_is_404(client):
    assert client.get("/api/session").status_code == 404
    assert client.post("/api/session/answer/start").status_code == 404


def test_start_session(client):
    data = start(client)

    assert data["phase"] == "idle"
    assert data["job_id"] == "job-1"
    assert data["interview_id"] == "iv-1"
    assert data["question_text"] == "A"
    assert data["question_count"] == 3
    assert data["progress_percent"] == 33.3
    assert data["time_left_display"] == "16:40"


def test_second_start_while_running_is_rejected(client):
    start(client)

    response = client.post("/api/session/start", json={"job_id": "job-2", "interview_id": "iv-2"})

    assert response.status_code == 409


def test_answer_flow_and_clip_download(client):
    start(client)

    recording = client.post("/api/session/answer/start")
    assert recording.status_code == 200
    assert recording.json()["phase"] == "recording"

    stopped = client.post("/api/session/answer/stop")
    assert stopped.status_code == 200
    assert stopped.json()["clip_count"] == 1

    clip = client.get("/api/session/clips/0")
    assert clip.status_code == 200
    assert clip.content == b"frame"
    assert clip.headers["content-type"].startswith("video/webm")

    assert client.get("/api/session/clips/5").status_code == 404
    assert client.get("/api/session/clips/0/audio").status_code == 404


def test_rejected_intent_is_409(client):
    start(client)

    response = client.post("/api/session/review/enter")

    assert response.status_code == 409
    assert "idle" in response.json()["detail"]


def test_devices_endpoint(client, monkeypatch):
    monkeypatch.setattr(devices, "list_input_devices", lambda: [
        {"index": 0, "name": "Built-in Microphone", "channels": 1, "default_sample_rate": 48000.0},
    ])

    response = client.get("/api/devices")

    assert response.status_code == 200
    assert response.json()[0]["name"] == "Built-in Microphone"


def test_websocket_without_session_closes(client):
    with client.websocket_connect("/api/session/ws") as ws:
        with pytest.raises(WebSocketDisconnect):
            ws.receive_json()


def test_websocket_streams_snapshots_and_applies_intents(client):
    start(client)

    with client.websocket_connect("/api/session/ws") as ws:
        first = receive_until(ws, "snapshot")
        assert first["data"]["phase"] == "idle"

        ws.send_json({"type": "ping"})
        receive_until(ws, "pong")

        ws.send_json({"type": "intent", "intent": "start_answering"})
        receive_until(ws, "snapshot", lambda m: m["data"]["phase"] == "recording")

        ws.send_json({"type": "intent", "intent": "exit_review"})
        rejected = receive_until(ws, "rejected")
        assert rejected["intent"] == "exit_review"

        ws.send_json({"type": "intent", "intent": "dance"})
        error = receive_until(ws, "error")
        assert "dance" in error["message"]


def test_websocket_rejects_non_object_messages(client):
    start(client)

    with client.websocket_connect("/api/session/ws") as ws:
        ws.send_json(["start_answering"])
        error = receive_until(ws, "error")
        assert error["message"] == "Expected a JSON object"

        ws.send_json({"type": "ping"})
        receive_until(ws, "pong")
