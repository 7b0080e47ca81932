"""HTTP and WebSocket API tests."""
import time

import pytest
from fastapi.testclient import TestClient

from emi_reminder.main import app

from stubs import FailingSynthesizer


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as c:
        yield c


def wait_for_archive(client, session_id, count, timeout=2.0):
    """Archive writes are fire-and-forget; poll until they land."""
    deadline = time.time() + timeout
    while True:
        response = client.get(f"/api/conversations/{session_id}")
        if response.status_code == 200 and response.json()["count"] >= count:
            return response.json()
        if time.time() > deadline:
            raise AssertionError(f"archive for {session_id} never reached {count} turns")
        time.sleep(0.05)


class TestHealth:

    @pytest.mark.parametrize("path", ["/health", "/api/health"])
    def test_health_ok(self, client, path):
        r = client.get(path)
        assert r.status_code == 200
        data = r.json()
        assert data["success"] is True
        assert data["status"] == "OK"

    def test_ready_reports_disabled_providers(self, client):
        data = client.get("/health/ready").json()

        assert data["status"] == "ready"
        assert data["providers"] == {"llm": False, "nlu": False}

    def test_request_id_is_echoed(self, client):
        r = client.get("/health/live", headers={"X-Request-Id": "req-123"})

        assert r.headers["X-Request-Id"] == "req-123"
        assert "X-Process-Time-Ms" in r.headers


class TestClients:

    def test_create_and_fetch_client(self, client, client_payload):
        r = client.post("/api/clients", json=client_payload)
        assert r.status_code == 200
        created = r.json()["client"]
        assert created["name"] == "Asha"
        assert created["emiAmount"] == 2500

        fetched = client.get(f"/api/clients/{created['id']}").json()
        assert fetched["client"]["dueDate"] == client_payload["dueDate"]

        listing = client.get("/api/clients").json()
        assert created["id"] in [c["id"] for c in listing["clients"]]

    def test_invalid_client(self, client):
        r = client.post("/api/clients", json={"name": "", "emiAmount": "lots"})

        assert r.status_code == 422
        body = r.json()
        assert body["success"] is False
        assert "name is required" in body["details"]["validation_errors"]

    def test_unknown_client(self, client):
        r = client.get("/api/clients/does-not-exist")

        assert r.status_code == 404
        assert r.json()["success"] is False


class TestChat:

    def test_chat_uses_rule_tier_without_providers(self, client, client_payload):
        r = client.post("/api/chat", json={"message": "When is my EMI due?", "clientData": client_payload})

        assert r.status_code == 200
        data = r.json()
        assert data["success"] is True
        assert data["source"] == "rules"
        assert data["sentiment"] == "neutral"
        assert "₹2500" in data["response"]
        assert data["sessionId"]

    def test_conversation_is_archived(self, client, client_payload):
        first = client.post("/api/chat", json={"message": "hello", "clientData": client_payload}).json()
        session_id = first["sessionId"]

        second = client.post("/api/chat", json={
            "message": "what is my balance",
            "clientData": client_payload,
            "sessionId": session_id
        }).json()
        assert second["sessionId"] == session_id

        history = wait_for_archive(client, session_id, 4)
        assert [t["speaker"] for t in history["turns"]] == ["user", "assistant", "user", "assistant"]
        assert history["turns"][2]["text"] == "what is my balance"

    def test_chat_with_stored_client(self, client, client_payload):
        client_id = client.post("/api/clients", json=client_payload).json()["client"]["id"]

        r = client.post("/api/chat", json={"message": "I need help", "clientId": client_id})

        assert r.status_code == 200
        assert "Asha" in r.json()["response"]

    def test_chat_requires_client(self, client):
        r = client.post("/api/chat", json={"message": "hello"})

        assert r.status_code == 422
        assert r.json()["success"] is False

    def test_voice_transcript(self, client, client_payload):
        r = client.post("/api/chat/voice", json={
            "transcript": " I cannot pay this month ",
            "confidence": 0.82,
            "clientData": client_payload
        })

        data = r.json()
        assert data["transcript"] == "I cannot pay this month"
        assert data["confidence"] == 0.82
        assert "1800-123-4567" in data["response"]

    def test_empty_voice_transcript_rejected(self, client, client_payload):
        r = client.post("/api/chat/voice", json={"transcript": "   ", "clientData": client_payload})

        assert r.status_code == 400
        body = r.json()
        assert body["success"] is False
        assert body["message"] == "No transcript provided"

    def test_unknown_conversation(self, client):
        r = client.get("/api/conversations/missing-session")

        assert r.status_code == 404
        assert r.json()["success"] is False


class TestSpeechDebug:

    def test_echoes_recognizer_output(self, client):
        r = client.post("/api/speech/debug", json={"transcript": "hello", "confidence": 0.5, "isFinal": True})

        assert r.json()["received"] == {
            "transcript": "hello",
            "confidence": 0.5,
            "isFinal": True,
            "length": 5
        }


def receive_until(ws, message_type, limit=50):
    for _ in range(limit):
        message = ws.receive_json()
        if message["type"] == message_type:
            return message
    raise AssertionError(f"no {message_type} message received")


class TestVoiceSession:

    @pytest.fixture
    def local_speech_only(self, client):
        original = app.state.tts_service
        app.state.tts_service = FailingSynthesizer()
        yield
        app.state.tts_service = original

    def test_greeting_then_turn(self, client, client_payload, local_speech_only):
        with client.websocket_connect("/api/voice/session") as ws:
            ws.send_json({"type": "start", "clientData": client_payload})

            session = ws.receive_json()
            assert session["type"] == "session"

            greeting = receive_until(ws, "speech.local")
            assert greeting["text"].startswith("Hello Asha")
            ws.send_json({"type": "speech.ended", "id": greeting["id"]})

            receive_until(ws, "capture.start")
            ws.send_json({"type": "fragment", "text": "when is my emi due", "isFinal": True, "confidence": 0.9})

            reply = receive_until(ws, "speech.local")
            assert "₹2500" in reply["text"]
            ws.send_json({"type": "speech.ended", "id": reply["id"]})

            receive_until(ws, "capture.start")
            ws.send_json({"type": "stop"})
            while receive_until(ws, "state")["state"] != "idle":
                pass

        history = wait_for_archive(client, session["sessionId"], 3)
        assert [t["speaker"] for t in history["turns"]] == ["assistant", "user", "assistant"]

    def test_messages_before_start_are_rejected(self, client):
        with client.websocket_connect("/api/voice/session") as ws:
            ws.send_json({"type": "fragment", "text": "hi", "isFinal": True})
            assert ws.receive_json()["type"] == "error"

            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

    def test_malformed_fragment_keeps_session_open(self, client, client_payload):
        with client.websocket_connect("/api/voice/session") as ws:
            ws.send_json({"type": "start", "clientData": client_payload, "greet": False})
            assert ws.receive_json()["type"] == "session"
            receive_until(ws, "capture.start")

            ws.send_json({"type": "fragment", "text": "I paid", "isFinal": True, "confidence": "high"})
            error = receive_until(ws, "error")
            assert error["message"] == "Invalid fragment"
            assert error["details"]["fields"] == ["confidence"]

            ws.send_json({"type": "ping"})
            assert receive_until(ws, "pong") == {"type": "pong"}

            ws.send_json({"type": "stop"})
            while receive_until(ws, "state")["state"] != "idle":
                pass
