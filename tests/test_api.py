import pytest
from fastapi.testclient import TestClient

from chatroom.core import state
from chatroom.core.config import settings
from chatroom.main import app


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(settings, "MESSAGE_STORE", "memory")
    with TestClient(app) as test_client:
        yield test_client


def test_root_and_health(client):
    assert client.get("/").json()["endpoints"]["websocket"] == "/ws"

    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["store"] == "memory"
    assert health["subscribers"] == 0


def test_post_and_list_messages(client):
    response = client.post("/messages", json={"sender": "alice", "body": "hi"})
    assert response.status_code == 201
    assert response.json()["id"] == 1

    messages = client.get("/messages").json()
    assert [(m["id"], m["sender"], m["body"]) for m in messages] == [(1, "alice", "hi")]


def test_post_invalid_message_returns_field_errors(client):
    response = client.post("/messages", json={"sender": "", "body": "hi"})

    assert response.status_code == 422
    assert response.json()["detail"] == [{"field": "sender", "reason": "blank"}]
    assert client.get("/messages").json() == []


def test_websocket_clients_share_the_live_feed(client):
    client.post("/messages", json={"sender": "carol", "body": "earlier"})

    with client.websocket_connect("/ws?username=alice") as ws1, client.websocket_connect("/ws") as ws2:
        history1 = ws1.receive_json()
        history2 = ws2.receive_json()
        assert history1["type"] == "history"
        assert [m["body"] for m in history1["messages"]] == ["earlier"]
        assert history2["messages"] == history1["messages"]

        ws1.send_json({"action": "send_message", "body": "hello"})
        for ws in (ws1, ws2):
            frame = ws.receive_json()
            assert frame["type"] == "message"
            assert frame["message"]["sender"] == "alice"
            assert frame["message"]["body"] == "hello"

        # REST submissions reach live clients too
        client.post("/messages", json={"sender": "dave", "body": "from http"})
        assert ws1.receive_json()["message"]["body"] == "from http"
        assert ws2.receive_json()["message"]["body"] == "from http"

        ws2.send_text("{not json")
        assert ws2.receive_json() == {"type": "error", "message": "Invalid JSON"}

        ws2.send_json({"action": "send_message", "body": "no name"})
        assert ws2.receive_json()["errors"] == [{"field": "sender", "reason": "blank"}]

        assert client.get("/metrics").json()["concurrent_subscribers"] == 2


def test_metrics_counts_messages(client):
    client.post("/messages", json={"sender": "alice", "body": "one"})
    client.post("/messages", json={"sender": "alice", "body": "two"})

    metrics = client.get("/metrics").json()
    assert metrics["total_messages"] == 2
    assert metrics["dropped_deliveries"] == 0
    assert state.chat.message_counter == 2
