"""시그널링 서버 end-to-end 테스트 (FastAPI TestClient)."""

import time

import pytest
from fastapi.testclient import TestClient

import app as server
from walkie.signaling import messages, server_config


@pytest.fixture
def client():
    with TestClient(server.app) as test_client:
        yield test_client


def _join(ws, room, user):
    ws.send_json(messages.envelope(messages.JOIN_ROOM, {"room": room, "userId": user}))


def _wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_health_reports_status_and_environment(client):
    body = client.get("/health").json()
    assert body["status"] == "OK"
    assert body["environment"] == server_config.ENV
    assert "T" in body["timestamp"]


def test_lobby_join_leave_disconnect_scenario(client):
    registry = server.registry

    with client.websocket_connect("/ws") as ws1:
        _join(ws1, "lobby", "p1")
        assert ws1.receive_json() == messages.envelope(messages.ROOM_USERS, {"users": ["p1"]})
        assert registry.members_of("lobby") == {"p1"}

        with client.websocket_connect("/ws") as ws2:
            _join(ws2, "lobby", "p2")
            assert ws2.receive_json() == messages.envelope(messages.ROOM_USERS, {"users": ["p1", "p2"]})
            assert ws1.receive_json() == messages.envelope(messages.USER_CONNECTED, {"userId": "p2"})
            assert registry.members_of("lobby") == {"p1", "p2"}

            ws1.send_json(messages.envelope(messages.LEAVE_ROOM, {"room": "lobby", "userId": "p1"}))
            assert ws2.receive_json() == messages.envelope(messages.USER_DISCONNECTED, {"userId": "p1"})
            assert registry.members_of("lobby") == {"p2"}

        # p2는 leave-room 없이 연결만 끊음
        assert _wait_until(lambda: not registry.has_room("lobby"))


def test_negotiation_messages_are_relayed_with_sender(client):
    with client.websocket_connect("/ws") as ws1, client.websocket_connect("/ws") as ws2:
        _join(ws1, "relay-room", "alice")
        ws1.receive_json()
        _join(ws2, "relay-room", "bob")
        ws2.receive_json()
        ws1.receive_json()  # user-connected(bob)

        offer = {"sdp": "v=0", "type": "offer"}
        ws2.send_json(messages.envelope(messages.OFFER, {"room": "relay-room", "offer": offer, "to": "alice"}))
        relayed = ws1.receive_json()
        assert relayed["type"] == messages.OFFER
        assert relayed["data"]["offer"] == offer
        assert relayed["data"]["from"] == "bob"

        ws1.send_json(messages.envelope(messages.USER_TALKING, {
            "room": "relay-room", "userId": "alice", "isTalking": True
        }))
        talking = ws2.receive_json()
        assert talking["type"] == messages.USER_TALKING
        assert talking["data"]["isTalking"] is True
        assert talking["data"]["from"] == "alice"

        rooms = client.get("/api/rooms").json()["rooms"]
        assert {"room": "relay-room", "members": ["alice", "bob"], "count": 2} in rooms


def test_invalid_json_gets_error_and_connection_stays_open(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("{broken")
        assert ws.receive_json()["type"] == messages.ERROR

        _join(ws, "still-open", "p1")
        assert ws.receive_json()["type"] == messages.ROOM_USERS
