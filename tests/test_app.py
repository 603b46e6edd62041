"""End-to-end tests through the FastAPI app (REST endpoints and the /ws socket).

The app keeps its state in process-wide singletons, so every test uses its own
room name.
"""

import uuid

import pytest
from fastapi.testclient import TestClient

from tabletop.app import app


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def _room() -> str:
    return f"room-{uuid.uuid4().hex[:8]}"


def _welcome(ws) -> str:
    frame = ws.receive_json()
    assert frame["type"] == "welcome"
    return frame["data"]["connectionId"]


def _join(ws, room, name, role="player"):
    ws.send_json({"type": "joinRoom", "room": room, "identity": {"displayName": name, "role": role}})


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


class TestLogin:
    def test_player_needs_no_credential(self, client):
        resp = client.post("/login", json={"role": "player", "displayName": "Pip"})
        assert resp.status_code == 200
        assert resp.json() == {"accepted": True, "reason": None}

    def test_host_login(self, client):
        ok = client.post("/login", json={"role": "host", "displayName": "samuel", "credential": "dragon"})
        wrong_name = client.post("/login", json={"role": "host", "displayName": "Mallory", "credential": "dragon"})
        wrong_pass = client.post("/login", json={"role": "host", "displayName": "Samuel", "credential": "nope"})

        assert ok.json()["accepted"] is True
        assert wrong_name.json() == {"accepted": False, "reason": "NotAuthorizedForHost"}
        assert wrong_pass.json() == {"accepted": False, "reason": "InvalidCredentials"}

    def test_creator_login(self, client):
        resp = client.post("/login", json={"role": "creator", "displayName": "Ada", "credential": "forge"})
        assert resp.json()["accepted"] is True

    def test_unknown_role_is_a_validation_error(self, client):
        resp = client.post("/login", json={"role": "wizard", "displayName": "Merlin"})
        assert resp.status_code == 422


class TestWebSocket:
    def test_welcome_and_host_join(self, client):
        room = _room()
        with client.websocket_connect("/ws") as ws:
            cid = _welcome(ws)
            assert cid.startswith("C_")
            _join(ws, room, "Samuel", "host")

            update = ws.receive_json()
            status = ws.receive_json()
            assert update["type"] == "roomUpdate"
            assert update["data"]["room"] == room
            assert update["data"]["host"]["connectionId"] == cid
            assert status == {"type": "hostStatus", "data": True}

    def test_player_before_host_gets_join_error(self, client):
        with client.websocket_connect("/ws") as ws:
            _welcome(ws)
            _join(ws, _room(), "Pip")
            frame = ws.receive_json()
            assert frame["type"] == "joinError"
            assert frame["data"]["kind"] == "HostRequiredFirst"

    def test_malformed_frame_keeps_the_socket_open(self, client):
        with client.websocket_connect("/ws") as ws:
            _welcome(ws)
            ws.send_text("{not json")
            assert ws.receive_json()["data"]["kind"] == "MissingFields"
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong", "data": None}

    def test_binary_frame_keeps_the_socket_open(self, client):
        with client.websocket_connect("/ws") as ws:
            _welcome(ws)
            ws.send_bytes(b"\x00\x01")
            frame = ws.receive_json()
            assert frame["type"] == "error"
            assert frame["data"]["kind"] == "MissingFields"
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong", "data": None}

    def test_dice_roll_reaches_the_room(self, client):
        room = _room()
        with client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as player:
            _welcome(host)
            _welcome(player)
            _join(host, room, "Samuel", "host")
            host.receive_json()
            host.receive_json()
            _join(player, room, "Pip")
            assert host.receive_json()["type"] == "roomUpdate"
            assert player.receive_json()["type"] == "roomUpdate"
            assert player.receive_json()["type"] == "hostStatus"

            player.send_json({"type": "rollDice", "dieKind": "d6"})
            for ws in (host, player):
                frame = ws.receive_json()
                assert frame["type"] == "diceRolled"
                assert frame["data"]["displayName"] == "Pip"
                assert 1 <= frame["data"]["value"] <= 6


class TestRooms:
    def test_rooms_and_logout(self, client):
        room = _room()
        assert client.get(f"/rooms/{room}").status_code == 404

        with client.websocket_connect("/ws") as ws:
            cid = _welcome(ws)
            _join(ws, room, "Samuel", "host")
            ws.receive_json()
            ws.receive_json()

            summaries = {s["room"]: s for s in client.get("/rooms").json()}
            assert summaries[room]["hostName"] == "Samuel"
            assert summaries[room]["playerCount"] == 0

            snapshot = client.get(f"/rooms/{room}").json()
            assert snapshot["phase"] == "lobby"
            assert [a["name"] for a in snapshot["assets"]] == ["Treasure Chest", "Magic Sword", "Potion"]

            resp = client.post("/logout", json={"role": "host", "connectionId": cid})
            assert resp.json() == {"ok": True, "leftRoom": room}
            assert client.get(f"/rooms/{room}").json()["host"] is None

    def test_logout_without_a_room(self, client):
        resp = client.post("/logout", json={"role": "player"})
        assert resp.json() == {"ok": True, "leftRoom": None}

    def test_rejected_join_is_not_listed(self, client):
        room = _room()
        with client.websocket_connect("/ws") as ws:
            _welcome(ws)
            _join(ws, room, "Pip")
            assert ws.receive_json()["type"] == "joinError"

        assert room not in [s["room"] for s in client.get("/rooms").json()]
        assert client.get(f"/rooms/{room}").status_code == 404

    def test_logout_must_match_the_bound_role(self, client):
        room = _room()
        with client.websocket_connect("/ws") as ws:
            cid = _welcome(ws)
            _join(ws, room, "Samuel", "host")
            ws.receive_json()
            ws.receive_json()

            resp = client.post("/logout", json={"role": "player", "connectionId": cid})

            assert resp.status_code == 403
            assert client.get(f"/rooms/{room}").json()["host"]["connectionId"] == cid
