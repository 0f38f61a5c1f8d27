"""Integration tests for the WebSocket room protocol and HTTP endpoints.

These drive the Starlette app through the test client with real MessagePack
frames, one socket per participant.
"""

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from shared.dal.memory import InMemoryRoomStore
from trivia.server.app import create_app
from trivia.server.settings import TriviaServerSettings
from trivia.tests.helpers.catalog import make_catalog
from trivia.tests.helpers.websocket import recv_until, recv_ws, send_ws


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def _create_room(ws, host_name: str = "Host", max_players: int = 4) -> str:
    send_ws(ws, {"type": "CREATE_ROOM", "hostName": host_name, "maxPlayers": max_players})
    created = recv_ws(ws)
    assert created["type"] == "ROOM_CREATED"
    return created["room"]["roomCode"]


class TestHttp:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_status(self, client):
        response = client.get("/status")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["connections"] == 0
        assert body["room_locks"] == 0
        assert body["total_questions"] == 3

    def test_status_counts_rooms(self, client):
        with client.websocket_connect("/ws") as ws:
            _create_room(ws)
            body = client.get("/status").json()
        assert body["connections"] == 1
        assert body["bound_sessions"] == 1
        assert body["room_locks"] == 1


class TestRoomProtocol:
    def test_create_and_join(self, client):
        with client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as player:
            code = _create_room(host)

            send_ws(player, {"type": "JOIN_ROOM", "roomCode": code, "playerName": "Ana"})
            joined = recv_until(player, "ROOM_JOINED")
            assert joined["player"]["name"] == "Ana"
            assert joined["player"]["money"] == 1_000_000

            notice = recv_until(host, "PLAYER_JOINED")
            assert notice["playerName"] == "Ana"
            assert notice["playerCount"] == 1

    def test_full_round(self, client):
        with client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as player:
            code = _create_room(host)
            send_ws(player, {"type": "JOIN_ROOM", "roomCode": code, "playerName": "Ana"})
            recv_until(player, "ROOM_JOINED")
            recv_until(host, "PLAYER_JOINED")

            send_ws(host, {"type": "START_GAME", "roomCode": code})
            started = recv_until(player, "GAME_STARTED")
            assert started["room"]["currentQuestion"]["options"][0] == {"id": "A", "text": "Option A"}

            send_ws(player, {"type": "UPDATE_BET", "roomCode": code, "distribution": {"B": 1_000_000}})
            ack = recv_until(player, "BET_UPDATED")
            assert ack["total"] == 1_000_000

            send_ws(player, {"type": "CONFIRM_BET", "roomCode": code})
            confirmed = recv_until(player, "STATE_UPDATE")
            assert confirmed["room"]["players"][0]["hasConfirmed"] is True

            recv_until(host, "GAME_STARTED")
            recv_until(host, "STATE_UPDATE")
            send_ws(host, {"type": "REVEAL_RESULT", "roomCode": code})
            revealed = recv_until(host, "STATE_UPDATE")
            assert revealed["room"]["revealedAnswer"] == "B"
            assert revealed["room"]["players"][0]["money"] == 1_000_000
            assert revealed["room"]["players"][0]["currentBet"] == {"B": 1_000_000}

    def test_reconnect_after_socket_drop(self, client):
        with client.websocket_connect("/ws") as host:
            code = _create_room(host)
            with client.websocket_connect("/ws") as first:
                send_ws(first, {"type": "JOIN_ROOM", "roomCode": code, "playerName": "Ana"})
                first_join = recv_until(first, "ROOM_JOINED")
            recv_until(host, "PLAYER_JOINED")

            with client.websocket_connect("/ws") as second:
                send_ws(second, {"type": "JOIN_ROOM", "roomCode": code, "playerName": "ana"})
                second_join = recv_until(second, "ROOM_JOINED")

            assert second_join["player"]["id"] == first_join["player"]["id"]
            notice = recv_until(host, "PLAYER_JOINED")
            assert notice["reconnected"] is True

    def test_domain_error_keeps_socket_open(self, client):
        with client.websocket_connect("/ws") as ws:
            send_ws(ws, {"type": "JOIN_ROOM", "roomCode": "ZZZZZZ", "playerName": "Ana"})
            error = recv_ws(ws)
            assert error == {"type": "ERROR", "kind": "not_found", "code": "room_not_found", "message": "Room ZZZZZZ not found"}

            send_ws(ws, {"type": "PING"})
            assert recv_ws(ws) == {"type": "PONG"}

    def test_schema_error_keeps_socket_open(self, client):
        with client.websocket_connect("/ws") as ws:
            send_ws(ws, {"type": "CREATE_ROOM", "hostName": "Host", "maxPlayers": "many"})
            assert recv_ws(ws)["code"] == "invalid_message"

            send_ws(ws, {"type": "PING"})
            assert recv_ws(ws) == {"type": "PONG"}


class TestMalformedFrames:
    def test_invalid_msgpack_returns_error(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_bytes(b"\xc1")
            error = recv_ws(ws)
            assert error["type"] == "ERROR"
            assert error["code"] == "invalid_message"

            send_ws(ws, {"type": "PING"})
            assert recv_ws(ws) == {"type": "PONG"}

    def test_repeated_decode_errors_close_the_socket(self, client):
        with client.websocket_connect("/ws") as ws:
            for _ in range(5):
                ws.send_bytes(b"\xc1")
                assert recv_ws(ws)["code"] == "invalid_message"
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_bytes()
            assert exc_info.value.code == 4004

    def test_valid_frame_resets_strikes(self, client):
        with client.websocket_connect("/ws") as ws:
            for _ in range(4):
                ws.send_bytes(b"\xc1")
                recv_ws(ws)
            send_ws(ws, {"type": "PING"})
            assert recv_ws(ws) == {"type": "PONG"}
            ws.send_bytes(b"\xc1")
            assert recv_ws(ws)["code"] == "invalid_message"
            send_ws(ws, {"type": "PING"})
            assert recv_ws(ws) == {"type": "PONG"}


class TestRateLimit:
    def test_messages_over_budget_are_rejected(self):
        settings = TriviaServerSettings(database_path=":memory:", message_rate=0.001, message_burst=2)
        app = create_app(settings=settings, store=InMemoryRoomStore(), catalog=make_catalog())
        with TestClient(app) as client, client.websocket_connect("/ws") as ws:
            for _ in range(3):
                send_ws(ws, {"type": "PING"})
            assert recv_ws(ws) == {"type": "PONG"}
            assert recv_ws(ws) == {"type": "PONG"}
            error = recv_ws(ws)
            assert error["code"] == "rate_limited"
            assert error["kind"] == "transient"

    def test_bet_update_budget_comes_from_settings(self):
        settings = TriviaServerSettings(database_path=":memory:", bet_update_rate=0.001, bet_update_burst=1)
        app = create_app(settings=settings, store=InMemoryRoomStore(), catalog=make_catalog())
        with TestClient(app) as client, client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as ws:
            code = _create_room(host)
            send_ws(ws, {"type": "JOIN_ROOM", "roomCode": code.lower(), "playerName": "Ana"})
            recv_until(ws, "ROOM_JOINED")
            send_ws(host, {"type": "START_GAME", "roomCode": code})
            recv_until(ws, "GAME_STARTED")

            send_ws(ws, {"type": "UPDATE_BET", "roomCode": code, "distribution": {"A": 1}})
            assert recv_ws(ws)["type"] == "BET_UPDATED"
            send_ws(ws, {"type": "UPDATE_BET", "roomCode": code, "distribution": {"A": 2}})
            error = recv_ws(ws)
            assert error["type"] == "ERROR"
            assert error["code"] == "rate_limited"
