import logging

import pytest

from trivia.messaging.router import MessageRouter
from trivia.server.rate_limit import ConnectionRateLimiter
from trivia.tests.mocks import MockConnection


@pytest.fixture
async def host(message_router):
    connection = MockConnection("host")
    await message_router.handle_connect(connection)
    await message_router.handle_message(connection, {"type": "CREATE_ROOM", "hostName": "Host", "maxPlayers": 4})
    return connection


async def _player(message_router, name: str, room_code: str = "ROOM01") -> MockConnection:
    connection = MockConnection(f"conn-{name}")
    await message_router.handle_connect(connection)
    await message_router.handle_message(connection, {"type": "JOIN_ROOM", "roomCode": room_code, "playerName": name})
    return connection


class TestDispatch:
    async def test_create_room(self, host):
        [message] = host.sent_messages
        assert message["type"] == "ROOM_CREATED"
        assert message["room"]["roomCode"] == "ROOM01"

    async def test_join_with_lowercase_code(self, message_router, host):
        ana = await _player(message_router, "Ana", room_code="room01")
        assert ana.messages_of_type("ROOM_JOINED")

    async def test_full_round_over_router(self, message_router, host):
        ana = await _player(message_router, "Ana")
        await message_router.handle_message(host, {"type": "START_GAME", "roomCode": "ROOM01"})
        await message_router.handle_message(ana, {"type": "UPDATE_BET", "roomCode": "ROOM01", "distribution": {"B": 1_000_000}})
        await message_router.handle_message(ana, {"type": "CONFIRM_BET", "roomCode": "ROOM01"})
        await message_router.handle_message(host, {"type": "REVEAL_RESULT", "roomCode": "ROOM01"})
        await message_router.handle_message(host, {"type": "NEXT_QUESTION", "roomCode": "ROOM01"})

        types = [m["type"] for m in ana.sent_messages]
        assert types == [
            "STATE_UPDATE",
            "ROOM_JOINED",
            "GAME_STARTED",
            "BET_UPDATED",
            "STATE_UPDATE",
            "STATE_UPDATE",
            "STATE_UPDATE",
        ]
        assert ana.sent_messages[-1]["room"]["currentQuestionIndex"] == 1
        assert not ana.messages_of_type("ERROR")

    async def test_attach_host_and_remove_player(self, message_router, host):
        ana = await _player(message_router, "Ana")
        screen = MockConnection("screen")
        await message_router.handle_message(screen, {"type": "ATTACH_HOST", "roomCode": "ROOM01"})
        player_id = screen.messages_of_type("ROOM_CREATED")[0]["room"]["players"][0]["id"]

        await message_router.handle_message(screen, {"type": "REMOVE_PLAYER", "roomCode": "ROOM01", "playerId": player_id})

        assert ana.messages_of_type("PLAYER_REMOVED") == [{"type": "PLAYER_REMOVED", "roomCode": "ROOM01"}]

    async def test_ping(self, message_router, mock_connection):
        await message_router.handle_message(mock_connection, {"type": "PING"})
        assert mock_connection.sent_messages == [{"type": "PONG"}]


class TestErrors:
    async def test_schema_failure_is_invalid_message(self, message_router, mock_connection):
        await message_router.handle_message(mock_connection, {"type": "JOIN_ROOM", "roomCode": "x"})

        [error] = mock_connection.sent_messages
        assert error["type"] == "ERROR"
        assert error["kind"] == "validation"
        assert error["code"] == "invalid_message"

    async def test_unknown_type_is_invalid_message(self, message_router, mock_connection):
        await message_router.handle_message(mock_connection, {"type": "HACK"})
        assert mock_connection.sent_messages[0]["code"] == "invalid_message"

    async def test_domain_error_goes_only_to_sender(self, message_router, host):
        ana = await _player(message_router, "Ana")
        host.clear()
        ana.clear()
        impostor = MockConnection("impostor")

        await message_router.handle_message(impostor, {"type": "JOIN_ROOM", "roomCode": "ROOM01", "playerName": "ANA"})

        assert impostor.sent_messages == [
            {"type": "ERROR", "kind": "conflict", "code": "name_taken", "message": "Name 'ANA' is already in use in this room"},
        ]
        assert host.sent_messages == []
        assert ana.sent_messages == []

    async def test_not_found(self, message_router, mock_connection):
        await message_router.handle_message(mock_connection, {"type": "START_GAME", "roomCode": "ZZZZZZ"})
        [error] = mock_connection.sent_messages
        assert (error["kind"], error["code"]) == ("not_found", "room_not_found")

    async def test_rejection_is_logged_as_warning(self, message_router, mock_connection, caplog):
        with caplog.at_level(logging.WARNING, logger="trivia.messaging.router"):
            await message_router.handle_message(mock_connection, {"type": "START_GAME", "roomCode": "ZZZZZZ"})
        assert any("room_not_found" in record.getMessage() for record in caplog.records)

    async def test_unexpected_error_is_internal_error(self, message_router, host, monkeypatch):
        async def explode(*_args, **_kwargs):
            raise ZeroDivisionError

        monkeypatch.setattr(message_router._state_machine, "start_game", explode)

        await message_router.handle_message(host, {"type": "START_GAME", "roomCode": "ROOM01"})

        error = host.sent_messages[-1]
        assert error["type"] == "ERROR"
        assert error["code"] == "internal_error"

    async def test_room_stays_usable_after_rejection(self, message_router, host):
        await message_router.handle_message(host, {"type": "REVEAL_RESULT", "roomCode": "ROOM01"})
        await message_router.handle_message(host, {"type": "START_GAME", "roomCode": "ROOM01"})
        assert host.messages_of_type("GAME_STARTED")


class TestBetUpdateRateLimit:
    async def test_over_limit_updates_are_rejected(self, state_machine):
        router = MessageRouter(state_machine, bet_update_limiter=ConnectionRateLimiter(rate=0.001, burst=2))
        host = MockConnection("host")
        await router.handle_message(host, {"type": "CREATE_ROOM", "hostName": "Host", "maxPlayers": 4})
        ana = MockConnection("ana")
        await router.handle_message(ana, {"type": "JOIN_ROOM", "roomCode": "ROOM01", "playerName": "Ana"})
        await router.handle_message(host, {"type": "START_GAME", "roomCode": "ROOM01"})
        ana.clear()

        for amount in (1, 2, 3):
            await router.handle_message(ana, {"type": "UPDATE_BET", "roomCode": "ROOM01", "distribution": {"A": amount}})

        assert [m["type"] for m in ana.sent_messages] == ["BET_UPDATED", "BET_UPDATED", "ERROR"]
        assert ana.sent_messages[-1]["code"] == "rate_limited"

    async def test_disconnect_drops_bucket(self, state_machine):
        limiter = ConnectionRateLimiter(rate=1.0, burst=1)
        router = MessageRouter(state_machine, bet_update_limiter=limiter)
        connection = MockConnection("c")
        await router.handle_message(connection, {"type": "UPDATE_BET", "roomCode": "ROOM01", "distribution": {}})
        assert len(limiter) == 1

        await router.handle_disconnect(connection)

        assert len(limiter) == 0


class TestLifecycle:
    async def test_disconnect_unbinds(self, message_router, host, registry):
        ana = await _player(message_router, "Ana")
        await message_router.handle_disconnect(ana)
        assert registry.get(ana.connection_id) is None

    async def test_reconnect_via_router(self, message_router, host):
        ana = await _player(message_router, "Ana")
        await message_router.handle_disconnect(ana)
        host.clear()

        await _player(message_router, "Ana")

        assert host.messages_of_type("PLAYER_JOINED")[0]["reconnected"] is True
