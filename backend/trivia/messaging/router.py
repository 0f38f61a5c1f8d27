from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from trivia.logic.exceptions import ErrorKind, TriviaError
from trivia.messaging.types import (
    AttachHostCommand,
    ConfirmBetCommand,
    CreateRoomCommand,
    ErrorEvent,
    JoinRoomCommand,
    NextQuestionCommand,
    PingCommand,
    ProtocolErrorCode,
    RemovePlayerCommand,
    RevealResultCommand,
    StartGameCommand,
    UpdateBetCommand,
    parse_client_command,
)
from trivia.server.rate_limit import ConnectionRateLimiter

if TYPE_CHECKING:
    from trivia.messaging.protocol import ConnectionProtocol
    from trivia.messaging.types import ClientCommand
    from trivia.session.manager import RoomStateMachine

logger = logging.getLogger(__name__)


class MessageRouter:
    """
    Routes decoded client messages to the room state machine.

    This is the error boundary: rejected commands come back as a private
    ERROR on the originating connection and never reach the room.
    """

    def __init__(
        self,
        state_machine: RoomStateMachine,
        *,
        bet_update_limiter: ConnectionRateLimiter | None = None,
    ) -> None:
        self._state_machine = state_machine
        if bet_update_limiter is None:
            bet_update_limiter = ConnectionRateLimiter(rate=10.0, burst=20)
        self._bet_update_limiter = bet_update_limiter

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            command = parse_client_command(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e)
            await self._send_error(
                connection,
                kind=ErrorKind.VALIDATION,
                code=ProtocolErrorCode.INVALID_MESSAGE,
                message=str(e),
            )
            return

        room_code = getattr(command, "room_code", None)
        if room_code is not None:
            structlog.contextvars.bind_contextvars(room_code=room_code)

        if isinstance(command, UpdateBetCommand) and not self._bet_update_limiter.consume(connection.connection_id):
            await self._send_error(
                connection,
                kind=ErrorKind.TRANSIENT,
                code=ProtocolErrorCode.RATE_LIMITED,
                message="Too many bet updates",
            )
            return

        try:
            await self._dispatch(connection, command)
        except TriviaError as e:
            logger.warning("%s rejected for %s: %s (%s)", command.type, connection.connection_id, e.message, e.code)
            await self._send_error(connection, kind=e.kind, code=e.code, message=e.message)
        except Exception:
            logger.exception("unexpected error handling %s for %s", command.type, connection.connection_id)
            await self._send_error(
                connection,
                kind=ErrorKind.TRANSIENT,
                code=ProtocolErrorCode.INTERNAL_ERROR,
                message="Internal server error",
            )

    async def _dispatch(self, connection: ConnectionProtocol, command: ClientCommand) -> None:
        sm = self._state_machine
        if isinstance(command, CreateRoomCommand):
            await sm.create_room(connection, command.host_name, command.max_players)
        elif isinstance(command, AttachHostCommand):
            await sm.attach_host(connection, command.room_code)
        elif isinstance(command, JoinRoomCommand):
            await sm.join_room(connection, command.room_code, command.player_name)
        elif isinstance(command, StartGameCommand):
            await sm.start_game(command.room_code)
        elif isinstance(command, UpdateBetCommand):
            await sm.update_bet(connection, command.room_code, command.distribution)
        elif isinstance(command, ConfirmBetCommand):
            await sm.confirm_bet(connection, command.room_code)
        elif isinstance(command, RevealResultCommand):
            await sm.reveal_result(command.room_code)
        elif isinstance(command, NextQuestionCommand):
            await sm.next_question(command.room_code)
        elif isinstance(command, RemovePlayerCommand):
            await sm.remove_player(command.room_code, command.player_id)
        elif isinstance(command, PingCommand):
            await sm.ping(connection)

    async def _send_error(self, connection: ConnectionProtocol, *, kind: ErrorKind, code: str, message: str) -> None:
        try:
            await connection.send_message(ErrorEvent(kind=kind, code=code, message=message).to_wire())
        except (RuntimeError, OSError):
            logger.debug("could not deliver error to %s", connection.connection_id)

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        structlog.contextvars.bind_contextvars(connection_id=connection.connection_id)
        self._state_machine.connect(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        self._bet_update_limiter.discard(connection.connection_id)
        await self._state_machine.disconnect(connection)
