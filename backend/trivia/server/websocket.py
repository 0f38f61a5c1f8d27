from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from trivia.logic.exceptions import ErrorKind
from trivia.messaging.encoder import DecodeError, decode
from trivia.messaging.protocol import ConnectionProtocol
from trivia.messaging.types import ErrorEvent, ProtocolErrorCode
from trivia.server.rate_limit import TokenBucket

logger = structlog.get_logger()

if TYPE_CHECKING:
    from trivia.messaging.router import MessageRouter

# Disconnect after this many consecutive decode errors
_MAX_DECODE_ERRORS = 5


class WebSocketConnection(ConnectionProtocol):
    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._connection_id = connection_id or str(uuid4())

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._websocket.send_bytes(data)
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def receive_bytes(self) -> bytes:
        try:
            return await self._websocket.receive_bytes()
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


def _error(code: ProtocolErrorCode, message: str, kind: ErrorKind = ErrorKind.VALIDATION) -> dict:
    return ErrorEvent(kind=kind, code=code, message=message).to_wire()


async def websocket_endpoint(
    websocket: WebSocket,
    router: MessageRouter,
    *,
    message_rate: float,
    message_burst: int,
) -> None:
    await websocket.accept()

    connection = WebSocketConnection(websocket)
    logger.info("websocket connected", connection_id=connection.connection_id)
    await router.handle_connect(connection)

    bucket = TokenBucket(rate=message_rate, burst=message_burst)
    decode_errors = 0

    try:
        while True:
            raw = await connection.receive_bytes()

            # Always decode so the malformed-frame strike counter stays accurate.
            try:
                data = decode(raw)
            except DecodeError as e:
                decode_errors += 1
                logger.warning("decode error", error=str(e), strikes=decode_errors)
                await connection.send_message(_error(ProtocolErrorCode.INVALID_MESSAGE, str(e)))
                if decode_errors >= _MAX_DECODE_ERRORS:
                    logger.info(
                        "too many decode errors, disconnecting",
                        connection_id=connection.connection_id,
                    )
                    await connection.close(code=4004, reason="too_many_decode_errors")
                    return
                continue

            decode_errors = 0

            if not bucket.consume():
                await connection.send_message(
                    _error(ProtocolErrorCode.RATE_LIMITED, "Too many messages", kind=ErrorKind.TRANSIENT),
                )
                continue
            await router.handle_message(connection, data)
    except (WebSocketDisconnect, RuntimeError, ConnectionError):
        pass
    finally:
        logger.info("websocket disconnected", connection_id=connection.connection_id)
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()
