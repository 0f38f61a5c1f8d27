"""Shared WebSocket test helpers for room server integration tests."""

from trivia.messaging.encoder import decode, encode


def send_ws(ws, data: dict) -> None:
    """Send a MessagePack-encoded message over a test WebSocket."""
    ws.send_bytes(encode(data))


def recv_ws(ws) -> dict:
    """Receive and decode a MessagePack message from a test WebSocket."""
    return decode(ws.receive_bytes())


def recv_until(ws, message_type: str, limit: int = 10) -> dict:
    """Receive messages until one of the given type arrives; fail after ``limit`` frames."""
    for _ in range(limit):
        message = recv_ws(ws)
        if message["type"] == message_type:
            return message
    raise AssertionError(f"no {message_type} within {limit} messages")
