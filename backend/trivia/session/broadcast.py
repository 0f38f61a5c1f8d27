"""Room groups for fan-out plus one-to-one delivery."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from trivia.messaging.protocol import ConnectionProtocol


class BroadcastChannel:
    """Deliver encoded messages to a single connection or every member of a room.

    A send that fails because the socket is already gone is dropped; one dead
    connection never aborts a fan-out to the rest of the room.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ConnectionProtocol] = {}
        self._groups: dict[str, set[str]] = {}  # room_code -> connection ids
        self._membership: dict[str, str] = {}  # connection_id -> room_code

    def register(self, connection: ConnectionProtocol) -> None:
        self._connections[connection.connection_id] = connection

    def unregister(self, connection_id: str) -> None:
        self.unsubscribe(connection_id)
        self._connections.pop(connection_id, None)

    def subscribe(self, room_code: str, connection_id: str) -> None:
        self.unsubscribe(connection_id)
        self._groups.setdefault(room_code, set()).add(connection_id)
        self._membership[connection_id] = room_code

    def unsubscribe(self, connection_id: str) -> None:
        room_code = self._membership.pop(connection_id, None)
        if room_code is None:
            return
        members = self._groups.get(room_code)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._groups[room_code]

    def members(self, room_code: str) -> set[str]:
        return set(self._groups.get(room_code, ()))

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def send_to_connection(self, connection_id: str, message: dict[str, Any]) -> bool:
        """Send to one connection. Returns False if it is unknown or already closed."""
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        try:
            await connection.send_message(message)
        except (RuntimeError, OSError):
            return False
        return True

    async def broadcast_to_room(
        self,
        room_code: str,
        message: dict[str, Any],
        exclude: str | None = None,
    ) -> None:
        # snapshot: a disconnect may mutate the group while we yield on send
        for connection_id in sorted(self._groups.get(room_code, ())):
            if connection_id == exclude:
                continue
            connection = self._connections.get(connection_id)
            if connection is None:
                continue
            with contextlib.suppress(RuntimeError, OSError):
                await connection.send_message(message)
