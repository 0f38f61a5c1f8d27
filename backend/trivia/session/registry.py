"""In-memory map of live connections to the room seat they occupy."""

from dataclasses import dataclass
from enum import StrEnum


class SessionRole(StrEnum):
    HOST = "host"
    PLAYER = "player"


@dataclass(frozen=True)
class SessionBinding:
    room_code: str
    room_id: int
    role: SessionRole
    name: str
    player_id: int | None = None  # None for host bindings


class SessionRegistry:
    """
    Track which room (and which player) each live connection is bound to.

    Lifetime of a binding is the lifetime of the connection; nothing here
    survives a restart. Player records in the store outlive their bindings,
    which is what makes reconnection by name possible.
    """

    def __init__(self) -> None:
        self._bindings: dict[str, SessionBinding] = {}  # connection_id -> binding

    def bind(self, connection_id: str, binding: SessionBinding) -> None:
        self._bindings[connection_id] = binding

    def get(self, connection_id: str) -> SessionBinding | None:
        return self._bindings.get(connection_id)

    def unbind(self, connection_id: str) -> SessionBinding | None:
        return self._bindings.pop(connection_id, None)

    def find_player_connection(self, player_id: int) -> str | None:
        """Return the connection currently bound to this player, if any."""
        for connection_id, binding in self._bindings.items():
            if binding.player_id == player_id:
                return connection_id
        return None

    def host_connections(self, room_code: str) -> list[str]:
        return [
            connection_id
            for connection_id, binding in self._bindings.items()
            if binding.role == SessionRole.HOST and binding.room_code == room_code
        ]

    @property
    def connection_count(self) -> int:
        return len(self._bindings)
