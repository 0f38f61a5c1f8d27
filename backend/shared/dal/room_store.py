"""Abstract interface for room and player persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shared.dal.models import PlayerRecord, PlayerStatus, PlayerUpdate, RoomRecord, RoomUpdate


class DuplicateRoomCodeError(ValueError):
    """A room with this code already exists."""


class DuplicatePlayerNameError(ValueError):
    """A player with this name (case-insensitive) already exists in the room."""


class RoomStore(ABC):
    """CRUD over Room and Player records.

    No game rules live here. Implementations must be read-after-write
    consistent within the process.
    """

    @abstractmethod
    async def create_room(self, code: str, host_name: str, max_players: int) -> RoomRecord: ...

    @abstractmethod
    async def get_room(self, room_id: int) -> RoomRecord | None: ...

    @abstractmethod
    async def get_room_by_code(self, code: str) -> RoomRecord | None: ...

    @abstractmethod
    async def update_room(self, room_id: int, update: RoomUpdate) -> RoomRecord | None: ...

    @abstractmethod
    async def create_player(self, room_id: int, name: str, connection_id: str, money: int) -> PlayerRecord: ...

    @abstractmethod
    async def get_player(self, player_id: int) -> PlayerRecord | None: ...

    @abstractmethod
    async def get_players(self, room_id: int) -> list[PlayerRecord]:
        """Return the room's players ordered by player_id (join order)."""

    @abstractmethod
    async def update_player(self, player_id: int, update: PlayerUpdate) -> PlayerRecord | None: ...

    @abstractmethod
    async def delete_player(self, player_id: int) -> bool: ...

    @abstractmethod
    async def reset_bets(self, room_id: int, *, status: PlayerStatus) -> int:
        """Clear bet and confirmed flag for every player of the room with the given status.

        Returns the number of players reset.
        """
