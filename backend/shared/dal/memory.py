"""In-memory RoomStore, used by tests and for throwaway local runs."""

from __future__ import annotations

from datetime import UTC, datetime
from itertools import count
from typing import TYPE_CHECKING

from shared.dal.models import PlayerRecord, RoomRecord
from shared.dal.room_store import DuplicatePlayerNameError, DuplicateRoomCodeError, RoomStore

if TYPE_CHECKING:
    from shared.dal.models import PlayerStatus, PlayerUpdate, RoomUpdate


class InMemoryRoomStore(RoomStore):
    """Dict-backed store. Records are immutable, so returned values never alias stored state."""

    def __init__(self) -> None:
        self._rooms: dict[int, RoomRecord] = {}
        self._room_ids_by_code: dict[str, int] = {}
        self._players: dict[int, PlayerRecord] = {}
        self._room_ids = count(1)
        self._player_ids = count(1)

    async def create_room(self, code: str, host_name: str, max_players: int) -> RoomRecord:
        if code in self._room_ids_by_code:
            raise DuplicateRoomCodeError(f"Room code '{code}' already exists")
        room = RoomRecord(
            room_id=next(self._room_ids),
            code=code,
            host_name=host_name,
            max_players=max_players,
            created_at=datetime.now(UTC),
        )
        self._rooms[room.room_id] = room
        self._room_ids_by_code[code] = room.room_id
        return room

    async def get_room(self, room_id: int) -> RoomRecord | None:
        return self._rooms.get(room_id)

    async def get_room_by_code(self, code: str) -> RoomRecord | None:
        room_id = self._room_ids_by_code.get(code)
        return None if room_id is None else self._rooms.get(room_id)

    async def update_room(self, room_id: int, update: RoomUpdate) -> RoomRecord | None:
        room = self._rooms.get(room_id)
        if room is None:
            return None
        room = room.model_copy(update=update.changes())
        self._rooms[room_id] = room
        return room

    async def create_player(self, room_id: int, name: str, connection_id: str, money: int) -> PlayerRecord:
        folded = name.casefold()
        if any(p.room_id == room_id and p.name.casefold() == folded for p in self._players.values()):
            raise DuplicatePlayerNameError(f"Name '{name}' already taken in room {room_id}")
        player = PlayerRecord(
            player_id=next(self._player_ids),
            room_id=room_id,
            connection_id=connection_id,
            name=name,
            money=money,
            joined_at=datetime.now(UTC),
        )
        self._players[player.player_id] = player
        return player

    async def get_player(self, player_id: int) -> PlayerRecord | None:
        return self._players.get(player_id)

    async def get_players(self, room_id: int) -> list[PlayerRecord]:
        return sorted(
            (p for p in self._players.values() if p.room_id == room_id),
            key=lambda p: p.player_id,
        )

    async def update_player(self, player_id: int, update: PlayerUpdate) -> PlayerRecord | None:
        player = self._players.get(player_id)
        if player is None:
            return None
        player = player.model_copy(update=update.changes())
        self._players[player_id] = player
        return player

    async def delete_player(self, player_id: int) -> bool:
        return self._players.pop(player_id, None) is not None

    async def reset_bets(self, room_id: int, *, status: PlayerStatus) -> int:
        reset = 0
        for player in await self.get_players(room_id):
            if player.status == status:
                self._players[player.player_id] = player.model_copy(update={"bet": {}, "confirmed": False})
                reset += 1
        return reset
