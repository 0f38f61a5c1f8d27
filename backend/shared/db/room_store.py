"""SQLite-backed room store."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from shared.dal.models import PlayerRecord, RoomRecord
from shared.dal.room_store import DuplicatePlayerNameError, DuplicateRoomCodeError, RoomStore

if TYPE_CHECKING:
    from shared.dal.models import PlayerStatus, PlayerUpdate, RoomUpdate
    from shared.db.connection import Database

logger = structlog.get_logger()


class SqliteRoomStore(RoomStore):
    """SQLite implementation of RoomStore.

    Each record is stored as JSON next to the columns we query or index
    on (code, status, room_id, name). Writes are serialized by an asyncio
    lock so the insert-then-fill-id sequence never interleaves.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    # --- Rooms ---

    async def create_room(self, code: str, host_name: str, max_players: int) -> RoomRecord:
        """Insert a room. Raises DuplicateRoomCodeError when the code is already in use."""
        conn = self._db.connection
        async with self._lock:
            try:
                cursor = conn.execute(
                    "INSERT INTO rooms (code, status, data) VALUES (?, 'waiting', '{}')",
                    (code,),
                )
                room = RoomRecord(
                    room_id=cursor.lastrowid,
                    code=code,
                    host_name=host_name,
                    max_players=max_players,
                    created_at=datetime.now(UTC),
                )
                conn.execute("UPDATE rooms SET data = ? WHERE id = ?", (room.model_dump_json(), room.room_id))
                conn.commit()
            except sqlite3.IntegrityError as exc:
                conn.rollback()
                raise DuplicateRoomCodeError(f"Room code '{code}' already exists") from exc
        return room

    async def get_room(self, room_id: int) -> RoomRecord | None:
        row = self._db.connection.execute("SELECT data FROM rooms WHERE id = ?", (room_id,)).fetchone()
        return None if row is None else RoomRecord.model_validate(json.loads(row[0]))

    async def get_room_by_code(self, code: str) -> RoomRecord | None:
        row = self._db.connection.execute("SELECT data FROM rooms WHERE code = ?", (code,)).fetchone()
        return None if row is None else RoomRecord.model_validate(json.loads(row[0]))

    async def update_room(self, room_id: int, update: RoomUpdate) -> RoomRecord | None:
        conn = self._db.connection
        async with self._lock:
            room = await self.get_room(room_id)
            if room is None:
                return None
            room = room.model_copy(update=update.changes())
            conn.execute(
                "UPDATE rooms SET status = ?, data = ? WHERE id = ?",
                (room.status.value, room.model_dump_json(), room_id),
            )
            conn.commit()
        return room

    # --- Players ---

    async def create_player(self, room_id: int, name: str, connection_id: str, money: int) -> PlayerRecord:
        """Insert a player. Raises DuplicatePlayerNameError on a case-insensitive name clash."""
        conn = self._db.connection
        async with self._lock:
            try:
                cursor = conn.execute(
                    "INSERT INTO players (room_id, name, status, data) VALUES (?, ?, 'active', '{}')",
                    (room_id, name),
                )
                player = PlayerRecord(
                    player_id=cursor.lastrowid,
                    room_id=room_id,
                    connection_id=connection_id,
                    name=name,
                    money=money,
                    joined_at=datetime.now(UTC),
                )
                conn.execute("UPDATE players SET data = ? WHERE id = ?", (player.model_dump_json(), player.player_id))
                conn.commit()
            except sqlite3.IntegrityError as exc:
                conn.rollback()
                if "players.room_id, players.name" in str(exc) or "idx_players_room_name" in str(exc):
                    raise DuplicatePlayerNameError(f"Name '{name}' already taken in room {room_id}") from exc
                raise
        return player

    async def get_player(self, player_id: int) -> PlayerRecord | None:
        row = self._db.connection.execute("SELECT data FROM players WHERE id = ?", (player_id,)).fetchone()
        return None if row is None else PlayerRecord.model_validate(json.loads(row[0]))

    async def get_players(self, room_id: int) -> list[PlayerRecord]:
        rows = self._db.connection.execute(
            "SELECT data FROM players WHERE room_id = ? ORDER BY id",
            (room_id,),
        ).fetchall()
        return [PlayerRecord.model_validate(json.loads(row[0])) for row in rows]

    async def update_player(self, player_id: int, update: PlayerUpdate) -> PlayerRecord | None:
        conn = self._db.connection
        async with self._lock:
            player = await self.get_player(player_id)
            if player is None:
                return None
            player = player.model_copy(update=update.changes())
            conn.execute(
                "UPDATE players SET status = ?, data = ? WHERE id = ?",
                (player.status.value, player.model_dump_json(), player_id),
            )
            conn.commit()
        return player

    async def delete_player(self, player_id: int) -> bool:
        conn = self._db.connection
        async with self._lock:
            cursor = conn.execute("DELETE FROM players WHERE id = ?", (player_id,))
            conn.commit()
        return cursor.rowcount > 0

    async def reset_bets(self, room_id: int, *, status: PlayerStatus) -> int:
        conn = self._db.connection
        async with self._lock:
            cursor = conn.execute(
                "UPDATE players SET data = json_set(data, '$.bet', json('{}'), '$.confirmed', json('false')) "
                "WHERE room_id = ? AND status = ?",
                (room_id, status.value),
            )
            conn.commit()
        if cursor.rowcount == 0:
            logger.debug("reset_bets matched no players", room_id=room_id, status=status)
        return cursor.rowcount
