"""SQLite database layer: connection management and the room store implementation."""

from shared.db.connection import Database
from shared.db.room_store import SqliteRoomStore

__all__ = [
    "Database",
    "SqliteRoomStore",
]
