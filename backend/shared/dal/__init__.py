"""Data access layer: repository interfaces and shared persistence models."""

from shared.dal.memory import InMemoryRoomStore
from shared.dal.models import PlayerRecord, PlayerStatus, PlayerUpdate, RoomRecord, RoomStatus, RoomUpdate
from shared.dal.room_store import DuplicatePlayerNameError, DuplicateRoomCodeError, RoomStore

__all__ = [
    "DuplicatePlayerNameError",
    "DuplicateRoomCodeError",
    "InMemoryRoomStore",
    "PlayerRecord",
    "PlayerStatus",
    "PlayerUpdate",
    "RoomRecord",
    "RoomStatus",
    "RoomStore",
    "RoomUpdate",
]
