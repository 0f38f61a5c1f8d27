"""Persistence models for the data access layer."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class RoomStatus(StrEnum):
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class PlayerStatus(StrEnum):
    ACTIVE = "active"
    ELIMINATED = "eliminated"
    WINNER = "winner"


class RoomRecord(BaseModel, frozen=True):
    """Stored room (one game session)."""

    room_id: int
    code: str  # 6-char uppercase alphanumeric, unique
    host_name: str
    max_players: int
    status: RoomStatus = RoomStatus.WAITING
    current_round: int = 0  # 0-based index into the question catalog
    revealed_option: str | None = None  # correct letter once the current round is revealed
    created_at: datetime


class PlayerRecord(BaseModel, frozen=True):
    """Stored player. player_id is assigned in insertion order and doubles as join order."""

    player_id: int
    room_id: int
    connection_id: str  # last connection bound to this player
    name: str
    money: int
    status: PlayerStatus = PlayerStatus.ACTIVE
    bet: dict[str, int] = Field(default_factory=dict)  # option letter -> amount
    confirmed: bool = False
    joined_at: datetime

    @property
    def bet_total(self) -> int:
        return sum(self.bet.values())


class _PartialUpdate(BaseModel):
    def changes(self) -> dict:
        """Return only the fields the caller set explicitly (None included, to clear a value)."""
        return self.model_dump(exclude_unset=True)


class RoomUpdate(_PartialUpdate):
    status: RoomStatus | None = None
    current_round: int | None = None
    revealed_option: str | None = None


class PlayerUpdate(_PartialUpdate):
    connection_id: str | None = None
    money: int | None = None
    status: PlayerStatus | None = None
    bet: dict[str, int] | None = None
    confirmed: bool | None = None
