"""
Pydantic view models: the projections of server state sent to clients.

Views never carry correctness flags, and bet amounts only appear once a
round has been revealed (or in a player's own private snapshot).
"""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from shared.dal.models import PlayerStatus, RoomStatus
from trivia.catalog.models import RoundKind


class WireModel(BaseModel):
    """Base for everything serialized onto the wire: camelCase keys, enums as values."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class OptionView(WireModel):
    id: str
    text: str


class QuestionView(WireModel):
    index: int
    text: str
    kind: RoundKind
    options: list[OptionView]
    max_options_to_bet: int


class PlayerView(WireModel):
    id: int
    name: str
    money: int
    status: PlayerStatus
    has_confirmed: bool
    current_bet: dict[str, int] | None = None


class LeaderboardEntry(WireModel):
    rank: int
    id: int
    name: str
    money: int
    status: PlayerStatus


class RoomView(WireModel):
    room_code: str
    host_name: str
    max_players: int
    status: RoomStatus
    current_question_index: int
    total_questions: int
    current_question: QuestionView | None = None
    revealed_answer: str | None = None
    players: list[PlayerView]
    leaderboard: list[LeaderboardEntry] | None = None
