from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictInt,
    StringConstraints,
    TypeAdapter,
)
from pydantic.alias_generators import to_camel

from shared.validators import has_control_characters
from trivia.logic.exceptions import ErrorKind
from trivia.session.types import PlayerView, RoomView, WireModel


class ClientCommandType(StrEnum):
    CREATE_ROOM = "CREATE_ROOM"
    ATTACH_HOST = "ATTACH_HOST"
    JOIN_ROOM = "JOIN_ROOM"
    START_GAME = "START_GAME"
    UPDATE_BET = "UPDATE_BET"
    CONFIRM_BET = "CONFIRM_BET"
    REVEAL_RESULT = "REVEAL_RESULT"
    NEXT_QUESTION = "NEXT_QUESTION"
    REMOVE_PLAYER = "REMOVE_PLAYER"
    PING = "PING"


class ServerEventType(StrEnum):
    ROOM_CREATED = "ROOM_CREATED"
    ROOM_JOINED = "ROOM_JOINED"
    PLAYER_JOINED = "PLAYER_JOINED"
    STATE_UPDATE = "STATE_UPDATE"
    GAME_STARTED = "GAME_STARTED"
    BET_UPDATED = "BET_UPDATED"
    PLAYER_REMOVED = "PLAYER_REMOVED"
    ERROR = "ERROR"
    PONG = "PONG"


class ProtocolErrorCode(StrEnum):
    """Error codes raised by the transport layer rather than the room rules."""

    INVALID_MESSAGE = "invalid_message"
    RATE_LIMITED = "rate_limited"
    INTERNAL_ERROR = "internal_error"


def _reject_control_characters(value: str) -> str:
    if has_control_characters(value):
        raise ValueError("must not contain control characters")
    return value


def _normalize_room_code(value: Any) -> Any:  # noqa: ANN401
    return value.strip().upper() if isinstance(value, str) else value


RoomCode = Annotated[
    str,
    StringConstraints(pattern=r"^[A-Z0-9]{6}$"),
    BeforeValidator(_normalize_room_code),
]
HostName = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=50),
    AfterValidator(_reject_control_characters),
]
PlayerName = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=30),
    AfterValidator(_reject_control_characters),
]


class _Command(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class CreateRoomCommand(_Command):
    type: Literal[ClientCommandType.CREATE_ROOM] = ClientCommandType.CREATE_ROOM
    host_name: HostName
    max_players: StrictInt


class AttachHostCommand(_Command):
    type: Literal[ClientCommandType.ATTACH_HOST] = ClientCommandType.ATTACH_HOST
    room_code: RoomCode


class JoinRoomCommand(_Command):
    type: Literal[ClientCommandType.JOIN_ROOM] = ClientCommandType.JOIN_ROOM
    room_code: RoomCode
    player_name: PlayerName


class StartGameCommand(_Command):
    type: Literal[ClientCommandType.START_GAME] = ClientCommandType.START_GAME
    room_code: RoomCode


class UpdateBetCommand(_Command):
    type: Literal[ClientCommandType.UPDATE_BET] = ClientCommandType.UPDATE_BET
    room_code: RoomCode
    # letters and amounts are checked against the round by the betting rules
    distribution: dict[Annotated[str, StringConstraints(max_length=4)], StrictInt] = Field(max_length=16)


class ConfirmBetCommand(_Command):
    type: Literal[ClientCommandType.CONFIRM_BET] = ClientCommandType.CONFIRM_BET
    room_code: RoomCode


class RevealResultCommand(_Command):
    type: Literal[ClientCommandType.REVEAL_RESULT] = ClientCommandType.REVEAL_RESULT
    room_code: RoomCode


class NextQuestionCommand(_Command):
    type: Literal[ClientCommandType.NEXT_QUESTION] = ClientCommandType.NEXT_QUESTION
    room_code: RoomCode


class RemovePlayerCommand(_Command):
    type: Literal[ClientCommandType.REMOVE_PLAYER] = ClientCommandType.REMOVE_PLAYER
    room_code: RoomCode
    player_id: StrictInt


class PingCommand(_Command):
    type: Literal[ClientCommandType.PING] = ClientCommandType.PING


ClientCommand = (
    CreateRoomCommand
    | AttachHostCommand
    | JoinRoomCommand
    | StartGameCommand
    | UpdateBetCommand
    | ConfirmBetCommand
    | RevealResultCommand
    | NextQuestionCommand
    | RemovePlayerCommand
    | PingCommand
)

_command_adapter: TypeAdapter[ClientCommand] = TypeAdapter(Annotated[ClientCommand, Field(discriminator="type")])


def parse_client_command(data: dict[str, Any]) -> ClientCommand:
    """Validate a decoded frame into a typed command. Raises pydantic.ValidationError."""
    return _command_adapter.validate_python(data)


# --- Server events ---


class RoomCreatedEvent(WireModel):
    type: Literal[ServerEventType.ROOM_CREATED] = ServerEventType.ROOM_CREATED
    room: RoomView


class RoomJoinedEvent(WireModel):
    """Private join (or rejoin) acknowledgment with the full current snapshot."""

    type: Literal[ServerEventType.ROOM_JOINED] = ServerEventType.ROOM_JOINED
    room: RoomView
    player: PlayerView


class PlayerJoinedEvent(WireModel):
    """Host-only notice."""

    type: Literal[ServerEventType.PLAYER_JOINED] = ServerEventType.PLAYER_JOINED
    player_name: str
    player_count: int
    reconnected: bool = False


class StateUpdateEvent(WireModel):
    type: Literal[ServerEventType.STATE_UPDATE] = ServerEventType.STATE_UPDATE
    room: RoomView


class GameStartedEvent(WireModel):
    type: Literal[ServerEventType.GAME_STARTED] = ServerEventType.GAME_STARTED
    room: RoomView


class BetUpdatedEvent(WireModel):
    type: Literal[ServerEventType.BET_UPDATED] = ServerEventType.BET_UPDATED
    distribution: dict[str, int]
    total: int


class PlayerRemovedEvent(WireModel):
    type: Literal[ServerEventType.PLAYER_REMOVED] = ServerEventType.PLAYER_REMOVED
    room_code: str


class ErrorEvent(WireModel):
    type: Literal[ServerEventType.ERROR] = ServerEventType.ERROR
    kind: ErrorKind
    code: str
    message: str


class PongEvent(WireModel):
    type: Literal[ServerEventType.PONG] = ServerEventType.PONG
