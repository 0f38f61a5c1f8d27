"""Typed domain exceptions for room commands.

Every rejection raised by the room state machine is a TriviaError
subclass. MessageRouter catches them at the boundary and turns them into
a private ERROR message for the originating connection; they never
reach the room broadcast and never leave the room unusable.
"""

from enum import StrEnum
from typing import ClassVar


class ErrorKind(StrEnum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STATE = "state"
    TRANSIENT = "transient"


class TriviaError(Exception):
    """Base exception for rejected commands.

    Attributes:
        code: Stable machine-readable reason (e.g. "name_taken").
        message: Human-readable explanation sent to the client.

    """

    kind: ClassVar[ErrorKind]
    default_code: ClassVar[str]

    def __init__(self, message: str, *, code: str | None = None) -> None:
        self.code = code or self.default_code
        self.message = message
        super().__init__(message)


class CommandValidationError(TriviaError):
    """Malformed command payload. Nothing was mutated."""

    kind = ErrorKind.VALIDATION
    default_code = "invalid_payload"


class InvalidBetError(CommandValidationError):
    """Bet distribution breaks a wagering rule."""

    default_code = "invalid_bet"


class NotFoundError(TriviaError):
    kind = ErrorKind.NOT_FOUND
    default_code = "not_found"


class RoomNotFoundError(NotFoundError):
    default_code = "room_not_found"


class PlayerNotFoundError(NotFoundError):
    default_code = "player_not_found"


class ConflictError(TriviaError):
    kind = ErrorKind.CONFLICT
    default_code = "conflict"


class NameTakenError(ConflictError):
    default_code = "name_taken"


class RoomFullError(ConflictError):
    default_code = "room_full"


class RoomAlreadyStartedError(ConflictError):
    default_code = "room_already_started"


class AlreadyRevealedError(ConflictError):
    default_code = "already_revealed"


class StateError(TriviaError):
    """Command is not valid for the current room or player status."""

    kind = ErrorKind.STATE
    default_code = "invalid_state"


class NotInGameError(StateError):
    """Connection is not bound to a player of the addressed room."""

    default_code = "not_in_game"


class TransientError(TriviaError):
    """Store timed out or a resource was briefly exhausted. Safe to retry."""

    kind = ErrorKind.TRANSIENT
    default_code = "transient"
