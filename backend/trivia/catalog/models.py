"""Question (round) models for the trivia catalog."""

from enum import StrEnum
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RoundKind(StrEnum):
    NORMAL = "normal"  # 4 options, money on at most 3
    REDUCED = "reduced"  # 3 options, money on at most 2
    FINAL = "final"  # 2 options, all-or-nothing on 1


class QuestionOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, max_length=1, pattern=r"^[A-Z]$")
    text: str = Field(min_length=1)
    is_correct: bool = False


class Question(BaseModel):
    """One round: prompt, lettered options and the wagering-breadth limit.

    ``max_options_to_bet`` defaults to one less than the option count, so
    every round leaves at least one option empty.
    """

    model_config = ConfigDict(frozen=True)

    text: str = Field(min_length=1)
    kind: RoundKind = RoundKind.NORMAL
    options: tuple[QuestionOption, ...] = Field(min_length=2)
    max_options_to_bet: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _validate_options(self) -> Self:
        letters = [o.id for o in self.options]
        if len(set(letters)) != len(letters):
            raise ValueError(f"Duplicate option letters: {letters}")
        correct = [o.id for o in self.options if o.is_correct]
        if len(correct) != 1:
            raise ValueError(f"Expected exactly one correct option, got {len(correct)}")
        if self.max_options_to_bet is not None and self.max_options_to_bet >= len(self.options):
            raise ValueError(
                f"max_options_to_bet must be below the option count ({len(self.options)}), "
                f"got {self.max_options_to_bet}",
            )
        return self

    @property
    def letters(self) -> frozenset[str]:
        return frozenset(o.id for o in self.options)

    @property
    def correct_option(self) -> str:
        return next(o.id for o in self.options if o.is_correct)

    @property
    def breadth_limit(self) -> int:
        if self.max_options_to_bet is None:
            return len(self.options) - 1
        return self.max_options_to_bet
