"""Wagering rules: distribution validation and round settlement.

Pure functions with no I/O. All bankroll arithmetic happens here, on the
server; clients only ever see the results.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from trivia.logic.exceptions import InvalidBetError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from trivia.catalog.models import Question


@dataclass(frozen=True)
class Settlement:
    money: int
    eliminated: bool


def options_used(distribution: Mapping[str, int]) -> int:
    """Count options holding a strictly positive amount. Zero entries do not count."""
    return sum(1 for amount in distribution.values() if amount > 0)


def validate_distribution(distribution: Mapping[str, int], question: Question, bankroll: int) -> dict[str, int]:
    """Check a (possibly partial) bet against the round and the player's bankroll.

    Returns a plain copy of the distribution, unchanged. Raises
    InvalidBetError on unknown letters, non-integer or negative amounts,
    a total above the bankroll, or too many options used.
    """
    unknown = sorted(set(distribution) - question.letters)
    if unknown:
        raise InvalidBetError(f"Unknown options: {', '.join(unknown)}")

    for letter, amount in distribution.items():
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidBetError(f"Amount on {letter} must be an integer")
        if amount < 0:
            raise InvalidBetError(f"Amount on {letter} must not be negative")

    total = sum(distribution.values())
    if total > bankroll:
        raise InvalidBetError(f"Bet total {total} exceeds bankroll {bankroll}")

    used = options_used(distribution)
    if used > question.breadth_limit:
        raise InvalidBetError(f"Money can be placed on at most {question.breadth_limit} options, got {used}")

    return dict(distribution)


def validate_full_distribution(distribution: Mapping[str, int], question: Question, bankroll: int) -> dict[str, int]:
    """Like validate_distribution, but the whole bankroll must be placed."""
    result = validate_distribution(distribution, question, bankroll)
    total = sum(result.values())
    if total != bankroll:
        raise InvalidBetError(f"All money must be placed before confirming ({total} of {bankroll})")
    return result


def settle(distribution: Mapping[str, int], correct_option: str) -> Settlement:
    """Settle one player's bet against the correct option.

    Only the pile on the correct option survives; money on every other
    option is lost. Betting nothing at all forfeits everything.
    """
    if sum(distribution.values()) == 0:
        return Settlement(money=0, eliminated=True)
    kept = distribution.get(correct_option, 0)
    return Settlement(money=kept, eliminated=kept == 0)
