"""Final leaderboard ordering."""

from __future__ import annotations

from typing import TYPE_CHECKING

from shared.dal.models import PlayerStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

    from shared.dal.models import PlayerRecord

_STATUS_RANK = {
    PlayerStatus.WINNER: 0,
    PlayerStatus.ACTIVE: 1,
    PlayerStatus.ELIMINATED: 2,
}


def rank_players(players: Iterable[PlayerRecord]) -> list[PlayerRecord]:
    """Sort by bankroll descending, then winners before survivors before eliminated, then join order."""
    return sorted(players, key=lambda p: (-p.money, _STATUS_RANK[p.status], p.player_id))
