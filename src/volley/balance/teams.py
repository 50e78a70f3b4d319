"""Greedy two-team split by recent performance."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from volley.config import RECENT_GAMES_WINDOW
from volley.models import Game, GamePlayer
from volley.stats import recent_performance


PerformanceFn = Callable[[int], float]


@dataclass(frozen=True)
class BalancedTeams:
    team1: Tuple[int, ...]
    team2: Tuple[int, ...]
    team1_strength: float
    team2_strength: float
    team1_captain: Optional[int]
    team2_captain: Optional[int]
    scores: Tuple[Tuple[int, float], ...] = ()

    def move(self, player_id: int) -> "BalancedTeams":
        """Move a player to the other team.

        Strengths are recomputed from the scores used at balancing time; a
        captain who leaves their team is replaced by the first remaining
        member.
        """

        score = dict(self.scores).get(player_id, 0.0)
        if player_id in self.team1:
            team1 = tuple(pid for pid in self.team1 if pid != player_id)
            team2 = self.team2 + (player_id,)
            delta = -score
        elif player_id in self.team2:
            team1 = self.team1 + (player_id,)
            team2 = tuple(pid for pid in self.team2 if pid != player_id)
            delta = score
        else:
            raise KeyError(f"Player {player_id} is not on either team")

        team1_captain = self.team1_captain
        if team1_captain not in team1:
            team1_captain = team1[0] if team1 else None
        team2_captain = self.team2_captain
        if team2_captain not in team2:
            team2_captain = team2[0] if team2 else None
        return replace(
            self,
            team1=team1,
            team2=team2,
            team1_strength=self.team1_strength + delta,
            team2_strength=self.team2_strength - delta,
            team1_captain=team1_captain,
            team2_captain=team2_captain,
        )


def balance_teams(selected_player_ids: Iterable[int], performance_of: PerformanceFn) -> BalancedTeams:
    """Split players into two teams of similar aggregate performance.

    Players are sorted strongest first (equal scores keep their input order)
    and each goes to the team whose running strength is lower or equal, with
    ties going to team 1. The first player placed on a team is proposed as
    its captain.
    """

    ordered: List[int] = list(dict.fromkeys(selected_player_ids))
    scores: Dict[int, float] = {pid: float(performance_of(pid)) for pid in ordered}
    ordered.sort(key=lambda pid: -scores[pid])

    team1: List[int] = []
    team2: List[int] = []
    team1_strength = 0.0
    team2_strength = 0.0
    for pid in ordered:
        if team1_strength <= team2_strength:
            team1.append(pid)
            team1_strength += scores[pid]
        else:
            team2.append(pid)
            team2_strength += scores[pid]

    return BalancedTeams(
        team1=tuple(team1),
        team2=tuple(team2),
        team1_strength=team1_strength,
        team2_strength=team2_strength,
        team1_captain=team1[0] if team1 else None,
        team2_captain=team2[0] if team2 else None,
        scores=tuple((pid, scores[pid]) for pid in ordered),
    )


def performance_lookup(
    games: Iterable[Game],
    memberships: Iterable[GamePlayer],
    *,
    window: int = RECENT_GAMES_WINDOW,
) -> PerformanceFn:
    """Build a ``performance_of`` callable backed by recent win rates."""

    games = list(games)
    memberships = list(memberships)
    cache: Dict[int, float] = {}

    def performance_of(player_id: int) -> float:
        if player_id not in cache:
            cache[player_id] = recent_performance(player_id, games, memberships, window=window)
        return cache[player_id]

    return performance_of
