"""Win/loss aggregation derived from games and team memberships."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Literal, Optional, Sequence

from volley.config import DEFAULT_PERFORMANCE, RECENT_GAMES_WINDOW
from volley.models import Game, GamePlayer, Player, Season, TeamNumber


Outcome = Literal["won", "lost", "tied"]


@dataclass(frozen=True)
class PlayerStats:
    """Derived record for one player; ties count as losses."""

    games_played: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: int = 0


@dataclass(frozen=True)
class PlayerGame:
    game: Game
    team: TeamNumber
    outcome: Outcome


@dataclass(frozen=True)
class PlayerStanding:
    player: Player
    stats: PlayerStats


@dataclass(frozen=True)
class SeasonSummary:
    season: Season
    game_count: int
    player_count: int

    @property
    def is_current(self) -> bool:
        return self.season.is_current


def winning_team(game: Game) -> Optional[TeamNumber]:
    """Return the team with the strictly higher score, ``None`` on a tie."""

    if game.team1_score > game.team2_score:
        return 1
    if game.team2_score > game.team1_score:
        return 2
    return None


def player_outcome(game: Game, team: TeamNumber) -> Outcome:
    winner = winning_team(game)
    if winner is None:
        return "tied"
    return "won" if winner == team else "lost"


def _percent(wins: int, games_played: int) -> int:
    if games_played <= 0:
        return 0
    # Half rounds up rather than to even.
    return int(math.floor(100 * wins / games_played + 0.5))


def _index_games(games: Iterable[Game]) -> Dict[int, Game]:
    return {game.id: game for game in games}


def calculate_player_stats(
    player_id: int,
    games: Iterable[Game],
    memberships: Iterable[GamePlayer],
    season_id: Optional[int] = None,
) -> PlayerStats:
    """Aggregate a player's record, optionally within one season.

    Memberships pointing at unknown games are skipped. A game counts as a win
    only when the player's team scored strictly more; everything else,
    ties included, is a loss, so ``games_played == wins + losses`` always.
    """

    by_id = _index_games(games)
    wins = 0
    losses = 0
    for membership in memberships:
        if membership.player_id != player_id:
            continue
        game = by_id.get(membership.game_id)
        if game is None:
            continue
        if season_id is not None and game.season_id != season_id:
            continue
        own = game.team1_score if membership.team == 1 else game.team2_score
        other = game.team2_score if membership.team == 1 else game.team1_score
        if own > other:
            wins += 1
        else:
            losses += 1

    games_played = wins + losses
    return PlayerStats(
        games_played=games_played,
        wins=wins,
        losses=losses,
        win_rate=_percent(wins, games_played),
    )


def player_game_history(
    player_id: int,
    games: Iterable[Game],
    memberships: Iterable[GamePlayer],
    *,
    limit: Optional[int] = None,
) -> List[PlayerGame]:
    """Games the player took part in, newest first."""

    by_id = _index_games(games)
    history: List[PlayerGame] = []
    for membership in memberships:
        if membership.player_id != player_id:
            continue
        game = by_id.get(membership.game_id)
        if game is None:
            continue
        history.append(PlayerGame(game=game, team=membership.team, outcome=player_outcome(game, membership.team)))
    history.sort(key=lambda item: (item.game.date, item.game.id), reverse=True)
    if limit is not None:
        history = history[: max(limit, 0)]
    return history


def recent_performance(
    player_id: int,
    games: Iterable[Game],
    memberships: Iterable[GamePlayer],
    *,
    window: int = RECENT_GAMES_WINDOW,
) -> float:
    """Win fraction over the player's last ``window`` games (0.5 with no history)."""

    recent = player_game_history(player_id, games, memberships, limit=window)
    if not recent:
        return DEFAULT_PERFORMANCE
    wins = sum(1 for item in recent if item.outcome == "won")
    return wins / len(recent)


def season_summaries(
    seasons: Iterable[Season],
    games: Iterable[Game],
    memberships: Iterable[GamePlayer],
) -> List[SeasonSummary]:
    games = list(games)
    memberships = list(memberships)
    summaries: List[SeasonSummary] = []
    for season in seasons:
        game_ids = {game.id for game in games if game.season_id == season.id}
        player_ids = {m.player_id for m in memberships if m.game_id in game_ids}
        summaries.append(
            SeasonSummary(season=season, game_count=len(game_ids), player_count=len(player_ids))
        )
    return summaries


def rank_players(
    players: Sequence[Player],
    games: Iterable[Game],
    memberships: Iterable[GamePlayer],
    *,
    season_id: Optional[int] = None,
    min_games: int = 1,
    limit: Optional[int] = None,
) -> List[PlayerStanding]:
    """Order players by win rate, then games played.

    Players with fewer than ``min_games`` games are left out.
    """

    games = list(games)
    memberships = list(memberships)
    standings = [
        PlayerStanding(player=player, stats=calculate_player_stats(player.id, games, memberships, season_id))
        for player in players
    ]
    standings = [item for item in standings if item.stats.games_played >= min_games]
    standings.sort(key=lambda item: (-item.stats.win_rate, -item.stats.games_played))
    if limit is not None:
        standings = standings[: max(limit, 0)]
    return standings
