"""Pure statistics over games and team memberships."""

from .records import (
    Outcome,
    PlayerGame,
    PlayerStanding,
    PlayerStats,
    SeasonSummary,
    calculate_player_stats,
    player_game_history,
    player_outcome,
    rank_players,
    recent_performance,
    season_summaries,
    winning_team,
)

__all__ = [
    "Outcome",
    "PlayerGame",
    "PlayerStanding",
    "PlayerStats",
    "SeasonSummary",
    "calculate_player_stats",
    "player_game_history",
    "player_outcome",
    "rank_players",
    "recent_performance",
    "season_summaries",
    "winning_team",
]
