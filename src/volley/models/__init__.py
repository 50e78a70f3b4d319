"""League entity models."""

from .entities import Game, GamePlayer, Player, Season, TeamNumber

__all__ = ["Game", "GamePlayer", "Player", "Season", "TeamNumber"]
