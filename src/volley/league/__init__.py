"""League state management."""

from .manager import GameDraft, LeagueManager
from .seasons import default_season_window

__all__ = ["GameDraft", "LeagueManager", "default_season_window"]
