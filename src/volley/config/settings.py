"""Runtime settings resolved from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple


logger = logging.getLogger(__name__)

_BACKEND_ENV = "VOLLEY_STORE_BACKEND"
_DB_PATH_ENV = "VOLLEY_DB_PATH"
_STORE_URL_ENV = "VOLLEY_STORE_URL"
_STORE_KEY_ENV = "VOLLEY_STORE_KEY"
_STORE_TIMEOUT_ENV = "VOLLEY_STORE_TIMEOUT"
_RECENT_GAMES_ENV = "VOLLEY_RECENT_GAMES"

BACKENDS: Tuple[str, ...] = ("memory", "sqlite", "rest")

DEFAULT_BACKEND = "sqlite"
DEFAULT_DB_PATH = Path.home() / ".volley" / "league.sqlite"
DEFAULT_STORE_TIMEOUT = 10.0
RECENT_GAMES_WINDOW = 10
DEFAULT_PERFORMANCE = 0.5


@dataclass(frozen=True)
class TableNames:
    player: str = "Player"
    game: str = "Game"
    season: str = "Season"
    game_player: str = "Game_Player"

    @property
    def keyed(self) -> Tuple[str, ...]:
        """Tables whose rows carry a store-assigned ``id``."""

        return (self.player, self.game, self.season)


@dataclass(frozen=True)
class Settings:
    backend: str = DEFAULT_BACKEND
    db_path: str = str(DEFAULT_DB_PATH)
    store_url: Optional[str] = None
    store_key: Optional[str] = None
    store_timeout: float = DEFAULT_STORE_TIMEOUT
    recent_games: int = RECENT_GAMES_WINDOW
    tables: TableNames = field(default_factory=TableNames)


def _env_float(name: str, default: float, *, clamp_min: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid float for %s: %s; using default %.2f", name, raw, default)
        return default
    if clamp_min is not None:
        value = max(clamp_min, value)
    return value


def _env_int(name: str, default: int, *, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid int for %s: %s; using default %d", name, raw, default)
        return default
    if min_value is not None:
        value = max(min_value, value)
    return value


def _env_backend() -> str:
    raw = os.getenv(_BACKEND_ENV)
    if raw is None:
        return DEFAULT_BACKEND
    backend = raw.strip().lower()
    if backend not in BACKENDS:
        logger.warning("Unknown store backend %s; using default %s", raw, DEFAULT_BACKEND)
        return DEFAULT_BACKEND
    return backend


def load_settings() -> Settings:
    """Build settings from ``VOLLEY_*`` environment variables."""

    return Settings(
        backend=_env_backend(),
        db_path=os.getenv(_DB_PATH_ENV) or str(DEFAULT_DB_PATH),
        store_url=os.getenv(_STORE_URL_ENV) or None,
        store_key=os.getenv(_STORE_KEY_ENV) or None,
        store_timeout=_env_float(_STORE_TIMEOUT_ENV, DEFAULT_STORE_TIMEOUT, clamp_min=0.1),
        recent_games=_env_int(_RECENT_GAMES_ENV, RECENT_GAMES_WINDOW, min_value=1),
    )
