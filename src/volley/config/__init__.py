"""Configuration helpers for store access and engine defaults."""

from .settings import (
    BACKENDS,
    DEFAULT_PERFORMANCE,
    RECENT_GAMES_WINDOW,
    Settings,
    TableNames,
    load_settings,
)

__all__ = [
    "BACKENDS",
    "DEFAULT_PERFORMANCE",
    "RECENT_GAMES_WINDOW",
    "Settings",
    "TableNames",
    "load_settings",
]
