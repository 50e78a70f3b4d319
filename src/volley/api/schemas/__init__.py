"""Pydantic models for API I/O."""

from .game import (
    BalanceRequest,
    BalanceResponse,
    GameCreateRequest,
    GameDetailResponse,
    GameResponse,
    GameUpdateRequest,
    RosterPlayer,
)
from .player import (
    PlayerCreateRequest,
    PlayerGameResponse,
    PlayerResponse,
    PlayerStatsResponse,
    PlayerUpdateRequest,
    StandingResponse,
)
from .season import SeasonRequest, SeasonResponse, SeasonSummaryResponse

__all__ = [
    "BalanceRequest",
    "BalanceResponse",
    "GameCreateRequest",
    "GameDetailResponse",
    "GameResponse",
    "GameUpdateRequest",
    "PlayerCreateRequest",
    "PlayerGameResponse",
    "PlayerResponse",
    "PlayerStatsResponse",
    "PlayerUpdateRequest",
    "RosterPlayer",
    "SeasonRequest",
    "SeasonResponse",
    "SeasonSummaryResponse",
    "StandingResponse",
]
