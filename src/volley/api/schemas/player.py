from __future__ import annotations

from pydantic import BaseModel, Field

from .game import GameResponse


class PlayerStatsResponse(BaseModel):
    games_played: int
    wins: int
    losses: int
    win_rate: int


class PlayerResponse(BaseModel):
    id: int
    name: str
    stats: PlayerStatsResponse | None = None


class PlayerCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)


class PlayerUpdateRequest(BaseModel):
    name: str = Field(..., min_length=1)


class PlayerGameResponse(BaseModel):
    game: GameResponse
    team: int
    outcome: str


class StandingResponse(BaseModel):
    player_id: int
    name: str
    games_played: int
    wins: int
    losses: int
    win_rate: int
