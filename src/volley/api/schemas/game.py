from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class GameResponse(BaseModel):
    id: int
    date: datetime
    team1_score: int
    team2_score: int
    team1_captain: int | None
    team2_captain: int | None
    season_id: int
    winner: int | None = None


class RosterPlayer(BaseModel):
    id: int
    name: str


class GameDetailResponse(GameResponse):
    team1: List[RosterPlayer] = Field(default_factory=list)
    team2: List[RosterPlayer] = Field(default_factory=list)


class GameCreateRequest(BaseModel):
    team1_score: int = Field(default=0, ge=0)
    team2_score: int = Field(default=0, ge=0)
    team1_captain: int | None = None
    team2_captain: int | None = None
    team1_player_ids: List[int]
    team2_player_ids: List[int]


class GameUpdateRequest(BaseModel):
    team1_score: int = Field(..., ge=0)
    team2_score: int = Field(..., ge=0)
    team1_captain: int | None = None
    team2_captain: int | None = None
    season_id: int | None = None


class BalanceRequest(BaseModel):
    player_ids: List[int] = Field(..., min_length=2)


class BalanceResponse(BaseModel):
    team1: List[int]
    team2: List[int]
    team1_strength: float
    team2_strength: float
    team1_captain: int | None
    team2_captain: int | None
