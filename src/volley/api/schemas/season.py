from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class SeasonRequest(BaseModel):
    name: str = Field(..., min_length=1)
    start_date: datetime
    end_date: datetime


class SeasonResponse(BaseModel):
    id: int
    name: str
    start_date: datetime
    end_date: datetime
    is_current: bool


class SeasonSummaryResponse(SeasonResponse):
    game_count: int
    player_count: int
