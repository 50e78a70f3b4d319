"""Canonical league records shared by the store, engines and API layers."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.config import ConfigDict


TeamNumber = Literal[1, 2]


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_row(self, *, exclude: set[str] | None = None) -> Dict[str, Any]:
        """Serialize to a store row using column names."""

        return self.model_dump(mode="json", by_alias=True, exclude=exclude)


class Player(_Record):
    """League member. Statistics are derived, never stored."""

    id: int
    name: str = Field(..., min_length=1)


class Season(_Record):
    id: int
    name: str = Field(..., min_length=1)
    start_date: datetime
    end_date: datetime
    is_current: bool = Field(default=False, alias="is_current_season")

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return _aware(value)


class Game(_Record):
    """Single played game; ``date`` is the creation time and never changes."""

    id: int
    date: datetime
    team1_score: int = Field(..., ge=0)
    team2_score: int = Field(..., ge=0)
    team1_captain: Optional[int] = None
    team2_captain: Optional[int] = None
    season_id: int

    @field_validator("date")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return _aware(value)


class GamePlayer(_Record):
    """Team membership of one player in one game."""

    game_id: int
    player_id: int
    team: TeamNumber

    @field_validator("team", mode="before")
    @classmethod
    def _coerce_team(cls, value: Any) -> Any:
        # Some stores hand the team tag back as text.
        if isinstance(value, str) and value.strip().isdigit():
            return int(value)
        return value
