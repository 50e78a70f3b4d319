"""REST API over the league manager."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from volley.api.schemas import (
    BalanceRequest,
    BalanceResponse,
    GameCreateRequest,
    GameDetailResponse,
    GameResponse,
    GameUpdateRequest,
    PlayerCreateRequest,
    PlayerGameResponse,
    PlayerResponse,
    PlayerStatsResponse,
    PlayerUpdateRequest,
    RosterPlayer,
    SeasonRequest,
    SeasonResponse,
    SeasonSummaryResponse,
    StandingResponse,
)
from volley.config import Settings, load_settings
from volley.errors import (
    InconsistentStateError,
    LeagueError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from volley.league import GameDraft, LeagueManager
from volley.models import Game, Player, Season
from volley.stats import PlayerStats, winning_team
from volley.store import build_store


logger = logging.getLogger(__name__)

ERROR_STATUS: list[tuple[type[LeagueError], int]] = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (InconsistentStateError, 409),
    (StoreError, 502),
]


def _status_for(exc: LeagueError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


def game_to_response(game: Game) -> GameResponse:
    return GameResponse(
        id=game.id,
        date=game.date,
        team1_score=game.team1_score,
        team2_score=game.team2_score,
        team1_captain=game.team1_captain,
        team2_captain=game.team2_captain,
        season_id=game.season_id,
        winner=winning_team(game),
    )


def stats_to_response(stats: PlayerStats) -> PlayerStatsResponse:
    return PlayerStatsResponse(
        games_played=stats.games_played,
        wins=stats.wins,
        losses=stats.losses,
        win_rate=stats.win_rate,
    )


def season_to_response(season: Season) -> SeasonResponse:
    return SeasonResponse(
        id=season.id,
        name=season.name,
        start_date=season.start_date,
        end_date=season.end_date,
        is_current=season.is_current,
    )


def create_app(manager: LeagueManager | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the API around ``manager`` (or one built from the environment).

    The league is initialized on startup; callers passing their own manager
    may initialize it themselves beforehand.
    """

    if manager is None:
        settings = settings or load_settings()
        manager = LeagueManager(
            build_store(settings),
            tables=settings.tables,
            recent_games=settings.recent_games,
        )
    league = manager

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await league.initialize()
        try:
            yield
        finally:
            await league.close()

    app = FastAPI(title="volley league", lifespan=lifespan)
    app.state.league = league

    @app.exception_handler(LeagueError)
    async def league_error_handler(request: Request, exc: LeagueError):  # type: ignore[override]
        status = _status_for(exc)
        if status >= 500 or status == 409:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    def _player_or_404(player_id: int) -> Player:
        player = league.get_player_by_id(player_id)
        if player is None:
            raise HTTPException(status_code=404, detail="Player not found")
        return player

    def _game_or_404(game_id: int) -> Game:
        game = league.get_game_by_id(game_id)
        if game is None:
            raise HTTPException(status_code=404, detail="Game not found")
        return game

    def _player_response(player: Player, season_id: int | None = None) -> PlayerResponse:
        return PlayerResponse(
            id=player.id,
            name=player.name,
            stats=stats_to_response(league.player_stats(player.id, season_id)),
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    # Players

    @app.get("/players", response_model=List[PlayerResponse])
    async def list_players(q: str | None = None, season_id: int | None = None):
        needle = (q or "").strip().lower()
        players = [p for p in league.players if needle in p.name.lower()]
        players.sort(key=lambda p: p.name.lower())
        return [_player_response(player, season_id) for player in players]

    @app.post("/players", response_model=PlayerResponse, status_code=201)
    async def create_player(payload: PlayerCreateRequest):
        player = await league.add_player(payload.name)
        return _player_response(player)

    @app.get("/players/{player_id}", response_model=PlayerResponse)
    async def get_player(player_id: int, season_id: int | None = None):
        return _player_response(_player_or_404(player_id), season_id)

    @app.put("/players/{player_id}", response_model=PlayerResponse)
    async def update_player(player_id: int, payload: PlayerUpdateRequest):
        updated = await league.update_player(Player(id=player_id, name=payload.name))
        return _player_response(updated)

    @app.delete("/players/{player_id}", status_code=204)
    async def delete_player(player_id: int):
        await league.remove_player(player_id)
        return Response(status_code=204)

    @app.get("/players/{player_id}/games", response_model=List[PlayerGameResponse])
    async def player_games(player_id: int, limit: int | None = Query(default=None, ge=1)):
        _player_or_404(player_id)
        return [
            PlayerGameResponse(game=game_to_response(item.game), team=item.team, outcome=item.outcome)
            for item in league.player_games(player_id, limit=limit)
        ]

    # Seasons

    @app.get("/seasons", response_model=List[SeasonSummaryResponse])
    async def list_seasons():
        return [
            SeasonSummaryResponse(
                **season_to_response(summary.season).model_dump(),
                game_count=summary.game_count,
                player_count=summary.player_count,
            )
            for summary in league.season_summaries()
        ]

    @app.post("/seasons", response_model=SeasonResponse, status_code=201)
    async def create_season(payload: SeasonRequest):
        season = await league.add_season(payload.name, payload.start_date, payload.end_date)
        return season_to_response(season)

    @app.put("/seasons/{season_id}", response_model=SeasonResponse)
    async def update_season(season_id: int, payload: SeasonRequest):
        season = Season(
            id=season_id,
            name=payload.name,
            start_date=payload.start_date,
            end_date=payload.end_date,
        )
        return season_to_response(await league.update_season(season))

    @app.delete("/seasons/{season_id}", status_code=204)
    async def delete_season(season_id: int):
        await league.remove_season(season_id)
        return Response(status_code=204)

    @app.post("/seasons/{season_id}/current", response_model=SeasonResponse)
    async def make_current(season_id: int):
        return season_to_response(await league.set_current_season(season_id))

    @app.get("/seasons/{season_id}/top-performers", response_model=List[StandingResponse])
    async def top_performers(
        season_id: int,
        min_games: int = Query(default=1, ge=0),
        limit: int = Query(default=3, ge=1, le=100),
    ):
        if league.get_season_by_id(season_id) is None:
            raise HTTPException(status_code=404, detail="Season not found")
        return [
            StandingResponse(
                player_id=item.player.id,
                name=item.player.name,
                games_played=item.stats.games_played,
                wins=item.stats.wins,
                losses=item.stats.losses,
                win_rate=item.stats.win_rate,
            )
            for item in league.top_performers(season_id, min_games=min_games, limit=limit)
        ]

    # Games

    @app.get("/games", response_model=List[GameResponse])
    async def list_games(q: str | None = None, season_id: int | None = None):
        return [game_to_response(game) for game in league.search_games(q, season_id=season_id)]

    @app.post("/games", response_model=GameResponse, status_code=201)
    async def create_game(payload: GameCreateRequest):
        draft = GameDraft(
            team1_score=payload.team1_score,
            team2_score=payload.team2_score,
            team1_captain=payload.team1_captain,
            team2_captain=payload.team2_captain,
        )
        game = await league.add_game(draft, payload.team1_player_ids, payload.team2_player_ids)
        return game_to_response(game)

    @app.get("/games/{game_id}", response_model=GameDetailResponse)
    async def get_game(game_id: int):
        game = _game_or_404(game_id)
        team1, team2 = league.game_roster(game_id)
        return GameDetailResponse(
            **game_to_response(game).model_dump(),
            team1=[RosterPlayer(id=p.id, name=p.name) for p in team1],
            team2=[RosterPlayer(id=p.id, name=p.name) for p in team2],
        )

    @app.put("/games/{game_id}", response_model=GameResponse)
    async def update_game(game_id: int, payload: GameUpdateRequest):
        existing = _game_or_404(game_id)
        game = existing.model_copy(
            update={
                "team1_score": payload.team1_score,
                "team2_score": payload.team2_score,
                "team1_captain": payload.team1_captain,
                "team2_captain": payload.team2_captain,
                "season_id": payload.season_id if payload.season_id is not None else existing.season_id,
            }
        )
        return game_to_response(await league.update_game(game))

    @app.delete("/games/{game_id}", status_code=204)
    async def delete_game(game_id: int):
        await league.remove_game(game_id)
        return Response(status_code=204)

    # Teams

    @app.post("/teams/balance", response_model=BalanceResponse)
    async def balance(payload: BalanceRequest):
        teams = league.suggest_teams(payload.player_ids)
        return BalanceResponse(
            team1=list(teams.team1),
            team2=list(teams.team2),
            team1_strength=teams.team1_strength,
            team2_strength=teams.team2_strength,
            team1_captain=teams.team1_captain,
            team2_captain=teams.team2_captain,
        )

    return app
