"""In-memory league state kept consistent with a tabular store."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from volley.balance import BalancedTeams, balance_teams, performance_lookup
from volley.config import RECENT_GAMES_WINDOW, TableNames
from volley.errors import InconsistentStateError, NotFoundError, StoreError, ValidationError
from volley.models import Game, GamePlayer, Player, Season
from volley.stats import (
    PlayerGame,
    PlayerStanding,
    PlayerStats,
    SeasonSummary,
    calculate_player_stats,
    player_game_history,
    rank_players,
    season_summaries,
)
from volley.store import RemoteStore, Row

from .seasons import default_season_window


logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R", bound=BaseModel)
Clock = Callable[[], datetime]


class GameDraft(BaseModel):
    """Score sheet submitted when recording a new game."""

    team1_score: int = Field(default=0, ge=0)
    team2_score: int = Field(default=0, ge=0)
    team1_captain: Optional[int] = None
    team2_captain: Optional[int] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class _Steps:
    """Ordered, independently failing store calls of one operation.

    The first failing call stops the operation. If nothing had been written
    yet the store error propagates as is; otherwise it is reported as an
    :class:`InconsistentStateError` naming the failed and completed steps.
    """

    def __init__(self, operation: str):
        self.operation = operation
        self.completed: List[str] = []

    async def run(self, name: str, call: Awaitable[T], *, mutating: bool = True) -> T:
        try:
            result = await call
        except StoreError as exc:
            logger.error("%s: step %r failed: %s", self.operation, name, exc)
            if self.completed:
                raise InconsistentStateError(self.operation, name, self.completed) from exc
            raise
        if mutating:
            self.completed.append(name)
        return result

    def broken(self, name: str, cause: Exception) -> InconsistentStateError:
        logger.error("%s: step %r failed: %s", self.operation, name, cause)
        error = InconsistentStateError(self.operation, name, self.completed)
        error.__cause__ = cause
        return error

    def parse(self, model: type[R], row: Row, *, table: str, action: str) -> R:
        """Validate a store row; a malformed row is a store failure."""

        try:
            return model.model_validate(row)
        except PydanticValidationError as exc:
            error = StoreError(
                f"{action} on {table} returned an invalid row: {exc}", table=table, action=action
            )
            if self.completed:
                inconsistent = self.broken(f"read back {table} row", error)
                raise inconsistent from error
            logger.error("%s: %s", self.operation, error)
            raise error from exc


class LeagueManager:
    """Owns the player, game, season and membership caches.

    Every mutating call writes to the store first and patches the cache only
    once the store confirmed the write. Reads never touch the store.
    """

    def __init__(
        self,
        store: RemoteStore,
        *,
        tables: TableNames | None = None,
        clock: Clock | None = None,
        recent_games: int = RECENT_GAMES_WINDOW,
    ):
        self._store = store
        self._tables = tables or TableNames()
        self._clock = clock or _utcnow
        self._recent_games = recent_games
        self._players: Dict[int, Player] = {}
        self._games: Dict[int, Game] = {}
        self._seasons: Dict[int, Season] = {}
        self._memberships: List[GamePlayer] = []
        self._stats_memo: Dict[Tuple[int, Optional[int]], PlayerStats] = {}
        self._initialized = False

    # Snapshot

    @property
    def store(self) -> RemoteStore:
        return self._store

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def players(self) -> Tuple[Player, ...]:
        return tuple(self._players.values())

    @property
    def games(self) -> Tuple[Game, ...]:
        return tuple(self._games.values())

    @property
    def seasons(self) -> Tuple[Season, ...]:
        return tuple(self._seasons.values())

    @property
    def game_players(self) -> Tuple[GamePlayer, ...]:
        return tuple(self._memberships)

    @property
    def current_season(self) -> Optional[Season]:
        for season in self._seasons.values():
            if season.is_current:
                return season
        return None

    @property
    def current_season_games(self) -> Tuple[Game, ...]:
        current = self.current_season
        if current is None:
            return ()
        return tuple(self._newest_first(g for g in self._games.values() if g.season_id == current.id))

    def get_player_by_id(self, player_id: int) -> Optional[Player]:
        return self._players.get(player_id)

    def get_game_by_id(self, game_id: int) -> Optional[Game]:
        return self._games.get(game_id)

    def get_season_by_id(self, season_id: int) -> Optional[Season]:
        return self._seasons.get(season_id)

    # Lifecycle

    async def initialize(self, *, force: bool = False) -> None:
        """Load every table and make sure exactly one season is current.

        Creates the default month-long season when the league has none.
        Safe to call repeatedly; only the first call does work unless
        ``force`` is set.
        """

        if self._initialized and not force:
            return
        await self.refresh()
        steps = _Steps("initialize")
        if not self._seasons:
            await self._bootstrap_season(steps)
        else:
            flagged = [season for season in self._seasons.values() if season.is_current]
            if len(flagged) != 1:
                target = flagged[0] if flagged else next(iter(self._seasons.values()))
                logger.warning(
                    "Found %d current seasons; making season %s the only current one",
                    len(flagged),
                    target.id,
                )
                await self._mark_current(target.id, steps)
        self._initialized = True
        logger.info(
            "League loaded: %d players, %d games, %d seasons",
            len(self._players),
            len(self._games),
            len(self._seasons),
        )

    async def refresh(self) -> None:
        """Re-read all tables; the cache is replaced only if every read succeeds."""

        steps = _Steps("refresh")
        t = self._tables
        player_rows = await steps.run("select players", self._store.select(t.player), mutating=False)
        game_rows = await steps.run("select games", self._store.select(t.game), mutating=False)
        season_rows = await steps.run("select seasons", self._store.select(t.season), mutating=False)
        membership_rows = await steps.run(
            "select memberships", self._store.select(t.game_player), mutating=False
        )
        players = [steps.parse(Player, row, table=t.player, action="select") for row in player_rows]
        games = [steps.parse(Game, row, table=t.game, action="select") for row in game_rows]
        seasons = [steps.parse(Season, row, table=t.season, action="select") for row in season_rows]
        memberships = [
            steps.parse(GamePlayer, row, table=t.game_player, action="select") for row in membership_rows
        ]
        self._players = {player.id: player for player in players}
        self._games = {game.id: game for game in games}
        self._seasons = {season.id: season for season in seasons}
        self._memberships = memberships
        self._invalidate_stats()

    async def close(self) -> None:
        await self._store.close()

    # Players

    async def add_player(self, name: str) -> Player:
        clean = self._clean_name(name, "Player")
        steps = _Steps("add_player")
        rows = await steps.run("insert player", self._store.insert(self._tables.player, [{"name": clean}]))
        player = steps.parse(
            Player, self._first(rows, self._tables.player, "insert"), table=self._tables.player, action="insert"
        )
        self._players[player.id] = player
        logger.info("Added player %s (%s)", player.id, player.name)
        return player

    async def update_player(self, player: Player) -> Player:
        clean = self._clean_name(player.name, "Player")
        player = player.model_copy(update={"name": clean})
        steps = _Steps("update_player")
        rows = await steps.run(
            "update player",
            self._store.update(self._tables.player, player.to_row(exclude={"id"}), {"id": player.id}),
        )
        if not rows:
            raise NotFoundError("Player", player.id)
        updated = steps.parse(Player, rows[0], table=self._tables.player, action="update")
        self._players[updated.id] = updated
        logger.info("Updated player %s", updated.id)
        return updated

    async def remove_player(self, player_id: int) -> None:
        """Delete a player after clearing captaincies and memberships."""

        t = self._tables
        steps = _Steps("remove_player")
        await self._require(steps, t.player, "Player", player_id)

        await steps.run(
            "clear team1 captain",
            self._store.update(t.game, {"team1_captain": None}, {"team1_captain": player_id}),
        )
        self._patch_games(lambda g: g.team1_captain == player_id, {"team1_captain": None})

        await steps.run(
            "clear team2 captain",
            self._store.update(t.game, {"team2_captain": None}, {"team2_captain": player_id}),
        )
        self._patch_games(lambda g: g.team2_captain == player_id, {"team2_captain": None})

        await steps.run("delete memberships", self._store.delete(t.game_player, {"player_id": player_id}))
        self._memberships = [m for m in self._memberships if m.player_id != player_id]
        self._invalidate_stats()

        await steps.run("delete player", self._store.delete(t.player, {"id": player_id}))
        self._players.pop(player_id, None)
        logger.info("Removed player %s", player_id)

    # Seasons

    async def add_season(self, name: str, start_date: datetime, end_date: datetime) -> Season:
        """Create a season and make it the current one."""

        clean = self._clean_name(name, "Season")
        self._check_window(start_date, end_date)
        steps = _Steps("add_season")
        row = {
            "name": clean,
            "start_date": _iso(start_date),
            "end_date": _iso(end_date),
            "is_current_season": False,
        }
        rows = await steps.run("insert season", self._store.insert(self._tables.season, [row]))
        season = steps.parse(
            Season, self._first(rows, self._tables.season, "insert"), table=self._tables.season, action="insert"
        )
        self._seasons[season.id] = season
        logger.info("Added season %s (%s)", season.id, season.name)
        return await self._mark_current(season.id, steps)

    async def update_season(self, season: Season) -> Season:
        """Replace a season's name and dates; the current flag is left alone."""

        clean = self._clean_name(season.name, "Season")
        self._check_window(season.start_date, season.end_date)
        season = season.model_copy(update={"name": clean})
        steps = _Steps("update_season")
        rows = await steps.run(
            "update season",
            self._store.update(
                self._tables.season,
                season.to_row(exclude={"id", "is_current"}),
                {"id": season.id},
            ),
        )
        if not rows:
            raise NotFoundError("Season", season.id)
        updated = steps.parse(Season, rows[0], table=self._tables.season, action="update")
        self._seasons[updated.id] = updated
        logger.info("Updated season %s", updated.id)
        return updated

    async def remove_season(self, season_id: int) -> None:
        """Delete a season together with all of its games.

        When the removed season was current, the first remaining season takes
        over, or a fresh default season is created if none are left.
        """

        t = self._tables
        steps = _Steps("remove_season")
        row = await self._require(steps, t.season, "Season", season_id)
        was_current = bool(row.get("is_current_season")) or (
            season_id in self._seasons and self._seasons[season_id].is_current
        )
        game_rows = await steps.run(
            "select season games", self._store.select(t.game, {"season_id": season_id}), mutating=False
        )
        game_ids = list(dict.fromkeys(
            [int(r["id"]) for r in game_rows]
            + [g.id for g in self._games.values() if g.season_id == season_id]
        ))
        for game_id in game_ids:
            await self._delete_game_rows(steps, game_id)

        await steps.run("delete season", self._store.delete(t.season, {"id": season_id}))
        self._seasons.pop(season_id, None)
        logger.info("Removed season %s with %d games", season_id, len(game_ids))

        if was_current:
            if self._seasons:
                await self._mark_current(next(iter(self._seasons)), steps)
            else:
                await self._bootstrap_season(steps)

    async def set_current_season(self, season: Union[Season, int]) -> Season:
        season_id = season.id if isinstance(season, Season) else int(season)
        steps = _Steps("set_current_season")
        await self._require(steps, self._tables.season, "Season", season_id)
        return await self._mark_current(season_id, steps)

    # Games

    async def add_game(
        self,
        data: Union[GameDraft, Mapping[str, Any]],
        team1_player_ids: Iterable[int],
        team2_player_ids: Iterable[int],
    ) -> Game:
        """Record a game in the current season along with both rosters.

        A missing captain defaults to the first player listed for that team.
        """

        draft = self._draft(data)
        team1 = list(dict.fromkeys(team1_player_ids))
        team2 = list(dict.fromkeys(team2_player_ids))
        if not team1 or not team2:
            raise ValidationError("Both teams need at least one player")
        overlap = set(team1) & set(team2)
        if overlap:
            raise ValidationError(f"Players listed on both teams: {sorted(overlap)}")
        unknown = [pid for pid in team1 + team2 if pid not in self._players]
        if unknown:
            raise ValidationError(f"Unknown players: {unknown}")
        team1_captain = draft.team1_captain if draft.team1_captain is not None else team1[0]
        team2_captain = draft.team2_captain if draft.team2_captain is not None else team2[0]
        if team1_captain not in team1:
            raise ValidationError("Team 1 captain must play on team 1")
        if team2_captain not in team2:
            raise ValidationError("Team 2 captain must play on team 2")
        current = self.current_season
        if current is None:
            raise ValidationError("No current season; initialize the league first")

        t = self._tables
        steps = _Steps("add_game")
        row = {
            "date": _iso(self._clock()),
            "team1_score": draft.team1_score,
            "team2_score": draft.team2_score,
            "team1_captain": team1_captain,
            "team2_captain": team2_captain,
            "season_id": current.id,
        }
        rows = await steps.run("insert game", self._store.insert(t.game, [row]))
        game = steps.parse(Game, self._first(rows, t.game, "insert"), table=t.game, action="insert")
        self._games[game.id] = game
        self._invalidate_stats()

        memberships = [GamePlayer(game_id=game.id, player_id=pid, team=1) for pid in team1]
        memberships += [GamePlayer(game_id=game.id, player_id=pid, team=2) for pid in team2]
        await steps.run(
            "insert memberships",
            self._store.insert(t.game_player, [m.to_row() for m in memberships]),
        )
        self._memberships.extend(memberships)
        self._invalidate_stats()
        logger.info(
            "Added game %s (%d-%d) in season %s with %d players",
            game.id,
            game.team1_score,
            game.team2_score,
            game.season_id,
            len(memberships),
        )
        return game

    async def update_game(self, game: Game) -> Game:
        """Replace scores, captains and season of a game.

        The creation date and the rosters are never changed.
        """

        if game.season_id not in self._seasons:
            raise ValidationError(f"Unknown season {game.season_id}")
        roster = [m for m in self._memberships if m.game_id == game.id]
        if roster:
            for team, captain in ((1, game.team1_captain), (2, game.team2_captain)):
                members = {m.player_id for m in roster if m.team == team}
                if captain is not None and captain not in members:
                    raise ValidationError(f"Team {team} captain must play on team {team}")
        steps = _Steps("update_game")
        rows = await steps.run(
            "update game",
            self._store.update(self._tables.game, game.to_row(exclude={"id", "date"}), {"id": game.id}),
        )
        if not rows:
            raise NotFoundError("Game", game.id)
        updated = steps.parse(Game, rows[0], table=self._tables.game, action="update")
        self._games[updated.id] = updated
        self._invalidate_stats()
        logger.info("Updated game %s", updated.id)
        return updated

    async def remove_game(self, game_id: int) -> None:
        steps = _Steps("remove_game")
        await self._require(steps, self._tables.game, "Game", game_id)
        await self._delete_game_rows(steps, game_id)
        logger.info("Removed game %s", game_id)

    # Derived views

    def player_stats(self, player_id: int, season_id: Optional[int] = None) -> PlayerStats:
        key = (player_id, season_id)
        if key not in self._stats_memo:
            self._stats_memo[key] = calculate_player_stats(
                player_id, self._games.values(), self._memberships, season_id
            )
        return self._stats_memo[key]

    def game_roster(self, game_id: int) -> Tuple[List[Player], List[Player]]:
        team1: List[Player] = []
        team2: List[Player] = []
        for membership in self._memberships:
            if membership.game_id != game_id:
                continue
            player = self._players.get(membership.player_id)
            if player is None:
                continue
            (team1 if membership.team == 1 else team2).append(player)
        return team1, team2

    def player_games(self, player_id: int, *, limit: Optional[int] = None) -> List[PlayerGame]:
        return player_game_history(player_id, self._games.values(), self._memberships, limit=limit)

    def season_summaries(self) -> List[SeasonSummary]:
        return season_summaries(self._seasons.values(), self._games.values(), self._memberships)

    def top_performers(
        self,
        season_id: Optional[int] = None,
        *,
        min_games: int = 1,
        limit: Optional[int] = 3,
    ) -> List[PlayerStanding]:
        if season_id is None:
            current = self.current_season
            if current is None:
                return []
            season_id = current.id
        return rank_players(
            list(self._players.values()),
            self._games.values(),
            self._memberships,
            season_id=season_id,
            min_games=min_games,
            limit=limit,
        )

    def search_games(self, term: Optional[str] = None, *, season_id: Optional[int] = None) -> List[Game]:
        """Games newest first, filtered by season and by player name or score."""

        games = [g for g in self._games.values() if season_id is None or g.season_id == season_id]
        needle = (term or "").strip().lower()
        if needle:
            names: Dict[int, List[str]] = {}
            for membership in self._memberships:
                player = self._players.get(membership.player_id)
                if player is not None:
                    names.setdefault(membership.game_id, []).append(player.name.lower())
            games = [
                g
                for g in games
                if needle in " ".join(names.get(g.id, []))
                or needle in str(g.team1_score)
                or needle in str(g.team2_score)
            ]
        return self._newest_first(games)

    def suggest_teams(self, player_ids: Iterable[int]) -> BalancedTeams:
        """Auto-balance the selected players using their recent results."""

        selected = list(dict.fromkeys(player_ids))
        unknown = [pid for pid in selected if pid not in self._players]
        if unknown:
            raise ValidationError(f"Unknown players: {unknown}")
        if len(selected) < 2:
            raise ValidationError("Select at least two players to balance")
        performance_of = performance_lookup(
            self._games.values(), self._memberships, window=self._recent_games
        )
        return balance_teams(selected, performance_of)

    # Internals

    async def _require(self, steps: _Steps, table: str, entity: str, identifier: int) -> Row:
        rows = await steps.run(
            f"look up {entity.lower()} {identifier}",
            self._store.select(table, {"id": identifier}),
            mutating=False,
        )
        if not rows:
            raise NotFoundError(entity, identifier)
        return rows[0]

    async def _mark_current(self, season_id: int, steps: _Steps) -> Season:
        """Clear the current flag everywhere, then set it on ``season_id``."""

        t = self._tables
        await steps.run(
            "clear current season",
            self._store.update(t.season, {"is_current_season": False}, {"is_current_season": True}),
        )
        for sid, season in list(self._seasons.items()):
            if season.is_current:
                self._seasons[sid] = season.model_copy(update={"is_current": False})

        step = f"mark season {season_id} current"
        rows = await steps.run(step, self._store.update(t.season, {"is_current_season": True}, {"id": season_id}))
        if not rows:
            raise steps.broken(step, NotFoundError("Season", season_id))
        season = steps.parse(Season, rows[0], table=t.season, action="update")
        self._seasons[season.id] = season
        logger.info("Season %s (%s) is now current", season.id, season.name)
        return season

    async def _bootstrap_season(self, steps: _Steps) -> Season:
        name, start, end = default_season_window(self._clock())
        row = {
            "name": name,
            "start_date": _iso(start),
            "end_date": _iso(end),
            "is_current_season": True,
        }
        rows = await steps.run("insert default season", self._store.insert(self._tables.season, [row]))
        season = steps.parse(
            Season, self._first(rows, self._tables.season, "insert"), table=self._tables.season, action="insert"
        )
        self._seasons[season.id] = season
        logger.info("Created default season %s (%s)", season.id, season.name)
        return season

    async def _delete_game_rows(self, steps: _Steps, game_id: int) -> None:
        t = self._tables
        await steps.run(
            f"delete memberships of game {game_id}",
            self._store.delete(t.game_player, {"game_id": game_id}),
        )
        self._memberships = [m for m in self._memberships if m.game_id != game_id]
        self._invalidate_stats()

        await steps.run(f"delete game {game_id}", self._store.delete(t.game, {"id": game_id}))
        self._games.pop(game_id, None)
        self._invalidate_stats()

    def _patch_games(self, predicate: Callable[[Game], bool], update: Dict[str, Any]) -> None:
        for gid, game in list(self._games.items()):
            if predicate(game):
                self._games[gid] = game.model_copy(update=update)

    def _invalidate_stats(self) -> None:
        self._stats_memo.clear()

    @staticmethod
    def _newest_first(games: Iterable[Game]) -> List[Game]:
        return sorted(games, key=lambda g: (g.date, g.id), reverse=True)

    @staticmethod
    def _first(rows: Sequence[Row], table: str, action: str) -> Row:
        if not rows:
            raise StoreError(f"{action} on {table} returned no rows", table=table, action=action)
        return rows[0]

    @staticmethod
    def _clean_name(name: Optional[str], entity: str) -> str:
        clean = (name or "").strip()
        if not clean:
            raise ValidationError(f"{entity} name must not be empty")
        return clean

    @staticmethod
    def _check_window(start_date: datetime, end_date: datetime) -> None:
        start = start_date if start_date.tzinfo else start_date.replace(tzinfo=timezone.utc)
        end = end_date if end_date.tzinfo else end_date.replace(tzinfo=timezone.utc)
        if end < start:
            raise ValidationError("Season end date must not be before its start date")

    @staticmethod
    def _draft(data: Union[GameDraft, Mapping[str, Any]]) -> GameDraft:
        if isinstance(data, GameDraft):
            return data
        try:
            return GameDraft.model_validate(dict(data))
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid game data: {exc}") from exc
