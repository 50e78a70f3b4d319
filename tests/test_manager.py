from datetime import datetime, timedelta, timezone

import pytest

from volley.errors import InconsistentStateError, NotFoundError, StoreError, ValidationError
from volley.league import GameDraft, LeagueManager, default_season_window
from volley.store import InMemoryStore


START = datetime(2024, 5, 15, 19, 0, tzinfo=timezone.utc)


class TickingClock:
    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        value = self.now
        self.now += timedelta(minutes=5)
        return value


class FlakyStore(InMemoryStore):
    """In-memory store that records calls and rejects selected ones."""

    def __init__(self):
        super().__init__()
        self.fail: set[tuple[str, str]] = set()
        # (action, table, column): reject calls whose filter uses that column
        self.fail_on_filter: set[tuple[str, str, str]] = set()
        self.calls: list[tuple[str, str]] = []

    def _check(self, action: str, table: str, filter=None) -> None:
        self.calls.append((action, table))
        columns = set(filter or {})
        if (action, table) in self.fail or any(
            (action, table, column) in self.fail_on_filter for column in columns
        ):
            raise StoreError(f"{action} on {table} rejected", table=table, action=action)

    async def select(self, table, filter=None):
        self._check("select", table)
        return await super().select(table, filter)

    async def insert(self, table, rows):
        self._check("insert", table)
        return await super().insert(table, rows)

    async def update(self, table, patch, filter):
        self._check("update", table, filter)
        return await super().update(table, patch, filter)

    async def delete(self, table, filter):
        self._check("delete", table, filter)
        return await super().delete(table, filter)


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
async def league(store) -> LeagueManager:
    manager = LeagueManager(store, clock=TickingClock())
    await manager.initialize()
    return manager


async def _roster(league: LeagueManager, *names: str) -> list[int]:
    return [(await league.add_player(name)).id for name in names]


def _current_flags(store: InMemoryStore) -> list[int]:
    return [row["id"] for row in store.rows("Season") if row["is_current_season"]]


def test_default_season_window_covers_whole_month():
    name, start, end = default_season_window(datetime(2024, 2, 10, 8, 0))
    assert name == "February 2024"
    assert start == datetime(2024, 2, 1, tzinfo=timezone.utc)
    assert end == datetime(2024, 2, 29, 23, 59, 59, 999999, tzinfo=timezone.utc)


@pytest.mark.anyio
async def test_initialize_bootstraps_current_season(league, store):
    current = league.current_season
    assert current is not None
    assert current.name == "May 2024"
    assert current.start_date == datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert len(league.seasons) == 1
    assert _current_flags(store) == [current.id]

    await league.initialize()
    assert len(store.rows("Season")) == 1


@pytest.mark.anyio
async def test_initialize_repairs_multiple_current_seasons(store):
    await store.insert(
        "Season",
        [
            {"name": "April", "start_date": "2024-04-01T00:00:00Z", "end_date": "2024-04-30T00:00:00Z", "is_current_season": True},
            {"name": "May", "start_date": "2024-05-01T00:00:00Z", "end_date": "2024-05-31T00:00:00Z", "is_current_season": True},
        ],
    )
    league = LeagueManager(store, clock=TickingClock())
    await league.initialize()
    assert [s.id for s in league.seasons if s.is_current] == [1]
    assert _current_flags(store) == [1]


@pytest.mark.anyio
async def test_initialize_picks_a_season_when_none_is_current(store):
    await store.insert(
        "Season",
        [{"name": "April", "start_date": "2024-04-01T00:00:00Z", "end_date": "2024-04-30T00:00:00Z", "is_current_season": False}],
    )
    league = LeagueManager(store, clock=TickingClock())
    await league.initialize()
    assert league.current_season.id == 1
    assert len(league.seasons) == 1


@pytest.mark.anyio
async def test_initialize_propagates_read_failure(store):
    store.fail.add(("select", "Game"))
    league = LeagueManager(store, clock=TickingClock())
    with pytest.raises(StoreError):
        await league.initialize()
    assert not league.initialized
    assert league.players == ()


@pytest.mark.anyio
async def test_add_player_round_trip(league, store):
    player = await league.add_player("  Ana  ")
    assert player.name == "Ana"
    assert league.get_player_by_id(player.id) == player
    assert store.rows("Player") == [{"id": player.id, "name": "Ana"}]

    reloaded = LeagueManager(store, clock=TickingClock())
    await reloaded.initialize()
    assert reloaded.get_player_by_id(player.id) == player


@pytest.mark.anyio
async def test_add_player_rejects_blank_name_without_store_call(league, store):
    before = len(store.calls)
    with pytest.raises(ValidationError):
        await league.add_player("   ")
    assert len(store.calls) == before


@pytest.mark.anyio
async def test_failed_insert_leaves_cache_untouched(league, store):
    store.fail.add(("insert", "Player"))
    with pytest.raises(StoreError):
        await league.add_player("Ana")
    assert league.players == ()


@pytest.mark.anyio
async def test_update_player(league, store):
    (ana,) = await _roster(league, "Ana")
    updated = await league.update_player(league.get_player_by_id(ana).model_copy(update={"name": "Anna"}))
    assert updated.name == "Anna"
    assert league.get_player_by_id(ana).name == "Anna"
    assert store.rows("Player")[0]["name"] == "Anna"


@pytest.mark.anyio
async def test_update_unknown_player(league):
    from volley.models import Player

    with pytest.raises(NotFoundError):
        await league.update_player(Player(id=42, name="Ghost"))


@pytest.mark.anyio
async def test_add_season_becomes_the_only_current(league, store):
    first = league.current_season
    season = await league.add_season("Summer", datetime(2024, 6, 1), datetime(2024, 8, 31))
    assert season.is_current
    assert league.current_season.id == season.id
    assert not league.get_season_by_id(first.id).is_current
    assert _current_flags(store) == [season.id]


@pytest.mark.anyio
async def test_add_season_rejects_inverted_window(league):
    with pytest.raises(ValidationError):
        await league.add_season("Backwards", datetime(2024, 8, 1), datetime(2024, 6, 1))


@pytest.mark.anyio
async def test_update_season_keeps_current_flag(league, store):
    current = league.current_season
    renamed = await league.update_season(current.model_copy(update={"name": "Spring", "is_current": False}))
    assert renamed.name == "Spring"
    assert renamed.is_current
    assert _current_flags(store) == [current.id]


@pytest.mark.anyio
async def test_set_current_season(league, store):
    first = league.current_season
    await league.add_season("Summer", datetime(2024, 6, 1), datetime(2024, 8, 31))
    season = await league.set_current_season(first.id)
    assert season.id == first.id
    assert [s.id for s in league.seasons if s.is_current] == [first.id]
    assert _current_flags(store) == [first.id]


@pytest.mark.anyio
async def test_set_current_season_unknown(league):
    with pytest.raises(NotFoundError):
        await league.set_current_season(99)


@pytest.mark.anyio
async def test_set_current_season_failure_before_any_write(league, store):
    first = league.current_season
    summer = await league.add_season("Summer", datetime(2024, 6, 1), datetime(2024, 8, 31))
    store.fail.add(("update", "Season"))
    with pytest.raises(StoreError) as excinfo:
        await league.set_current_season(first.id)
    assert not isinstance(excinfo.value, InconsistentStateError)
    assert league.current_season.id == summer.id


@pytest.mark.anyio
async def test_add_game_records_rosters_in_current_season(league, store):
    ana, bea, cai, dan = await _roster(league, "Ana", "Bea", "Cai", "Dan")
    game = await league.add_game(GameDraft(team1_score=25, team2_score=21), [ana, bea], [cai, dan])

    assert game.season_id == league.current_season.id
    assert game.date == START + timedelta(minutes=5)
    assert (game.team1_captain, game.team2_captain) == (ana, cai)
    assert len(store.rows("Game_Player")) == 4
    team1, team2 = league.game_roster(game.id)
    assert [p.name for p in team1] == ["Ana", "Bea"]
    assert [p.name for p in team2] == ["Cai", "Dan"]
    assert league.player_stats(ana).wins == 1
    assert league.player_stats(cai).losses == 1
    assert league.current_season_games == (game,)


@pytest.mark.anyio
async def test_add_game_accepts_mapping(league):
    ana, bea = await _roster(league, "Ana", "Bea")
    game = await league.add_game({"team1_score": 15, "team2_score": 25, "team2_captain": bea}, [ana], [bea])
    assert game.team2_captain == bea


@pytest.mark.anyio
async def test_add_game_rejects_invalid_data(league):
    ana, bea = await _roster(league, "Ana", "Bea")
    with pytest.raises(ValidationError):
        await league.add_game({"team1_score": -1}, [ana], [bea])


@pytest.mark.anyio
async def test_add_game_rejects_overlap_before_store_calls(league, store):
    ana, bea = await _roster(league, "Ana", "Bea")
    before = len(store.calls)
    with pytest.raises(ValidationError):
        await league.add_game(GameDraft(), [ana, bea], [bea])
    with pytest.raises(ValidationError):
        await league.add_game(GameDraft(), [ana], [])
    with pytest.raises(ValidationError):
        await league.add_game(GameDraft(), [ana], [77])
    with pytest.raises(ValidationError):
        await league.add_game(GameDraft(team1_captain=bea), [ana], [bea])
    assert len(store.calls) == before
    assert league.games == ()


@pytest.mark.anyio
async def test_add_game_membership_failure_is_inconsistent(league, store):
    ana, bea = await _roster(league, "Ana", "Bea")
    store.fail.add(("insert", "Game_Player"))
    with pytest.raises(InconsistentStateError) as excinfo:
        await league.add_game(GameDraft(team1_score=25, team2_score=10), [ana], [bea])
    error = excinfo.value
    assert error.operation == "add_game"
    assert error.failed_step == "insert memberships"
    assert error.completed_steps == ("insert game",)
    assert isinstance(error.__cause__, StoreError)
    assert len(league.games) == 1
    assert league.game_players == ()


@pytest.mark.anyio
async def test_update_game_keeps_date_and_rosters(league, store):
    ana, bea = await _roster(league, "Ana", "Bea")
    game = await league.add_game(GameDraft(team1_score=25, team2_score=10), [ana], [bea])
    assert league.player_stats(ana).wins == 1

    changed = game.model_copy(update={"team1_score": 10, "team2_score": 25, "date": START + timedelta(days=3)})
    updated = await league.update_game(changed)
    assert updated.date == game.date
    assert (updated.team1_score, updated.team2_score) == (10, 25)
    assert league.player_stats(ana).wins == 0
    assert league.player_stats(bea).wins == 1
    assert len(league.game_players) == 2


@pytest.mark.anyio
async def test_update_game_validates_captains_and_season(league):
    ana, bea = await _roster(league, "Ana", "Bea")
    game = await league.add_game(GameDraft(), [ana], [bea])
    with pytest.raises(ValidationError):
        await league.update_game(game.model_copy(update={"team1_captain": bea}))
    with pytest.raises(ValidationError):
        await league.update_game(game.model_copy(update={"season_id": 99}))


@pytest.mark.anyio
async def test_update_unknown_game(league):
    from volley.models import Game

    ghost = Game(id=5, date=START, team1_score=1, team2_score=0, season_id=league.current_season.id)
    with pytest.raises(NotFoundError):
        await league.update_game(ghost)


@pytest.mark.anyio
async def test_remove_game(league, store):
    ana, bea = await _roster(league, "Ana", "Bea")
    game = await league.add_game(GameDraft(team1_score=25), [ana], [bea])
    await league.remove_game(game.id)
    assert league.get_game_by_id(game.id) is None
    assert league.game_players == ()
    assert store.rows("Game") == []
    assert store.rows("Game_Player") == []
    assert league.player_stats(ana).games_played == 0

    with pytest.raises(NotFoundError):
        await league.remove_game(game.id)


@pytest.mark.anyio
async def test_remove_player_clears_captaincies_and_memberships(league, store):
    ana, bea, cai = await _roster(league, "Ana", "Bea", "Cai")
    game = await league.add_game(GameDraft(team1_score=25, team2_score=20), [ana, cai], [bea])

    await league.remove_player(ana)

    assert league.get_player_by_id(ana) is None
    assert league.get_game_by_id(game.id).team1_captain is None
    assert league.get_game_by_id(game.id).team2_captain == bea
    assert store.rows("Game")[0]["team1_captain"] is None
    assert all(m.player_id != ana for m in league.game_players)
    assert all(row["player_id"] != ana for row in store.rows("Game_Player"))
    assert league.player_stats(cai).wins == 1


@pytest.mark.anyio
async def test_remove_unknown_player(league, store):
    before = len(store.calls)
    with pytest.raises(NotFoundError):
        await league.remove_player(404)
    assert [call[0] for call in store.calls[before:]] == ["select"]


@pytest.mark.anyio
async def test_remove_player_partial_failure(league, store):
    ana, bea = await _roster(league, "Ana", "Bea")
    await league.add_game(GameDraft(), [ana], [bea])
    store.fail.add(("delete", "Player"))
    with pytest.raises(InconsistentStateError) as excinfo:
        await league.remove_player(ana)
    assert excinfo.value.failed_step == "delete player"
    assert "delete memberships" in excinfo.value.completed_steps
    assert league.get_player_by_id(ana) is not None
    assert all(m.player_id != ana for m in league.game_players)


@pytest.mark.anyio
async def test_remove_current_season_cascades_and_hands_over(league, store):
    spring = league.current_season
    ana, bea = await _roster(league, "Ana", "Bea")
    summer = await league.add_season("Summer", datetime(2024, 6, 1), datetime(2024, 8, 31))
    await league.add_game(GameDraft(team1_score=25), [ana], [bea])
    await league.add_game(GameDraft(team2_score=25), [ana], [bea])

    await league.remove_season(summer.id)

    assert league.get_season_by_id(summer.id) is None
    assert league.games == ()
    assert league.game_players == ()
    assert store.rows("Game") == []
    assert league.current_season.id == spring.id
    assert _current_flags(store) == [spring.id]


@pytest.mark.anyio
async def test_removing_last_season_bootstraps_a_new_one(league, store):
    only = league.current_season
    await league.remove_season(only.id)
    replacement = league.current_season
    assert replacement is not None
    assert replacement.id != only.id
    assert _current_flags(store) == [replacement.id]


@pytest.mark.anyio
async def test_remove_season_failure_after_games_deleted(league, store):
    ana, bea = await _roster(league, "Ana", "Bea")
    game = await league.add_game(GameDraft(), [ana], [bea])
    season_id = league.current_season.id
    store.fail.add(("delete", "Season"))
    with pytest.raises(InconsistentStateError) as excinfo:
        await league.remove_season(season_id)
    assert excinfo.value.completed_steps == (
        f"delete memberships of game {game.id}",
        f"delete game {game.id}",
    )
    assert league.get_season_by_id(season_id) is not None
    assert league.games == ()


@pytest.mark.anyio
async def test_search_and_rankings(league):
    ana, bea, cai = await _roster(league, "Ana", "Bea", "Cai")
    first = await league.add_game(GameDraft(team1_score=25, team2_score=20), [ana], [bea])
    second = await league.add_game(GameDraft(team1_score=25, team2_score=23), [ana], [cai])

    assert league.search_games() == [second, first]
    assert league.search_games("cai") == [second]
    assert league.search_games("23") == [second]
    assert league.search_games(season_id=99) == []

    top = league.top_performers(min_games=2)
    assert [item.player.id for item in top] == [ana]
    assert top[0].stats.win_rate == 100

    history = league.player_games(ana)
    assert [item.game.id for item in history] == [second.id, first.id]

    (summary,) = league.season_summaries()
    assert (summary.game_count, summary.player_count) == (2, 3)


@pytest.mark.anyio
async def test_suggest_teams(league):
    ana, bea, cai, dan = await _roster(league, "Ana", "Bea", "Cai", "Dan")
    await league.add_game(GameDraft(team1_score=25, team2_score=10), [ana, bea], [cai, dan])
    teams = league.suggest_teams([ana, bea, cai, dan])
    assert teams.team1 == (ana, cai, dan)
    assert teams.team2 == (bea,)
    assert teams.team1_strength == teams.team2_strength == 1.0

    with pytest.raises(ValidationError):
        league.suggest_teams([ana])
    with pytest.raises(ValidationError):
        league.suggest_teams([ana, 99])


class BlankNameStore(FlakyStore):
    """Hands back player rows with an empty name after inserting them."""

    async def insert(self, table, rows):
        inserted = await super().insert(table, rows)
        if table == "Player":
            return [{**row, "name": ""} for row in inserted]
        return inserted


@pytest.mark.anyio
async def test_initialize_reports_malformed_rows_as_store_error(store):
    await store.insert("Player", [{"name": ""}])
    league = LeagueManager(store, clock=TickingClock())
    with pytest.raises(StoreError) as excinfo:
        await league.initialize()
    assert not isinstance(excinfo.value, InconsistentStateError)
    assert excinfo.value.table == "Player"
    assert excinfo.value.action == "select"
    assert not league.initialized
    assert league.players == ()


@pytest.mark.anyio
async def test_malformed_row_after_write_is_inconsistent():
    league = LeagueManager(BlankNameStore(), clock=TickingClock())
    await league.initialize()
    with pytest.raises(InconsistentStateError) as excinfo:
        await league.add_player("Ana")
    assert excinfo.value.failed_step == "read back Player row"
    assert excinfo.value.completed_steps == ("insert player",)
    assert isinstance(excinfo.value.__cause__, StoreError)
    assert league.players == ()


@pytest.mark.anyio
async def test_remove_non_current_season_keeps_current(league, store):
    spring = league.current_season
    summer = await league.add_season("Summer", datetime(2024, 6, 1), datetime(2024, 8, 31))
    before = len(store.calls)

    await league.remove_season(spring.id)

    assert league.get_season_by_id(spring.id) is None
    assert league.current_season.id == summer.id
    assert _current_flags(store) == [summer.id]
    assert ("update", "Season") not in store.calls[before:]


@pytest.mark.anyio
async def test_set_current_season_failure_after_clearing(league, store):
    spring = league.current_season
    await league.add_season("Summer", datetime(2024, 6, 1), datetime(2024, 8, 31))
    store.fail_on_filter.add(("update", "Season", "id"))
    with pytest.raises(InconsistentStateError) as excinfo:
        await league.set_current_season(spring.id)
    assert excinfo.value.failed_step == f"mark season {spring.id} current"
    assert excinfo.value.completed_steps == ("clear current season",)
    assert league.current_season is None
    assert _current_flags(store) == []


@pytest.mark.anyio
async def test_add_season_failure_after_insert(league, store):
    spring = league.current_season
    store.fail_on_filter.add(("update", "Season", "is_current_season"))
    with pytest.raises(InconsistentStateError) as excinfo:
        await league.add_season("Summer", datetime(2024, 6, 1), datetime(2024, 8, 31))
    assert excinfo.value.failed_step == "clear current season"
    assert excinfo.value.completed_steps == ("insert season",)
    (summer,) = [s for s in league.seasons if s.name == "Summer"]
    assert not summer.is_current
    assert league.current_season.id == spring.id


@pytest.mark.anyio
async def test_top_performers_defaults_include_single_game_players(league):
    names = ["Ana", "Bea", "Cai", "Dan", "Eve"]
    ids = await _roster(league, *names)
    await league.add_game(GameDraft(team1_score=25, team2_score=20), ids[:3], ids[3:])
    top = league.top_performers()
    assert [item.player.id for item in top] == ids[:3]
    assert all(item.stats.games_played == 1 for item in top)
