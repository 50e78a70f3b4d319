import pytest

from volley.errors import StoreError
from volley.league import GameDraft, LeagueManager
from volley.store import SQLiteStore


@pytest.fixture
def store(tmp_path) -> SQLiteStore:
    return SQLiteStore(tmp_path / "league.sqlite")


@pytest.mark.anyio
async def test_insert_assigns_ids_and_returns_rows(store):
    rows = await store.insert("Player", [{"name": "Ana"}, {"id": None, "name": "Bea"}])
    assert rows == [{"id": 1, "name": "Ana"}, {"id": 2, "name": "Bea"}]
    assert await store.select("Player", {"id": 2}) == [{"id": 2, "name": "Bea"}]


@pytest.mark.anyio
async def test_filters_support_in_and_null(store):
    await store.insert(
        "Game",
        [
            {"date": "2024-05-01T18:00:00+00:00", "team1_score": 25, "team2_score": 20, "team1_captain": 1, "team2_captain": None, "season_id": 1},
            {"date": "2024-05-02T18:00:00+00:00", "team1_score": 20, "team2_score": 25, "team1_captain": 2, "team2_captain": 3, "season_id": 1},
        ],
    )
    assert [row["id"] for row in await store.select("Game", {"team2_captain": None})] == [1]
    assert [row["id"] for row in await store.select("Game", {"team1_captain": [1, 2]})] == [1, 2]
    assert await store.select("Game", {"id": []}) == []


@pytest.mark.anyio
async def test_update_returns_rows_even_when_filter_column_changes(store):
    await store.insert(
        "Season",
        [
            {"name": "April", "start_date": "2024-04-01", "end_date": "2024-04-30", "is_current_season": True},
            {"name": "May", "start_date": "2024-05-01", "end_date": "2024-05-31", "is_current_season": False},
        ],
    )
    cleared = await store.update("Season", {"is_current_season": False}, {"is_current_season": True})
    assert [row["id"] for row in cleared] == [1]
    assert cleared[0]["is_current_season"] == 0
    assert await store.update("Season", {"name": "June"}, {"id": 9}) == []


@pytest.mark.anyio
async def test_delete(store):
    await store.insert("Game_Player", [{"game_id": 1, "player_id": 1, "team": 1}, {"game_id": 1, "player_id": 2, "team": 2}])
    await store.delete("Game_Player", {"player_id": 1})
    assert await store.select("Game_Player") == [{"game_id": 1, "player_id": 2, "team": 2}]


@pytest.mark.anyio
async def test_unknown_column_and_constraint_errors(store):
    with pytest.raises(StoreError):
        await store.insert("Player", [{"nickname": "Ace"}])
    await store.insert("Game_Player", [{"game_id": 1, "player_id": 1, "team": 1}])
    with pytest.raises(StoreError) as excinfo:
        await store.insert("Game_Player", [{"game_id": 1, "player_id": 1, "team": 2}])
    assert excinfo.value.table == "Game_Player"
    assert excinfo.value.action == "insert"


@pytest.mark.anyio
async def test_league_persists_across_managers(tmp_path):
    path = tmp_path / "league.sqlite"
    league = LeagueManager(SQLiteStore(path))
    await league.initialize()
    ana = await league.add_player("Ana")
    bea = await league.add_player("Bea")
    game = await league.add_game(GameDraft(team1_score=25, team2_score=18), [ana.id], [bea.id])

    reopened = LeagueManager(SQLiteStore(path))
    await reopened.initialize()
    assert len(reopened.seasons) == 1
    assert reopened.current_season.is_current
    assert reopened.get_game_by_id(game.id) == game
    assert reopened.player_stats(ana.id).wins == 1
    assert {m.player_id for m in reopened.game_players} == {ana.id, bea.id}
