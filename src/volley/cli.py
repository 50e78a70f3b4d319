"""Command-line interface for managing the league and serving the API."""

from __future__ import annotations

import argparse
import asyncio
import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Sequence, TypeVar

from volley.config import load_settings
from volley.errors import LeagueError
from volley.league import LeagueManager
from volley.stats import PlayerStanding
from volley.store import build_store


T = TypeVar("T")


def _parse_date(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', expected YYYY-MM-DD") from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="volley", description="Track a recreational volleyball league")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (e.g., INFO, DEBUG)")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the REST API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    players = sub.add_parser("players", help="List players with their records")
    players.add_argument("--season-id", type=int, default=None, help="Restrict records to one season")

    add_player = sub.add_parser("add-player", help="Add a player")
    add_player.add_argument("name")

    sub.add_parser("seasons", help="List seasons with game and player counts")

    add_season = sub.add_parser("add-season", help="Create a season and make it current")
    add_season.add_argument("name")
    add_season.add_argument("start", type=_parse_date, help="Start date (YYYY-MM-DD)")
    add_season.add_argument("end", type=_parse_date, help="End date (YYYY-MM-DD)")

    standings = sub.add_parser("standings", help="Rank players by win rate")
    standings.add_argument("--season-id", type=int, default=None, help="Season to rank (default: current)")
    standings.add_argument("--min-games", type=int, default=1)
    standings.add_argument("--limit", type=int, default=None)
    standings.add_argument("--output", type=Path, default=None, help="Optional CSV output path")

    balance = sub.add_parser("balance", help="Suggest two balanced teams")
    balance.add_argument("player_ids", type=int, nargs="+")
    return parser


async def _with_league(action: Callable[[LeagueManager], Awaitable[T]]) -> T:
    settings = load_settings()
    league = LeagueManager(build_store(settings), tables=settings.tables, recent_games=settings.recent_games)
    try:
        await league.initialize()
        return await action(league)
    finally:
        await league.close()


def _print_standings(rows: Sequence[PlayerStanding]) -> None:
    if not rows:
        print("No players with enough games yet")
        return
    for rank, row in enumerate(rows, start=1):
        stats = row.stats
        print(f"{rank:>2}. {row.player.name:<24} {stats.wins}W - {stats.losses}L  {stats.win_rate}%")


def _write_standings(path: Path, rows: Sequence[PlayerStanding]) -> None:
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["rank", "player_id", "name", "games_played", "wins", "losses", "win_rate"])
        for rank, row in enumerate(rows, start=1):
            stats = row.stats
            writer.writerow([rank, row.player.id, row.player.name, stats.games_played, stats.wins, stats.losses, stats.win_rate])


def _players(league: LeagueManager, season_id: int | None) -> None:
    if not league.players:
        print("No players yet")
        return
    for player in sorted(league.players, key=lambda p: p.name.lower()):
        stats = league.player_stats(player.id, season_id)
        record = f"{stats.wins}W - {stats.losses}L ({stats.win_rate}%)" if stats.games_played else "no games"
        print(f"{player.id:>4}  {player.name:<24} {stats.games_played} games  {record}")


def _seasons(league: LeagueManager) -> None:
    for summary in league.season_summaries():
        season = summary.season
        marker = "*" if summary.is_current else " "
        print(
            f"{marker} {season.id:>4}  {season.name:<20} "
            f"{season.start_date.date()} - {season.end_date.date()}  "
            f"{summary.game_count} games, {summary.player_count} players"
        )


def _balance(league: LeagueManager, player_ids: Sequence[int]) -> None:
    teams = league.suggest_teams(player_ids)
    for label, members, strength, captain in (
        ("Team 1", teams.team1, teams.team1_strength, teams.team1_captain),
        ("Team 2", teams.team2, teams.team2_strength, teams.team2_captain),
    ):
        names = []
        for pid in members:
            player = league.get_player_by_id(pid)
            name = player.name if player else str(pid)
            names.append(f"{name} (C)" if pid == captain else name)
        print(f"{label} [{strength:.2f}]: {', '.join(names)}")


def main(argv: Sequence[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))

    if args.command == "serve":
        import uvicorn

        from volley.api import create_app

        uvicorn.run(create_app(), host=args.host, port=args.port)
        return

    async def run(league: LeagueManager) -> None:
        if args.command == "players":
            _players(league, args.season_id)
        elif args.command == "add-player":
            player = await league.add_player(args.name)
            print(f"Added player {player.id}: {player.name}")
        elif args.command == "seasons":
            _seasons(league)
        elif args.command == "add-season":
            season = await league.add_season(args.name, args.start, args.end)
            print(f"Created season {season.id}: {season.name} (current)")
        elif args.command == "standings":
            rows = league.top_performers(args.season_id, min_games=args.min_games, limit=args.limit)
            _print_standings(rows)
            if args.output:
                _write_standings(args.output, rows)
                print(f"Wrote standings to {args.output}")
        elif args.command == "balance":
            _balance(league, args.player_ids)

    try:
        asyncio.run(_with_league(run))
    except LeagueError as exc:
        raise SystemExit(f"error: {exc}") from exc


if __name__ == "__main__":
    main()
