"""SQLite-backed implementation of the league store."""

from __future__ import annotations

import sqlite3
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from volley.config import TableNames
from volley.errors import StoreError

from .base import Filter, Row, is_multi


class SQLiteStore:
    """Simple SQLite-backed store for league tables."""

    def __init__(self, db_path: Path | str, *, tables: TableNames | None = None):
        self.tables = tables or TableNames()
        self._use_uri = False
        if isinstance(db_path, str) and db_path.startswith("file:"):
            self.db_path: Path | str = db_path
            self._use_uri = True
        else:
            self.db_path = Path(db_path)
        self._columns: Dict[str, set[str]] = {}
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        try:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path)
            else:
                conn = sqlite3.connect(self.db_path, uri=self._use_uri)
        except (sqlite3.OperationalError, OSError):
            fallback_dir = Path(tempfile.gettempdir()) / "volley-runtime"
            fallback_dir.mkdir(parents=True, exist_ok=True)
            fallback = fallback_dir / "league.sqlite"
            conn = sqlite3.connect(fallback)
            self.db_path = fallback
            self._use_uri = False
            self._create_schema(conn)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            self._create_schema(conn)

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        t = self.tables
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS "{t.player}" (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL
            )
            """
        )
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS "{t.season}" (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                start_date TEXT NOT NULL,
                end_date TEXT NOT NULL,
                is_current_season INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS "{t.game}" (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                date TEXT NOT NULL,
                team1_score INTEGER NOT NULL,
                team2_score INTEGER NOT NULL,
                team1_captain INTEGER,
                team2_captain INTEGER,
                season_id INTEGER NOT NULL
            )
            """
        )
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS "{t.game_player}" (
                game_id INTEGER NOT NULL,
                player_id INTEGER NOT NULL,
                team INTEGER NOT NULL,
                PRIMARY KEY (game_id, player_id)
            )
            """
        )
        conn.commit()
        for table in (t.player, t.season, t.game, t.game_player):
            info = conn.execute(f'PRAGMA table_info("{table}")').fetchall()
            self._columns[table] = {row[1] for row in info}

    def _check_columns(self, table: str, columns: Sequence[str], action: str) -> None:
        known = self._columns.get(table)
        if known is None:
            raise StoreError(f"unknown table {table}", table=table, action=action)
        unknown = [column for column in columns if column not in known]
        if unknown:
            raise StoreError(
                f"unknown column(s) for {table}: {', '.join(unknown)}", table=table, action=action
            )

    def _where(self, table: str, filter: Optional[Filter], action: str) -> Tuple[str, List[Any]]:
        if not filter:
            return "", []
        self._check_columns(table, list(filter), action)
        clauses: List[str] = []
        params: List[Any] = []
        for column, value in filter.items():
            if value is None:
                clauses.append(f'"{column}" IS NULL')
            elif is_multi(value):
                values = list(value)
                if not values:
                    clauses.append("0")
                    continue
                clauses.append(f'"{column}" IN ({", ".join("?" for _ in values)})')
                params.extend(values)
            else:
                clauses.append(f'"{column}" = ?')
                params.append(value)
        return " WHERE " + " AND ".join(clauses), params

    def _run(self, table: str, action: str, func):
        try:
            with self._connect() as conn:
                result = func(conn)
                conn.commit()
                return result
        except sqlite3.Error as exc:
            raise StoreError(f"{action} on {table} failed: {exc}", table=table, action=action) from exc

    async def select(self, table: str, filter: Optional[Filter] = None) -> List[Row]:
        where, params = self._where(table, filter, "select")

        def op(conn: sqlite3.Connection) -> List[Row]:
            rows = conn.execute(f'SELECT * FROM "{table}"{where} ORDER BY rowid', params).fetchall()
            return [dict(row) for row in rows]

        return self._run(table, "select", op)

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Row]:
        for row in rows:
            self._check_columns(table, list(row), "insert")

        def op(conn: sqlite3.Connection) -> List[Row]:
            rowids: List[int] = []
            for row in rows:
                payload = {key: value for key, value in row.items() if not (key == "id" and value is None)}
                columns = ", ".join(f'"{column}"' for column in payload)
                marks = ", ".join("?" for _ in payload)
                cursor = conn.execute(
                    f'INSERT INTO "{table}" ({columns}) VALUES ({marks})',
                    tuple(payload.values()),
                )
                rowids.append(cursor.lastrowid)
            return self._fetch_rowids(conn, table, rowids)

        return self._run(table, "insert", op)

    async def update(self, table: str, patch: Mapping[str, Any], filter: Filter) -> List[Row]:
        self._check_columns(table, list(patch), "update")
        where, params = self._where(table, filter, "update")

        def op(conn: sqlite3.Connection) -> List[Row]:
            rowids = [row[0] for row in conn.execute(f'SELECT rowid FROM "{table}"{where}', params)]
            if not rowids or not patch:
                return self._fetch_rowids(conn, table, rowids)
            assignments = ", ".join(f'"{column}" = ?' for column in patch)
            marks = ", ".join("?" for _ in rowids)
            conn.execute(
                f'UPDATE "{table}" SET {assignments} WHERE rowid IN ({marks})',
                (*patch.values(), *rowids),
            )
            return self._fetch_rowids(conn, table, rowids)

        return self._run(table, "update", op)

    async def delete(self, table: str, filter: Filter) -> None:
        where, params = self._where(table, filter, "delete")

        def op(conn: sqlite3.Connection) -> None:
            conn.execute(f'DELETE FROM "{table}"{where}', params)

        self._run(table, "delete", op)

    async def close(self) -> None:
        return None

    def _fetch_rowids(self, conn: sqlite3.Connection, table: str, rowids: List[int]) -> List[Row]:
        if not rowids:
            return []
        marks = ", ".join("?" for _ in rowids)
        rows = conn.execute(
            f'SELECT * FROM "{table}" WHERE rowid IN ({marks}) ORDER BY rowid', rowids
        ).fetchall()
        return [dict(row) for row in rows]
