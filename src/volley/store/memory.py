"""Process-local store used for tests and throwaway sessions."""

from __future__ import annotations

import copy
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from volley.config import TableNames
from volley.errors import StoreError

from .base import Filter, Row, row_matches


class InMemoryStore:
    """Dict-of-lists tables with serial ids for keyed tables."""

    def __init__(self, keyed_tables: Iterable[str] | None = None):
        self._keyed = set(keyed_tables if keyed_tables is not None else TableNames().keyed)
        self._tables: Dict[str, List[Row]] = defaultdict(list)
        self._next_id: Dict[str, int] = defaultdict(lambda: 1)

    def rows(self, table: str) -> List[Row]:
        """Direct copy of a table's rows, for inspection."""

        return copy.deepcopy(self._tables[table])

    async def select(self, table: str, filter: Optional[Filter] = None) -> List[Row]:
        return [copy.deepcopy(row) for row in self._tables[table] if row_matches(row, filter)]

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Row]:
        inserted: List[Row] = []
        for raw in rows:
            row = dict(raw)
            if table in self._keyed:
                if row.get("id") is None:
                    row["id"] = self._next_id[table]
                elif any(existing["id"] == row["id"] for existing in self._tables[table]):
                    raise StoreError(
                        f"duplicate id {row['id']} in {table}", table=table, action="insert"
                    )
                self._next_id[table] = max(self._next_id[table], int(row["id"]) + 1)
            inserted.append(row)
        self._tables[table].extend(inserted)
        return copy.deepcopy(inserted)

    async def update(self, table: str, patch: Mapping[str, Any], filter: Filter) -> List[Row]:
        affected: List[Row] = []
        for row in self._tables[table]:
            if row_matches(row, filter):
                row.update(patch)
                affected.append(copy.deepcopy(row))
        return affected

    async def delete(self, table: str, filter: Filter) -> None:
        self._tables[table] = [row for row in self._tables[table] if not row_matches(row, filter)]

    async def close(self) -> None:
        return None
