"""Tabular store contract consumed by the league manager."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence


Row = Dict[str, Any]
Filter = Mapping[str, Any]


class RemoteStore(Protocol):
    """Async insert/update/delete/select keyed by table name.

    Filters are equality mappings. A list, tuple or set value matches any of
    its members and ``None`` matches NULL. Every method raises
    :class:`volley.errors.StoreError` on failure.
    """

    async def select(self, table: str, filter: Optional[Filter] = None) -> List[Row]:
        ...

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Row]:
        ...

    async def update(self, table: str, patch: Mapping[str, Any], filter: Filter) -> List[Row]:
        ...

    async def delete(self, table: str, filter: Filter) -> None:
        ...

    async def close(self) -> None:
        ...


def is_multi(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def row_matches(row: Mapping[str, Any], filter: Optional[Filter]) -> bool:
    if not filter:
        return True
    for column, expected in filter.items():
        actual = row.get(column)
        if is_multi(expected):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True
