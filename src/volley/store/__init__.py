"""Store adapters implementing the tabular league store contract."""

from __future__ import annotations

from volley.config import Settings

from .base import Filter, RemoteStore, Row
from .memory import InMemoryStore
from .rest import RestStore
from .sqlite import SQLiteStore


def build_store(settings: Settings) -> RemoteStore:
    """Construct the adapter selected by ``settings.backend``."""

    if settings.backend == "memory":
        return InMemoryStore(settings.tables.keyed)
    if settings.backend == "sqlite":
        return SQLiteStore(settings.db_path, tables=settings.tables)
    if settings.backend == "rest":
        if not settings.store_url:
            raise ValueError("VOLLEY_STORE_URL is required for the rest backend")
        return RestStore.connect(
            settings.store_url, settings.store_key, timeout=settings.store_timeout
        )
    raise ValueError(f"Unknown store backend {settings.backend!r}")


__all__ = [
    "Filter",
    "InMemoryStore",
    "RemoteStore",
    "RestStore",
    "Row",
    "SQLiteStore",
    "build_store",
]
