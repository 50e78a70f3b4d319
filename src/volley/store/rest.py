"""PostgREST (Supabase-style) HTTP adapter for the league store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx

from volley.errors import StoreError

from .base import Filter, Row, is_multi


logger = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1"


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value)
    if any(ch in text for ch in ',()"'):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def encode_filter(filter: Optional[Filter]) -> List[Tuple[str, str]]:
    """Translate an equality filter into PostgREST query parameters."""

    params: List[Tuple[str, str]] = []
    for column, value in (filter or {}).items():
        if value is None:
            params.append((column, "is.null"))
        elif is_multi(value):
            params.append((column, f"in.({','.join(_literal(item) for item in value)})"))
        else:
            params.append((column, f"eq.{_literal(value)}"))
    return params


@dataclass
class RestStore:
    """Store adapter speaking the PostgREST table protocol over httpx."""

    http: httpx.AsyncClient
    owns_client: bool = False
    prefix: str = REST_PREFIX

    @classmethod
    def connect(cls, base_url: str, api_key: str | None = None, *, timeout: float = 10.0) -> "RestStore":
        headers: Dict[str, str] = {}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        client = httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout)
        return cls(http=client, owns_client=True)

    def _path(self, table: str) -> str:
        return f"{self.prefix}/{table}"

    async def _request(
        self,
        method: str,
        table: str,
        *,
        action: str,
        params: Optional[List[Tuple[str, str]]] = None,
        json: Any = None,
        returning: bool = True,
    ) -> List[Row]:
        headers = {"Prefer": "return=representation" if returning else "return=minimal"}
        logger.debug("%s %s params=%s", method, table, params)
        try:
            resp = await self.http.request(
                method, self._path(table), params=params, json=json, headers=headers
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text.strip() or exc.response.reason_phrase
            raise StoreError(
                f"{action} on {table} failed with HTTP {exc.response.status_code}: {detail}",
                table=table,
                action=action,
            ) from exc
        except httpx.HTTPError as exc:
            raise StoreError(f"{action} on {table} failed: {exc}", table=table, action=action) from exc

        if not returning or not resp.content:
            return []
        try:
            payload = resp.json()
        except ValueError as exc:
            raise StoreError(f"{action} on {table} returned invalid JSON", table=table, action=action) from exc
        if isinstance(payload, dict):
            return [payload]
        return list(payload)

    async def select(self, table: str, filter: Optional[Filter] = None) -> List[Row]:
        params = [("select", "*"), *encode_filter(filter)]
        return await self._request("GET", table, action="select", params=params)

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Row]:
        payload = [
            {key: value for key, value in row.items() if not (key == "id" and value is None)}
            for row in rows
        ]
        return await self._request("POST", table, action="insert", json=payload)

    async def update(self, table: str, patch: Mapping[str, Any], filter: Filter) -> List[Row]:
        if not filter:
            raise StoreError("refusing to update without a filter", table=table, action="update")
        return await self._request(
            "PATCH", table, action="update", params=encode_filter(filter), json=dict(patch)
        )

    async def delete(self, table: str, filter: Filter) -> None:
        if not filter:
            raise StoreError("refusing to delete without a filter", table=table, action="delete")
        await self._request(
            "DELETE", table, action="delete", params=encode_filter(filter), returning=False
        )

    async def close(self) -> None:
        if self.owns_client:
            await self.http.aclose()
