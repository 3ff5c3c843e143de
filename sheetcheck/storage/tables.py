"""
Relational Table Service
========================
Predicate-filtered CRUD over the hosted relational store.

Only equality filters are supported. There are no transactions across
tables; callers issue multi-table writes sequentially.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import httpx

from sheetcheck.core import ConfigurationException, DatabaseException
from sheetcheck.utils import new_id, utc_now

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class TableService(ABC):
    """Abstract table service used by the pipeline and services"""

    @abstractmethod
    async def select(self, table: str, filters: Optional[Dict[str, Any]] = None) -> List[Row]:
        """Return all rows matching every equality filter"""

    @abstractmethod
    async def insert(self, table: str, row: Row, on_conflict: Optional[Sequence[str]] = None) -> Optional[Row]:
        """
        Insert a row and return it as stored (with id and timestamps).

        With ``on_conflict`` the columns form a unique key: when a row with the
        same values already exists nothing is written and None is returned.
        """

    @abstractmethod
    async def update(self, table: str, values: Row, filters: Dict[str, Any]) -> List[Row]:
        """Update matching rows and return them as stored"""

    @abstractmethod
    async def delete(self, table: str, filters: Dict[str, Any]) -> int:
        """Delete matching rows, returning how many were removed"""

    async def select_one(self, table: str, filters: Dict[str, Any]) -> Optional[Row]:
        rows = await self.select(table, filters)
        return rows[0] if rows else None

    async def upsert(self, table: str, values: Row, keys: Dict[str, Any]) -> Row:
        """Update the row identified by ``keys`` or insert it"""
        existing = await self.select_one(table, keys)
        if existing:
            updated = await self.update(table, values, {"id": existing["id"]})
            return updated[0] if updated else {**existing, **values}
        return await self.insert(table, {**keys, **values})


class InMemoryTableService(TableService):
    """
    Dictionary-backed table service.
    Used by the test suite and for local development without a hosted store.
    """

    def __init__(self, data: Optional[Dict[str, List[Row]]] = None):
        self._tables: Dict[str, List[Row]] = {
            name: [dict(row) for row in rows] for name, rows in (data or {}).items()
        }

    @staticmethod
    def _matches(row: Row, filters: Optional[Dict[str, Any]]) -> bool:
        return all(row.get(key) == value for key, value in (filters or {}).items())

    def rows(self, table: str) -> List[Row]:
        return self._tables.setdefault(table, [])

    async def select(self, table, filters=None):
        return [copy.deepcopy(r) for r in self.rows(table) if self._matches(r, filters)]

    async def insert(self, table, row, on_conflict=None):
        if on_conflict:
            key = {column: row.get(column) for column in on_conflict}
            if any(self._matches(r, key) for r in self.rows(table)):
                return None
        stored = copy.deepcopy(row)
        stored.setdefault("id", new_id())
        stored.setdefault("created_at", utc_now())
        self.rows(table).append(stored)
        return copy.deepcopy(stored)

    async def update(self, table, values, filters):
        updated = []
        for row in self.rows(table):
            if self._matches(row, filters):
                row.update(copy.deepcopy(values))
                updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, table, filters):
        rows = self.rows(table)
        keep = [r for r in rows if not self._matches(r, filters)]
        removed = len(rows) - len(keep)
        self._tables[table] = keep
        return removed


class SupabaseTableService(TableService):
    """
    PostgREST client for the hosted Supabase database.
    """

    def __init__(
        self,
        base_url: Optional[str],
        api_key: Optional[str],
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        if not base_url:
            raise ConfigurationException("SUPABASE_URL")
        if not api_key:
            raise ConfigurationException("SUPABASE_KEY")

        self.rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self.api_key = api_key
        self.timeout = timeout
        self._client = client
        logger.info(f"SupabaseTableService initialized: {self.rest_url}")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def _headers(self, representation: bool = False) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if representation:
            headers["Prefer"] = "return=representation"
        return headers

    @staticmethod
    def _params(filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
        params = {}
        for key, value in (filters or {}).items():
            if value is None:
                params[key] = "is.null"
            elif isinstance(value, bool):
                params[key] = f"eq.{str(value).lower()}"
            else:
                params[key] = f"eq.{value}"
        return params

    async def _request(self, method: str, table: str, operation: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, f"{self.rest_url}/{table}", **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"PostgREST {operation} on {table} failed: {e}")
            raise DatabaseException(f"{operation} {table}", str(e))

        if response.status_code >= 400:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            logger.error(f"PostgREST {operation} on {table} returned {response.status_code}: {message}")
            raise DatabaseException(f"{operation} {table}", message)
        return response

    async def select(self, table, filters=None):
        params = {"select": "*", **self._params(filters)}
        response = await self._request("GET", table, "select from", params=params, headers=self._headers())
        return response.json()

    async def insert(self, table, row, on_conflict=None):
        headers = self._headers(representation=True)
        params = {}
        if on_conflict:
            # Needs a unique index over the same columns
            params["on_conflict"] = ",".join(on_conflict)
            headers["Prefer"] = "return=representation,resolution=ignore-duplicates"
        response = await self._request(
            "POST", table, "insert into",
            params=params, json=row, headers=headers
        )
        rows = response.json()
        if on_conflict:
            return rows[0] if isinstance(rows, list) and rows else None
        return rows[0] if isinstance(rows, list) and rows else row

    async def update(self, table, values, filters):
        response = await self._request(
            "PATCH", table, "update",
            params=self._params(filters), json=values,
            headers=self._headers(representation=True)
        )
        return response.json()

    async def delete(self, table, filters):
        response = await self._request(
            "DELETE", table, "delete from",
            params=self._params(filters), headers=self._headers(representation=True)
        )
        return len(response.json())

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
