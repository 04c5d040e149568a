"""
Durable persistence for the five synced collections.

The coordinator keeps its authoritative working set in memory; this module is
the write-through/warm-up path to Postgres. Every call returns a BackendResult
instead of raising, so the caller decides in one place whether a failure
degrades to cache-only operation or fails the request.
"""

from dataclasses import dataclass
from typing import Any, Generic, Iterable, Optional, Protocol, Sequence, TypeVar

import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb

from .db import get_conn
from .errors import BackendError
from .jsonlog import json_log

T = TypeVar("T")


@dataclass(frozen=True)
class CollectionSpec:
    name: str
    key_columns: tuple[str, ...]
    # Sales are never rewritten once stored; the other collections are upserts.
    immutable: bool = False


COLLECTIONS: dict[str, CollectionSpec] = {
    "sales": CollectionSpec("sales", ("store_id", "sale_number"), immutable=True),
    "stores": CollectionSpec("stores", ("id",)),
    "products": CollectionSpec("products", ("store_id", "product_key")),
    "categories": CollectionSpec("categories", ("id",)),
    "promotions": CollectionSpec("promotions", ("id",)),
}


def collection_spec(name: str) -> CollectionSpec:
    spec = COLLECTIONS.get(name)
    if spec is None:
        raise KeyError(f"unknown collection: {name}")
    return spec


@dataclass(frozen=True)
class BackendResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[BackendError] = None
    enabled: bool = True

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def status(self) -> str:
        """Short label used in API responses: disabled | ok | failed."""
        if not self.enabled:
            return "disabled"
        return "ok" if self.ok else "failed"

    @classmethod
    def success(cls, value: T) -> "BackendResult[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: BackendError) -> "BackendResult[T]":
        return cls(error=error)

    @classmethod
    def disabled(cls, value: T) -> "BackendResult[T]":
        return cls(value=value, enabled=False)


class RemoteStore(Protocol):
    def select(self, spec: CollectionSpec) -> list[dict[str, Any]]:
        ...

    def upsert(self, spec: CollectionSpec, rows: Sequence[dict[str, Any]]) -> int:
        ...

    def delete(self, spec: CollectionSpec, keys: Sequence[tuple]) -> int:
        ...


class PostgresStore:
    """
    Rows are stored as natural key columns plus a `data` jsonb copy of the record.
    See backend/db/migrations/001_init.sql.
    """

    def __init__(self, pool):
        self._pool = pool

    def select(self, spec: CollectionSpec) -> list[dict[str, Any]]:
        keys = sql.SQL(", ").join(sql.Identifier(c) for c in spec.key_columns)
        query = sql.SQL("SELECT {keys}, data FROM {table} ORDER BY {keys}").format(
            keys=keys, table=sql.Identifier(spec.name)
        )
        with get_conn(self._pool) as conn:
            with conn.cursor() as cur:
                cur.execute(query)
                return [dict(r) for r in (cur.fetchall() or [])]

    def upsert(self, spec: CollectionSpec, rows: Sequence[dict[str, Any]]) -> int:
        if not rows:
            return 0
        cols = list(spec.key_columns)
        conflict = sql.SQL("DO NOTHING") if spec.immutable else sql.SQL(
            "DO UPDATE SET data = EXCLUDED.data, updated_at = now()"
        )
        query = sql.SQL(
            "INSERT INTO {table} ({cols}, data, updated_at) VALUES ({vals}, %s, now()) "
            "ON CONFLICT ({keys}) {conflict}"
        ).format(
            table=sql.Identifier(spec.name),
            cols=sql.SQL(", ").join(sql.Identifier(c) for c in cols),
            vals=sql.SQL(", ").join(sql.Placeholder() for _ in cols),
            keys=sql.SQL(", ").join(sql.Identifier(c) for c in cols),
            conflict=conflict,
        )
        params = [tuple(r[c] for c in cols) + (Jsonb(r["data"]),) for r in rows]
        with get_conn(self._pool) as conn:
            with conn.cursor() as cur:
                cur.executemany(query, params)
        return len(rows)

    def delete(self, spec: CollectionSpec, keys: Sequence[tuple]) -> int:
        if not keys:
            return 0
        where = sql.SQL(" AND ").join(
            sql.SQL("{} = %s").format(sql.Identifier(c)) for c in spec.key_columns
        )
        query = sql.SQL("DELETE FROM {table} WHERE {where}").format(
            table=sql.Identifier(spec.name), where=where
        )
        removed = 0
        with get_conn(self._pool) as conn:
            with conn.cursor() as cur:
                for key in keys:
                    cur.execute(query, tuple(key))
                    removed += max(cur.rowcount, 0)
        return removed


class PersistenceAdapter:
    def __init__(self, remote: Optional[RemoteStore] = None):
        self._remote = remote

    @property
    def enabled(self) -> bool:
        return self._remote is not None

    def select(self, collection: str) -> BackendResult[list[dict[str, Any]]]:
        spec = collection_spec(collection)
        if self._remote is None:
            return BackendResult.disabled([])
        try:
            return BackendResult.success(self._remote.select(spec))
        except psycopg.Error as exc:
            return self._failed("select", spec, exc)

    def upsert(self, collection: str, rows: Iterable[dict[str, Any]]) -> BackendResult[int]:
        spec = collection_spec(collection)
        rows = list(rows)
        if self._remote is None:
            return BackendResult.disabled(0)
        try:
            return BackendResult.success(self._remote.upsert(spec, rows))
        except psycopg.Error as exc:
            return self._failed("upsert", spec, exc)

    def delete(self, collection: str, keys: Iterable[tuple]) -> BackendResult[int]:
        spec = collection_spec(collection)
        keys = list(keys)
        if self._remote is None:
            return BackendResult.disabled(0)
        try:
            return BackendResult.success(self._remote.delete(spec, keys))
        except psycopg.Error as exc:
            return self._failed("delete", spec, exc)

    def _failed(self, operation: str, spec: CollectionSpec, exc: Exception) -> BackendResult:
        err = BackendError(operation, spec.name, str(exc))
        json_log("warning", "durable.call_failed", operation=operation, collection=spec.name, error=str(exc))
        return BackendResult.fail(err)


def sale_row(store_id: int, sale: dict) -> dict[str, Any]:
    return {"store_id": store_id, "sale_number": str(sale.get("sale_number")), "data": sale}


def store_row(store: dict) -> dict[str, Any]:
    return {"id": int(store["id"]), "data": store}


def product_row(store_id: int, key: str, product: dict) -> dict[str, Any]:
    return {"store_id": store_id, "product_key": key, "data": product}


def entity_row(record: dict) -> dict[str, Any]:
    """Categories and promotions: keyed by their id as text."""
    return {"id": str(record.get("id")), "data": record}
