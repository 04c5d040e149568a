"""
In-memory working set of the coordinator.

Every collection owns its lock. Store-keyed collections (sales ledgers and
per-store product lists) get one lock per store, so pushes from different
stores do not contend; snapshots take every store lock in id order to give
readers a point-in-time view that never contains half of a push.
"""

import threading
from contextlib import ExitStack, contextmanager
from datetime import datetime
from typing import Any, Hashable, Iterable, Iterator, Optional, Protocol

from .timeutil import event_time, event_sort_key


class KeyedCollection:
    def __init__(self):
        self._lock = threading.Lock()
        self._items: dict[Hashable, dict[str, Any]] = {}

    @contextmanager
    def locked(self) -> Iterator[dict[Hashable, dict[str, Any]]]:
        with self._lock:
            yield self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def get(self, key: Hashable) -> Optional[dict[str, Any]]:
        with self._lock:
            return self._items.get(key)

    def snapshot(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._items.values())

    def insert_new(self, keyed: Iterable[tuple[Hashable, dict[str, Any]]]) -> tuple[list[dict[str, Any]], int]:
        """Add records whose key is not present yet. Returns (accepted, size after)."""
        accepted = []
        with self._lock:
            for key, item in keyed:
                if key in self._items:
                    continue
                self._items[key] = item
                accepted.append(item)
            return accepted, len(self._items)

    def upsert(self, keyed: Iterable[tuple[Hashable, dict[str, Any]]]) -> int:
        with self._lock:
            for key, item in keyed:
                self._items[key] = item
            return len(self._items)

    def pop(self, key: Hashable) -> Optional[dict[str, Any]]:
        with self._lock:
            return self._items.pop(key, None)


class StoreKeyedCollections:
    def __init__(self):
        self._lock = threading.Lock()
        self._by_store: dict[int, KeyedCollection] = {}

    def collection(self, store_id: int) -> KeyedCollection:
        with self._lock:
            coll = self._by_store.get(store_id)
            if coll is None:
                coll = self._by_store[store_id] = KeyedCollection()
            return coll

    def find(self, store_id: int) -> Optional[KeyedCollection]:
        with self._lock:
            return self._by_store.get(store_id)

    def store_ids(self) -> list[int]:
        with self._lock:
            return list(self._by_store)

    def items(self) -> list[tuple[int, KeyedCollection]]:
        with self._lock:
            return sorted(self._by_store.items())

    def snapshot(self) -> dict[int, list[dict[str, Any]]]:
        colls = self.items()
        with ExitStack() as stack:
            entered = [(sid, stack.enter_context(c.locked())) for sid, c in colls]
            return {sid: list(items.values()) for sid, items in entered}


class SalesRepository(Protocol):
    def append(self, store_id: int, sales: list[dict[str, Any]]) -> tuple[list[dict[str, Any]], int]:
        ...

    def list_since(self, since: Optional[datetime] = None, exclude_store_id: Optional[int] = None) -> list[dict[str, Any]]:
        ...

    def list_all(self) -> dict[int, list[dict[str, Any]]]:
        ...

    def count_by_store(self) -> dict[int, int]:
        ...


class InMemorySalesRepository:
    """Per-store ledgers keyed by sale_number. Existing sales are never replaced."""

    def __init__(self):
        self._ledgers = StoreKeyedCollections()

    def append(self, store_id: int, sales: list[dict[str, Any]]) -> tuple[list[dict[str, Any]], int]:
        ledger = self._ledgers.collection(store_id)
        return ledger.insert_new((str(s.get("sale_number")), s) for s in sales)

    def list_all(self) -> dict[int, list[dict[str, Any]]]:
        return self._ledgers.snapshot()

    def list_since(self, since: Optional[datetime] = None, exclude_store_id: Optional[int] = None) -> list[dict[str, Any]]:
        out = []
        for store_id, sales in self.list_all().items():
            if exclude_store_id is not None and store_id == exclude_store_id:
                continue
            if since is None:
                out.extend(sales)
                continue
            for sale in sales:
                t = event_time(sale)
                if t is not None and t > since:
                    out.append(sale)
        out.sort(key=event_sort_key, reverse=True)
        return out

    def count_by_store(self) -> dict[int, int]:
        return {sid: len(c) for sid, c in self._ledgers.items()}


class CatalogRepository:
    """Per-store product lists plus the global category and promotion maps."""

    def __init__(self):
        self.products = StoreKeyedCollections()
        self.categories = KeyedCollection()
        self.promotions = KeyedCollection()


class StoreRegistry(KeyedCollection):
    def all(self) -> list[dict[str, Any]]:
        return self.snapshot()
