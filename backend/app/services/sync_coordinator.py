"""
Sales replication between stores.

Stores push their own sales and pull everybody else's. Pushes are idempotent on
`sale_number`: a sale already in the store's ledger is dropped, never updated,
so a terminal can resend a batch after a timeout without double counting.
"""

from typing import Any, Callable

from ..errors import ValidationError
from ..jsonlog import json_log
from ..persistence import PersistenceAdapter, sale_row, store_row
from ..repositories import SalesRepository, StoreRegistry
from ..timeutil import parse_instant, utcnow
from ..validation import has_non_finite, parse_store_id, parse_store_id_optional


def placeholder_store(store_id: int) -> dict[str, Any]:
    return {"id": store_id, "name": f"Store {store_id}"}


class SyncCoordinator:
    def __init__(
        self,
        sales: SalesRepository,
        stores: StoreRegistry,
        persistence: PersistenceAdapter,
        *,
        clock: Callable = utcnow,
    ):
        self._sales = sales
        self._stores = stores
        self._persistence = persistence
        self._clock = clock

    def push(self, store_id: Any, sales: Any) -> dict[str, Any]:
        sid = parse_store_id(store_id)
        if not isinstance(sales, list) or not sales:
            raise ValidationError("sales must be a non-empty array")

        records = []
        for i, sale in enumerate(sales):
            if not isinstance(sale, dict):
                raise ValidationError(f"sales[{i}] must be an object")
            number = sale.get("sale_number")
            if number is None or not str(number).strip():
                raise ValidationError(f"sales[{i}].sale_number is required")
            if has_non_finite(sale):
                raise ValidationError(f"sales[{i}] contains a non-finite number")
            rec = dict(sale)
            rec["store_id"] = sid
            records.append(rec)

        accepted, total = self._sales.append(sid, records)

        # Durable write happens after the ledger lock is released.
        durable = self._persistence.upsert("sales", [sale_row(sid, s) for s in accepted])
        if not durable.ok:
            json_log("warning", "durable.write_failed", collection="sales", store_id=sid, rows=len(accepted), error=str(durable.error))

        json_log("info", "sync.push", store_id=sid, received=len(records), accepted=len(accepted), total=total)
        return {
            "success": True,
            "message": f"Received {len(accepted)} sales",
            "accepted": len(accepted),
            "totalSales": total,
            "totalForStore": total,
            "durable": durable.status,
        }

    def pull(self, store_id: Any = None, since: Any = None) -> dict[str, Any]:
        sid = parse_store_id_optional(store_id)
        since_at = None
        if since is not None and str(since).strip():
            since_at = parse_instant(since)
            if since_at is None:
                raise ValidationError("since must be an ISO-8601 timestamp or epoch milliseconds")

        sales = self._sales.list_since(since_at, exclude_store_id=sid)
        json_log("info", "sync.pull", store_id=sid, since=since_at, count=len(sales))
        return {"success": True, "sales": sales, "count": len(sales)}

    def register_store(self, data: dict[str, Any]) -> dict[str, Any]:
        sid = parse_store_id(data.get("id"), "id")
        store = {
            "id": sid,
            "name": data.get("name"),
            "address": data.get("address"),
            "phone": data.get("phone"),
            "registered_at": self._clock().isoformat(),
        }
        self._stores.upsert([(sid, store)])
        durable = self._persistence.upsert("stores", [store_row(store)])
        if not durable.ok:
            json_log("warning", "durable.write_failed", collection="stores", store_id=sid, error=str(durable.error))
        json_log("info", "sync.store_registered", store_id=sid, name=store["name"])
        return {"success": True, "store": store, "durable": durable.status}

    def list_stores(self) -> dict[str, Any]:
        return {"stores": self._stores.all()}

    def stats(self) -> dict[str, Any]:
        by_store = self._sales.count_by_store()
        return {
            "totalStores": len(self._stores),
            "totalSales": sum(by_store.values()),
            "salesByStore": {str(k): v for k, v in by_store.items()},
        }


def known_store_ids(stores: StoreRegistry, ledgers: dict[int, list]) -> list[int]:
    """Registered stores in registration order, then stores only seen through sales."""
    ids = [s["id"] for s in stores.all()]
    seen = set(ids)
    for sid in ledgers:
        if sid not in seen:
            ids.append(sid)
            seen.add(sid)
    return ids


def find_store(stores: StoreRegistry, store_id: int) -> dict[str, Any]:
    return stores.get(store_id) or placeholder_store(store_id)
