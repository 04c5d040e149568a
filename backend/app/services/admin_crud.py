"""
Owner CRUD for products, categories and promotions.

Writes land in the master catalog in memory first, so the next catalog pull sees
them immediately, and are then written through to the durable store. A failed
durable write is not hidden: the caller gets an InternalError even though the
in-memory copy has already changed.
"""

import threading
import time
from datetime import datetime
from typing import Any, Callable, Optional

from ..errors import InternalError, NotFoundError, ValidationError
from ..jsonlog import json_log
from ..persistence import BackendResult, PersistenceAdapter, entity_row, product_row
from ..repositories import CatalogRepository, KeyedCollection, SalesRepository, StoreRegistry
from ..timeutil import parse_instant, utcnow
from ..validation import PROMO_TYPES, has_non_finite
from .catalog_replicator import product_identity
from .reports import sale_amount
from .write_behind import WriteBehind


class TimestampIds:
    """Millisecond timestamps, bumped by one when two ids are requested in the same ms."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._last = 0

    def next(self) -> int:
        with self._lock:
            v = max(int(self._clock() * 1000), self._last + 1)
            self._last = v
            return v


def _blank(v: Any) -> bool:
    return v is None or (isinstance(v, str) and not v.strip())


def _same_id(a: Any, b: Any) -> bool:
    if _blank(a) or _blank(b):
        return False
    return str(a).strip() == str(b).strip()


def _require_object(body: Any, what: str) -> dict[str, Any]:
    if not isinstance(body, dict):
        raise ValidationError(f"{what} must be an object")
    if has_non_finite(body):
        raise ValidationError(f"{what} contains a non-finite number")
    return dict(body)


def _check_durable(res: BackendResult, action: str, entity: str, entity_id: Any) -> None:
    if res.ok:
        return
    json_log("error", "admin.durable_write_failed", action=action, entity=entity, entity_id=entity_id, error=str(res.error))
    raise InternalError(f"{entity} {action} was not persisted")


def validate_promotion(promo: dict[str, Any]) -> str:
    """Checks a promotion record and returns its normalized promo_type."""
    ptype = str(promo.get("promo_type") or "").strip().lower()
    if ptype not in PROMO_TYPES:
        raise ValidationError(f"promo_type must be one of: {', '.join(PROMO_TYPES)}")

    if ptype == "mix_match":
        eligible = promo.get("product_ids")
        if not isinstance(eligible, list) or not [p for p in eligible if not _blank(p)]:
            raise ValidationError("mix_match promotions need a non-empty product_ids list")
    elif _blank(promo.get("product_id")) and _blank(promo.get("barcode")):
        raise ValidationError(f"{ptype} promotions need a product_id or barcode")

    start_raw, end_raw = promo.get("start_date"), promo.get("end_date")
    start = None if _blank(start_raw) else parse_instant(start_raw)
    end = None if _blank(end_raw) else parse_instant(end_raw)
    if not _blank(start_raw) and start is None:
        raise ValidationError("start_date is not a valid date")
    if not _blank(end_raw) and end is None:
        raise ValidationError("end_date is not a valid date")
    if start is not None and end is not None and end < start:
        raise ValidationError("end_date is before start_date")
    return ptype


class AdminCrud:
    def __init__(
        self,
        catalog: CatalogRepository,
        sales: SalesRepository,
        stores: StoreRegistry,
        persistence: PersistenceAdapter,
        write_behind: WriteBehind,
        *,
        master_store_id: int = 1,
        clock: Callable[[], datetime] = utcnow,
        ids: Optional[TimestampIds] = None,
    ):
        self._catalog = catalog
        self._sales = sales
        self._stores = stores
        self._persistence = persistence
        self._write_behind = write_behind
        self._master_store_id = master_store_id
        self._clock = clock
        self._ids = ids or TimestampIds()

    # Durable writes run on the catalog writer thread, behind any chunks a push
    # already queued, so a queued push cannot undo an admin delete or edit.

    def _upsert_durable(self, collection: str, rows: list[dict[str, Any]]) -> BackendResult:
        return self._write_behind.call(self._persistence.upsert, collection, rows)

    def _delete_durable(self, collection: str, keys: list[tuple]) -> BackendResult:
        return self._write_behind.call(self._persistence.delete, collection, keys)

    # Products

    def list_products(self) -> dict[str, Any]:
        seen_ids: set[str] = set()
        seen_barcodes: set[str] = set()
        out = []
        stores = self._catalog.products.snapshot()
        order = sorted(stores, key=lambda sid: (sid != self._master_store_id, sid))
        for sid in order:
            for p in stores[sid]:
                pid = None if _blank(p.get("id")) else str(p["id"]).strip()
                barcode = None if _blank(p.get("barcode")) else str(p["barcode"]).strip()
                if (pid and pid in seen_ids) or (barcode and barcode in seen_barcodes):
                    continue
                if pid:
                    seen_ids.add(pid)
                if barcode:
                    seen_barcodes.add(barcode)
                out.append({**p, "source_store_id": sid})
        return {"products": out, "total": len(out)}

    def get_product(self, product_id: str) -> dict[str, Any]:
        stores = self._catalog.products.snapshot()
        order = sorted(stores, key=lambda sid: (sid != self._master_store_id, sid))
        for sid in order:
            for p in stores[sid]:
                if _same_id(p.get("id"), product_id) or _same_id(p.get("barcode"), product_id):
                    return p
        raise NotFoundError("product not found")

    def upsert_product(self, body: Any) -> dict[str, Any]:
        incoming = _require_object(body, "product")
        now = self._clock().isoformat()
        master = self._catalog.products.collection(self._master_store_id)

        with master.locked() as items:
            old_key = None
            for key, existing in items.items():
                if _same_id(existing.get("id"), incoming.get("id")) or _same_id(existing.get("barcode"), incoming.get("barcode")):
                    old_key = key
                    break
            merged = {**items[old_key], **incoming} if old_key is not None else incoming
            if _blank(merged.get("id")):
                merged["id"] = self._ids.next()
            if _blank(merged.get("created_at")):
                merged["created_at"] = now
            merged["updated_at"] = now
            new_key = product_identity(merged)
            if old_key is not None and old_key != new_key:
                del items[old_key]
            items[new_key] = merged

        res = self._upsert_durable("products", [product_row(self._master_store_id, new_key, merged)])
        _check_durable(res, "save", "product", merged["id"])
        if old_key is not None and old_key != new_key:
            res = self._delete_durable("products", [(self._master_store_id, old_key)])
            _check_durable(res, "save", "product", merged["id"])

        json_log("info", "admin.product_saved", product_id=merged["id"], created=old_key is None)
        return {"success": True, "product": merged}

    def delete_product(self, product_id: str) -> dict[str, Any]:
        removed: list[tuple[int, str]] = []
        for sid, coll in self._catalog.products.items():
            with coll.locked() as items:
                for key in [k for k, p in items.items() if _same_id(p.get("id"), product_id)]:
                    del items[key]
                    removed.append((sid, key))
        if not removed:
            raise NotFoundError("product not found")

        res = self._delete_durable("products", removed)
        _check_durable(res, "delete", "product", product_id)
        json_log("info", "admin.product_deleted", product_id=product_id, stores=sorted({sid for sid, _k in removed}))
        return {"success": True, "message": "product deleted", "removed": len(removed)}

    # Categories and promotions share one shape: a global map keyed by id.

    def _upsert_entity(self, coll: KeyedCollection, collection: str, entity: str, record: dict[str, Any]) -> dict[str, Any]:
        now = self._clock().isoformat()
        if _blank(record.get("id")):
            record["id"] = self._ids.next()
        key = str(record["id"]).strip()
        with coll.locked() as items:
            existing = items.get(key)
            merged = {**existing, **record} if existing is not None else record
            if _blank(merged.get("created_at")):
                merged["created_at"] = now
            merged["updated_at"] = now
            items[key] = merged

        res = self._upsert_durable(collection, [entity_row(merged)])
        _check_durable(res, "save", entity, merged["id"])
        json_log("info", f"admin.{entity}_saved", entity_id=merged["id"], created=existing is None)
        return merged

    def _delete_entity(self, coll: KeyedCollection, collection: str, entity: str, entity_id: str) -> dict[str, Any]:
        key = str(entity_id).strip()
        if coll.pop(key) is None:
            raise NotFoundError(f"{entity} not found")
        res = self._delete_durable(collection, [(key,)])
        _check_durable(res, "delete", entity, key)
        json_log("info", f"admin.{entity}_deleted", entity_id=key)
        return {"success": True, "message": f"{entity} deleted"}

    def list_categories(self) -> dict[str, Any]:
        categories = self._catalog.categories.snapshot()
        return {"categories": categories, "total": len(categories)}

    def upsert_category(self, body: Any) -> dict[str, Any]:
        category = _require_object(body, "category")
        saved = self._upsert_entity(self._catalog.categories, "categories", "category", category)
        return {"success": True, "category": saved}

    def delete_category(self, category_id: str) -> dict[str, Any]:
        return self._delete_entity(self._catalog.categories, "categories", "category", category_id)

    def list_promotions(self) -> dict[str, Any]:
        promotions = self._catalog.promotions.snapshot()
        return {"promotions": promotions, "total": len(promotions)}

    def upsert_promotion(self, body: Any) -> dict[str, Any]:
        promo = _require_object(body, "promotion")
        existing = None if _blank(promo.get("id")) else self._catalog.promotions.get(str(promo["id"]).strip())
        promo["promo_type"] = validate_promotion({**existing, **promo} if existing else promo)
        if existing is None and promo.get("is_active") is None:
            promo["is_active"] = True
        saved = self._upsert_entity(self._catalog.promotions, "promotions", "promotion", promo)
        return {"success": True, "promotion": saved}

    def delete_promotion(self, promotion_id: str) -> dict[str, Any]:
        return self._delete_entity(self._catalog.promotions, "promotions", "promotion", promotion_id)

    def stats(self) -> dict[str, Any]:
        per_store = self._catalog.products.snapshot()
        ledgers = self._sales.list_all()
        return {
            "totalProducts": max((len(v) for v in per_store.values()), default=0),
            "totalCategories": len(self._catalog.categories),
            "totalPromotions": len(self._catalog.promotions),
            "totalStores": len(self._stores),
            "totalSales": sum(len(v) for v in ledgers.values()),
            "totalRevenue": sum(sale_amount(s) for v in ledgers.values() for s in v),
        }
