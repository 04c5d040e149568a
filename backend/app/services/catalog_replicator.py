"""
Product/category replication.

Catalog data is hub-and-spoke: stores push their catalog, the master store's
list is what everybody pulls. Prices and stock must not fork between stores, so
unlike sales a pushed product fully replaces the record with the same identity.
"""

from typing import Any, Optional

from ..errors import ValidationError
from ..jsonlog import json_log
from ..persistence import entity_row, product_row
from ..repositories import CatalogRepository
from ..validation import has_non_finite, parse_store_id, parse_store_id_optional
from .write_behind import WriteBehind

# Priority order of the fields that identify a product. The first one with a
# value wins, so a product that carries an id is keyed by it even when its
# barcode changes between pushes.
IDENTITY_FIELDS = ("id", "barcode", "sku")


def product_identity(product: dict[str, Any]) -> Optional[str]:
    """
    Identity key of a product as "<field>:<value>", e.g. "id:5" or "barcode:789".
    None and blank values do not count. Returns None when no identity field is set.
    """
    for field in IDENTITY_FIELDS:
        v = product.get(field)
        if v is None or isinstance(v, bool):
            continue
        s = str(v).strip()
        if s:
            return f"{field}:{s}"
    return None


def category_key(category: dict[str, Any]) -> Optional[str]:
    v = category.get("id")
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _as_list(raw: Any, field: str) -> list:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError(f"{field} must be an array")
    return raw


class CatalogReplicator:
    def __init__(self, catalog: CatalogRepository, write_behind: WriteBehind, *, master_store_id: int = 1):
        self._catalog = catalog
        self._write_behind = write_behind
        self._master_store_id = master_store_id

    @property
    def master_store_id(self) -> int:
        return self._master_store_id

    def push_catalog(
        self,
        store_id: Any,
        products: Any = None,
        categories: Any = None,
        is_last_batch: bool = False,
        *,
        confirm: bool = False,
    ) -> dict[str, Any]:
        sid = parse_store_id(store_id)
        products = _as_list(products, "products")
        categories = _as_list(categories, "categories")

        keyed_products = []
        for i, p in enumerate(products):
            if not isinstance(p, dict):
                raise ValidationError(f"products[{i}] must be an object")
            if has_non_finite(p):
                raise ValidationError(f"products[{i}] contains a non-finite number")
            key = product_identity(p)
            if key is None:
                raise ValidationError(f"products[{i}] needs an id, barcode or sku")
            keyed_products.append((key, p))

        keyed_categories = []
        for i, c in enumerate(categories):
            if not isinstance(c, dict):
                raise ValidationError(f"categories[{i}] must be an object")
            if has_non_finite(c):
                raise ValidationError(f"categories[{i}] contains a non-finite number")
            key = category_key(c)
            if key is None:
                raise ValidationError(f"categories[{i}].id is required")
            keyed_categories.append((key, c))

        if keyed_products:
            total = self._catalog.products.collection(sid).upsert(keyed_products)
        else:
            existing = self._catalog.products.find(sid)
            total = len(existing) if existing is not None else 0
        total_categories = self._catalog.categories.upsert(keyed_categories) if keyed_categories else len(self._catalog.categories)

        durable = self._write_behind.write(
            [
                ("products", [product_row(sid, k, p) for k, p in keyed_products]),
                ("categories", [entity_row(c) for _k, c in keyed_categories]),
            ],
            wait=confirm,
        )

        json_log(
            "info",
            "catalog.push",
            store_id=sid,
            products=len(keyed_products),
            categories=len(keyed_categories),
            total_products=total,
            total_categories=total_categories,
            is_last_batch=bool(is_last_batch),
            durable=durable["durable"],
        )
        return {
            "success": True,
            "message": f"Received {len(keyed_products)} products and {len(keyed_categories)} categories",
            "totalProducts": total,
            "isLastBatch": bool(is_last_batch),
            **durable,
        }

    def pull_catalog(self, store_id: Any = None) -> dict[str, Any]:
        requested = parse_store_id_optional(store_id)
        source = requested if requested is not None else self._master_store_id
        coll = self._catalog.products.find(source)
        products = coll.snapshot() if coll is not None else []
        categories = self._catalog.categories.snapshot()
        json_log("info", "catalog.pull", store_id=requested, source_store_id=source, products=len(products), categories=len(categories))
        return {"success": True, "products": products, "categories": categories, "count": len(products)}
