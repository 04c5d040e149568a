from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from .config import settings
from .db import open_pool
from .jsonlog import json_log
from .persistence import PersistenceAdapter, PostgresStore
from .repositories import CatalogRepository, InMemorySalesRepository, StoreRegistry
from .services.admin_crud import AdminCrud
from .services.catalog_replicator import CatalogReplicator
from .services.reports import ReportAggregator
from .services.sync_coordinator import SyncCoordinator
from .services.write_behind import WriteBehind
from .timeutil import utcnow

STARTED_AT_UTC = datetime.now(timezone.utc)


@dataclass
class Hub:
    sales: InMemorySalesRepository
    stores: StoreRegistry
    catalog: CatalogRepository
    persistence: PersistenceAdapter
    write_behind: WriteBehind
    coordinator: SyncCoordinator
    replicator: CatalogReplicator
    reports: ReportAggregator
    admin: AdminCrud


def build_hub(
    persistence: Optional[PersistenceAdapter] = None,
    *,
    clock: Callable[[], datetime] = utcnow,
    master_store_id: Optional[int] = None,
    chunk_size: Optional[int] = None,
    tz=None,
) -> Hub:
    persistence = persistence or PersistenceAdapter()
    master = settings.master_store_id if master_store_id is None else master_store_id
    sales = InMemorySalesRepository()
    stores = StoreRegistry()
    catalog = CatalogRepository()
    write_behind = WriteBehind(persistence, chunk_size or settings.catalog_chunk_size)
    return Hub(
        sales=sales,
        stores=stores,
        catalog=catalog,
        persistence=persistence,
        write_behind=write_behind,
        coordinator=SyncCoordinator(sales, stores, persistence, clock=clock),
        replicator=CatalogReplicator(catalog, write_behind, master_store_id=master),
        reports=ReportAggregator(sales, stores, clock=clock, tz=tz),
        admin=AdminCrud(catalog, sales, stores, persistence, write_behind, master_store_id=master, clock=clock),
    )


def warm_cache(hub: Hub) -> dict[str, int]:
    """
    Rebuild the in-memory state from the durable store. A collection that cannot
    be read is logged and left empty; the service keeps running cache-only.
    """
    loaded: dict[str, int] = {}
    if not hub.persistence.enabled:
        return loaded

    res = hub.persistence.select("stores")
    if res.ok:
        hub.stores.upsert((int(r["id"]), r["data"]) for r in res.value)
        loaded["stores"] = len(res.value)

    res = hub.persistence.select("sales")
    if res.ok:
        by_store: dict[int, list] = {}
        for r in res.value:
            by_store.setdefault(int(r["store_id"]), []).append(r["data"])
        for sid, sales in by_store.items():
            hub.sales.append(sid, sales)
        loaded["sales"] = len(res.value)

    res = hub.persistence.select("products")
    if res.ok:
        by_store = {}
        for r in res.value:
            by_store.setdefault(int(r["store_id"]), []).append((r["product_key"], r["data"]))
        for sid, keyed in by_store.items():
            hub.catalog.products.collection(sid).upsert(keyed)
        loaded["products"] = len(res.value)

    for name, coll in (("categories", hub.catalog.categories), ("promotions", hub.catalog.promotions)):
        res = hub.persistence.select(name)
        if res.ok:
            coll.upsert((str(r["id"]), r["data"]) for r in res.value)
            loaded[name] = len(res.value)

    missing = [c for c in ("stores", "sales", "products", "categories", "promotions") if c not in loaded]
    if missing:
        json_log("warning", "startup.warm_cache_failed", collections=missing)
    json_log("info", "startup.warm_cache", **loaded)
    return loaded


_hub: Optional[Hub] = None


def get_hub() -> Hub:
    global _hub
    if _hub is None:
        pool = open_pool()
        remote = PostgresStore(pool) if pool is not None else None
        _hub = build_hub(PersistenceAdapter(remote))
    return _hub


def set_hub(hub: Optional[Hub]) -> None:
    global _hub
    _hub = hub
