from datetime import datetime, timezone

import psycopg

from backend.app.hub import build_hub, warm_cache
from backend.app.persistence import PersistenceAdapter

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class _SeededRemote:
    def __init__(self, tables, broken=()):
        self._tables = tables
        self._broken = set(broken)

    def select(self, spec):
        if spec.name in self._broken:
            raise psycopg.ProgrammingError(f'relation "{spec.name}" does not exist')
        return list(self._tables.get(spec.name, []))

    def upsert(self, spec, rows):
        return len(rows)

    def delete(self, spec, keys):
        return len(keys)


TABLES = {
    "stores": [{"id": 1, "data": {"id": 1, "name": "Main"}}],
    "sales": [
        {"store_id": 1, "sale_number": "A", "data": {"sale_number": "A", "store_id": 1, "total": 5}},
        {"store_id": 2, "sale_number": "B", "data": {"sale_number": "B", "store_id": 2, "total": 7}},
    ],
    "products": [{"store_id": 1, "product_key": "id:5", "data": {"id": 5, "name": "Tea"}}],
    "categories": [{"id": "3", "data": {"id": 3, "name": "Drinks"}}],
    "promotions": [{"id": "9", "data": {"id": 9, "promo_type": "fixed_price", "product_id": 5}}],
}


def _hub(remote):
    return build_hub(PersistenceAdapter(remote), clock=lambda: NOW, master_store_id=1, tz=timezone.utc)


def test_warm_cache_restores_every_collection():
    hub = _hub(_SeededRemote(TABLES))
    loaded = warm_cache(hub)

    assert loaded == {"stores": 1, "sales": 2, "products": 1, "categories": 1, "promotions": 1}
    assert hub.coordinator.list_stores()["stores"] == [{"id": 1, "name": "Main"}]
    assert hub.coordinator.stats()["salesByStore"] == {"1": 1, "2": 1}
    assert hub.replicator.pull_catalog()["products"] == [{"id": 5, "name": "Tea"}]
    assert hub.admin.list_promotions()["total"] == 1

    # Restored sales keep their idempotency keys.
    assert hub.coordinator.push(1, [{"sale_number": "A", "total": 5}])["accepted"] == 0


def test_warm_cache_skips_unreadable_collections():
    hub = _hub(_SeededRemote(TABLES, broken={"sales", "promotions"}))
    loaded = warm_cache(hub)

    assert set(loaded) == {"stores", "products", "categories"}
    assert hub.coordinator.stats()["totalSales"] == 0
    assert hub.replicator.pull_catalog()["count"] == 1


def test_warm_cache_is_a_no_op_without_durable_store():
    hub = build_hub(clock=lambda: NOW)
    assert warm_cache(hub) == {}
