from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from ..config import settings
from ..hub import STARTED_AT_UTC, get_hub
from ..validation import StoreId

router = APIRouter(prefix="/sync", tags=["sync"])


class SalesPushIn(BaseModel):
    storeId: Optional[StoreId] = None
    sales: Optional[list[Any]] = None
    # Client-side send time; informational only.
    timestamp: Optional[Any] = None


class StoreIn(BaseModel):
    id: Optional[StoreId] = None
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None


class CatalogPushIn(BaseModel):
    storeId: Optional[StoreId] = None
    products: Optional[list[Any]] = None
    categories: Optional[list[Any]] = None
    isLastBatch: bool = False
    # Wait for the durable write and return per-chunk results.
    confirm: bool = False
    timestamp: Optional[Any] = None


@router.get("/health")
def health():
    hub = get_hub()
    return {
        "status": "ok",
        "message": "Sync server is running",
        "version": settings.api_version,
        "durable": "enabled" if hub.persistence.enabled else "disabled",
        "uptime_seconds": int((datetime.now(timezone.utc) - STARTED_AT_UTC).total_seconds()),
    }


@router.post("/push")
def push_sales(data: SalesPushIn):
    """
    A store uploads its sales. Sales whose sale_number is already in that store's
    ledger are dropped, so resending a batch is safe.
    """
    return get_hub().coordinator.push(data.storeId, data.sales)


@router.get("/pull")
def pull_sales(storeId: Optional[str] = None, since: Optional[str] = None):
    """Sales from every store except `storeId`, newest first."""
    return get_hub().coordinator.pull(storeId, since)


@router.post("/stores")
def register_store(data: StoreIn):
    return get_hub().coordinator.register_store(data.model_dump())


@router.get("/stores")
def list_stores():
    return get_hub().coordinator.list_stores()


@router.get("/stats")
def sync_stats():
    return get_hub().coordinator.stats()


@router.post("/products/push")
def push_catalog(data: CatalogPushIn):
    return get_hub().replicator.push_catalog(
        data.storeId,
        data.products,
        data.categories,
        data.isLastBatch,
        confirm=data.confirm,
    )


@router.get("/products/pull")
def pull_catalog(storeId: Optional[str] = None):
    """The master catalog (or the catalog of `storeId` when given) plus all categories."""
    return get_hub().replicator.pull_catalog(storeId)
