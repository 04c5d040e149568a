from typing import Optional

from fastapi import APIRouter, Depends

from ..deps import require_owner
from ..hub import get_hub

router = APIRouter(prefix="/owner", tags=["owner"], dependencies=[Depends(require_owner)])


@router.get("/report")
def consolidated_report(startDate: Optional[str] = None, endDate: Optional[str] = None):
    """
    Revenue, transactions, average ticket and a per-day breakdown for every store
    that has ever sold something, plus system totals. Both dates are inclusive.
    """
    return get_hub().reports.consolidated_report(startDate, endDate)


@router.get("/stores")
def store_status():
    return get_hub().reports.store_status()


@router.get("/store/{store_id}/sales")
def store_sales(
    store_id: int,
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    limit: Optional[str] = None,
):
    return get_hub().reports.store_detail(store_id, startDate, endDate, limit)


@router.get("/compare")
def compare_stores(period: str = "7"):
    return get_hub().reports.compare(period)
